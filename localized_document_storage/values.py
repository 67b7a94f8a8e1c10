"""
Localized value store and reference types.

A localized field is persisted as a mapping ``locale -> value``. Each
locale's entry is a three-state cell:

- UNSET: no key for the locale; reads fall back
- EMPTY: key present with ``null``; reads return ``None`` without fallback
- VALUE: key present with a value (``""`` and ``[]`` are values too)

Writers request the EMPTY state with the ``EMPTY`` marker. Writing ``None``
clears the locale back to UNSET.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class _EmptyMarker:
    """Write marker for an explicitly empty localized value."""

    _instance: _EmptyMarker | None = None

    def __new__(cls) -> _EmptyMarker:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "EMPTY"

    def __bool__(self) -> bool:
        return False


EMPTY = _EmptyMarker()


class CellState(Enum):
    """State of one locale's slot in a localized field."""

    UNSET = "unset"
    EMPTY = "empty"
    VALUE = "value"


@dataclass(frozen=True)
class Cell:
    """One locale's slot: its state and, for VALUE, the stored value."""

    state: CellState
    value: Any = None

    @property
    def is_set(self) -> bool:
        return self.state is not CellState.UNSET


_UNSET_CELL = Cell(CellState.UNSET)
_EMPTY_CELL = Cell(CellState.EMPTY)


class LocalizedValueStore:
    """Per-locale mapping of one localized field instance.

    Wraps the stored mapping of a single field (top-level or inside a row).
    The wrapped mapping is copied; ``to_storage()`` returns what to persist.

    Args:
        stored: The persisted value of the field, normally a dict keyed by
            locale. A bare value (field made localized after data existed)
            is read as the default locale's value.
        locales: Registered locale codes, used for entry ordering
        default_locale: Locale receiving a bare legacy value
    """

    def __init__(
        self,
        stored: Any,
        locales: tuple[str, ...],
        default_locale: str,
    ):
        self._locales = locales
        if stored is None:
            self._entries: dict[str, Any] = {}
        elif isinstance(stored, dict) and all(key in locales for key in stored):
            self._entries = dict(stored)
        else:
            self._entries = {default_locale: stored}

    def cell(self, locale: str) -> Cell:
        if locale not in self._entries:
            return _UNSET_CELL
        value = self._entries[locale]
        if value is None:
            return _EMPTY_CELL
        return Cell(CellState.VALUE, value)

    def get(self, locale: str) -> Any | None:
        """Return the explicit value for a locale, or None if unset or empty."""
        return self._entries.get(locale)

    def set(self, locale: str, value: Any) -> None:
        """Store a value for a locale; the EMPTY marker stores an explicit empty."""
        if value is EMPTY or value is None:
            self._entries[locale] = None
        else:
            self._entries[locale] = value

    def clear(self, locale: str) -> None:
        """Forget a locale's entry so that reads fall back again."""
        self._entries.pop(locale, None)

    def all_entries(self) -> dict[str, Any]:
        """Every written locale, registered order first, EMPTY as None."""
        ordered = {code: self._entries[code] for code in self._locales if code in self._entries}
        for code, value in self._entries.items():
            ordered.setdefault(code, value)
        return ordered

    def to_storage(self) -> dict[str, Any] | None:
        """Mapping to persist, or None once every locale has been cleared."""
        return self.all_entries() or None

    def __contains__(self, locale: str) -> bool:
        return locale in self._entries

    def __len__(self) -> int:
        return len(self._entries)


# =============================================================================
# References
# =============================================================================


@dataclass(frozen=True)
class DirectReference:
    """Reference into the single collection a relationship targets."""

    id: str

    def to_storage(self) -> str:
        return self.id


@dataclass(frozen=True)
class PolymorphicReference:
    """Reference tagged with the collection it points into."""

    relation_to: str
    id: str

    def to_storage(self) -> dict[str, str]:
        return {"relationTo": self.relation_to, "value": self.id}


Reference = DirectReference | PolymorphicReference


def reference_id(value: Any) -> str | None:
    """Extract an id from a bare id or a populated document."""
    if isinstance(value, dict):
        value = value.get("id")
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        return value or None
    if isinstance(value, int):
        return str(value)
    return None


def parse_reference(value: Any, polymorphic: bool) -> Reference | None:
    """Interpret a stored or incoming relationship value.

    Accepts bare ids, populated documents and, for polymorphic
    relationships, ``{"relationTo": ..., "value": ...}`` pairs whose value
    may itself be populated. Returns None when the value is not a reference.
    """
    if polymorphic:
        if not isinstance(value, dict) or "relationTo" not in value:
            return None
        ref_id = reference_id(value.get("value"))
        if ref_id is None:
            return None
        return PolymorphicReference(str(value["relationTo"]), ref_id)

    ref_id = reference_id(value)
    if ref_id is None:
        return None
    return DirectReference(ref_id)
