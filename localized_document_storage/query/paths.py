"""
Typed field paths.

A filter or sort path such as ``items.es.text`` is parsed against the
schema into a sequence of steps, each naming the declared field it lands
on and, for localized fields, the locale slice it addresses. Parsing
decides whether a segment is a locale code or a field name by looking at
the declared field, never by string heuristics alone.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..exceptions import InvalidFieldPathError
from ..locales import ALL_LOCALES, LocaleRegistry
from ..schema import (
    BLOCK_TYPE_KEY,
    DOCUMENT_SYSTEM_KEYS,
    ID_KEY,
    Field,
    FieldType,
)

_CONTAINER_TYPES = (FieldType.GROUP, FieldType.ARRAY, FieldType.BLOCKS)
POLYMORPHIC_KEYS = ("relationTo", "value")


@dataclass(frozen=True)
class PathStep:
    """One declared field on a path.

    Attributes:
        field: The declared field
        locale: Locale slice addressed, for localized fields outside a
            localized container
        explicit_locale: The locale came from a path segment
    """

    field: Field
    locale: str | None = None
    explicit_locale: bool = False


@dataclass(frozen=True)
class FieldPath:
    """A path parsed against declared fields.

    Attributes:
        raw: Path as written by the caller
        steps: Declared fields traversed, outermost first
        system_key: Trailing ``id``, ``blockType`` or timestamp key
        polymorphic_key: ``relationTo`` or ``value`` of a polymorphic reference
        relation_tail: Segments continuing into the related collection
    """

    raw: str
    steps: tuple[PathStep, ...] = ()
    system_key: str | None = None
    polymorphic_key: str | None = None
    relation_tail: tuple[str, ...] = ()

    @property
    def terminal(self) -> Field | None:
        return self.steps[-1].field if self.steps else None

    @property
    def crosses_relationship(self) -> bool:
        return bool(self.relation_tail)

    def hop_locale(self, requested: str | None) -> str | None:
        """Locale to continue with on the far side of a relationship."""
        for step in reversed(self.steps):
            if step.explicit_locale:
                return step.locale
        return requested


class FieldPathParser:
    """Parses dotted paths against a list of declared fields."""

    def __init__(self, registry: LocaleRegistry):
        self.registry = registry

    def effective_locale(self, locale: str | None) -> str:
        """Locale addressed by a localized field without a suffix."""
        if locale is None or locale == ALL_LOCALES:
            return self.registry.default_locale
        return locale

    def parse(self, fields: list[Field], path: str, locale: str | None) -> FieldPath:
        """Parse a dotted path.

        Args:
            fields: Top-level declared fields of the collection
            path: Dotted path, e.g. ``title.es`` or ``layout.text``
            locale: Requested locale, used for localized fields without a
                locale segment

        Raises:
            InvalidFieldPathError: The path does not match the schema
        """
        if not isinstance(path, str) or not path:
            raise InvalidFieldPathError(str(path), "empty path")
        segments = path.split(".")
        if any(not segment for segment in segments):
            raise InvalidFieldPathError(path, "empty segment")

        if len(segments) == 1 and segments[0] in DOCUMENT_SYSTEM_KEYS:
            return FieldPath(path, system_key=segments[0])

        steps: list[PathStep] = []
        container: Field | None = None
        inside_localized = False
        index = 0

        while index < len(segments):
            name = segments[index]

            if container is not None and container.has_rows and self._is_row_key(container, name):
                if index != len(segments) - 1:
                    raise InvalidFieldPathError(path, f"{name!r} has no sub-fields")
                return FieldPath(path, tuple(steps), system_key=name)

            declared = self._lookup(fields, container, name)
            if declared is None:
                raise InvalidFieldPathError(path, f"unknown field {name!r}")
            index += 1

            step_locale = None
            explicit = False
            if declared.localized and not inside_localized:
                if index < len(segments) and self.registry.is_valid_locale(segments[index]):
                    step_locale = segments[index]
                    explicit = True
                    index += 1
                else:
                    step_locale = self.effective_locale(locale)
                inside_localized = True
            steps.append(PathStep(declared, step_locale, explicit))

            if index == len(segments):
                break

            if declared.type in _CONTAINER_TYPES:
                container = declared
                continue

            if declared.type is FieldType.RELATIONSHIP:
                return self._relationship_path(path, steps, segments[index:])

            raise InvalidFieldPathError(path, f"{declared.name!r} has no sub-fields")

        return FieldPath(path, tuple(steps))

    @staticmethod
    def _is_row_key(container: Field, name: str) -> bool:
        if name == ID_KEY:
            return True
        return name == BLOCK_TYPE_KEY and container.type is FieldType.BLOCKS

    @staticmethod
    def _lookup(fields: list[Field], container: Field | None, name: str) -> Field | None:
        if container is None:
            for declared in fields:
                if declared.name == name:
                    return declared
            return None
        return container.subfield(name)

    @staticmethod
    def _relationship_path(
        path: str, steps: list[PathStep], tail: list[str]
    ) -> FieldPath:
        relationship = steps[-1].field
        if not relationship.is_polymorphic:
            return FieldPath(path, tuple(steps), relation_tail=tuple(tail))

        head = tail[0]
        if head not in POLYMORPHIC_KEYS:
            # A polymorphic relationship is addressed through its value.
            return FieldPath(
                path, tuple(steps), polymorphic_key="value", relation_tail=tuple(tail)
            )
        if len(tail) == 1:
            return FieldPath(path, tuple(steps), polymorphic_key=head)
        if head == "relationTo":
            raise InvalidFieldPathError(path, "relationTo has no sub-fields")
        return FieldPath(
            path, tuple(steps), polymorphic_key="value", relation_tail=tuple(tail[1:])
        )
