"""
Locale registry.

Holds the closed set of registered locale codes and the default locale,
and maps caller-supplied locale tokens (as they arrive from a transport
layer's ``locale`` / ``fallback-locale`` parameters) onto validated codes.

The ``all`` sentinel is not a locale: it asks the read path for every
stored locale at once and lets writes carry per-locale mappings.
"""

from __future__ import annotations

from dataclasses import dataclass

from .exceptions import InvalidLocaleError

ALL_LOCALES = "all"

# Transport token that disables fallback for a single request.
NO_FALLBACK_TOKEN = "none"


@dataclass(frozen=True)
class LocaleRegistry:
    """Registered locale codes plus the designated default.

    Attributes:
        locales: Registered codes, in display order
        default_locale: Code used when a request names no locale
        fallback: Whether reads fall back to the default locale by default
    """

    locales: tuple[str, ...]
    default_locale: str
    fallback: bool = True

    def __post_init__(self) -> None:
        if not self.locales:
            raise ValueError("At least one locale must be registered")
        if ALL_LOCALES in self.locales:
            raise ValueError(f"{ALL_LOCALES!r} is reserved and cannot be registered")
        if len(set(self.locales)) != len(self.locales):
            raise ValueError(f"Duplicate locale codes: {self.locales}")
        if self.default_locale not in self.locales:
            raise ValueError(
                f"Default locale {self.default_locale!r} is not one of {self.locales}"
            )

    def is_valid_locale(self, code: str) -> bool:
        """Check whether a code is registered. The ``all`` sentinel is not."""
        return code in self.locales

    def all_locales(self) -> tuple[str, ...]:
        """Registered codes in registration order."""
        return self.locales

    def validate(self, code: str) -> str:
        """Return the code unchanged, or raise InvalidLocaleError."""
        if not isinstance(code, str) or code not in self.locales:
            raise InvalidLocaleError(str(code), self.locales)
        return code

    def parse(self, value: str | None) -> str:
        """Map a requested locale token onto a registered code or ALL_LOCALES.

        None or an empty token means the default locale.
        """
        if value is None or value == "":
            return self.default_locale
        if value == ALL_LOCALES:
            return ALL_LOCALES
        return self.validate(value)

    def parse_fallback(self, value: str | bool | None) -> str | None:
        """Resolve the fallback locale for a request.

        Args:
            value: None for the configured behaviour, False or ``"none"`` to
                disable fallback, or a registered locale code.

        Returns:
            The fallback locale code, or None when fallback is disabled.
        """
        if value is None:
            return self.default_locale if self.fallback else None
        if value is False or value == NO_FALLBACK_TOKEN:
            return None
        if value is True:
            return self.default_locale
        return self.validate(value)
