"""
Localization configuration.

Configuration can be provided directly, via environment variables, or from
the ``localization`` section of a YAML settings file:

```yaml
localization:
  locales: ["en", "es"]
  default_locale: en
  fallback: true
  default_depth: 0
```

Environment Variables:
    LOCALIZED_STORAGE_LOCALES: Comma-separated locale codes (default: en)
    LOCALIZED_STORAGE_DEFAULT_LOCALE: Default locale (default: first locale)
    LOCALIZED_STORAGE_FALLBACK: "true"/"false" (default: true)
    LOCALIZED_STORAGE_DEFAULT_DEPTH: Relationship population depth (default: 0)
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .locales import LocaleRegistry


def _parse_bool(value: str | bool | None, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class LocalizationConfig:
    """Configuration for the localization engine.

    Attributes:
        locales: Registered locale codes
        default_locale: Locale used when none is requested; defaults to the first
        fallback: Whether unset localized values fall back to the default locale
        default_depth: Relationship population depth when a call passes none
    """

    locales: list[str] = field(default_factory=lambda: ["en"])
    default_locale: str | None = None
    fallback: bool = True
    default_depth: int = 0

    def __post_init__(self) -> None:
        if self.default_locale is None and self.locales:
            self.default_locale = self.locales[0]

    @classmethod
    def from_env(cls) -> LocalizationConfig:
        """Create config from environment variables."""
        locales_str = os.environ.get("LOCALIZED_STORAGE_LOCALES", "en")
        locales = [code.strip() for code in locales_str.split(",") if code.strip()]

        return cls(
            locales=locales,
            default_locale=os.environ.get("LOCALIZED_STORAGE_DEFAULT_LOCALE") or None,
            fallback=_parse_bool(os.environ.get("LOCALIZED_STORAGE_FALLBACK"), True),
            default_depth=int(os.environ.get("LOCALIZED_STORAGE_DEFAULT_DEPTH", "0")),
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LocalizationConfig:
        """Create config from a parsed ``localization`` mapping."""
        locales = data.get("locales") or ["en"]
        if isinstance(locales, str):
            locales = [code.strip() for code in locales.split(",") if code.strip()]

        return cls(
            locales=[str(code) for code in locales],
            default_locale=data.get("default_locale"),
            fallback=_parse_bool(data.get("fallback"), True),
            default_depth=int(data.get("default_depth", 0)),
        )

    @classmethod
    def from_file(cls, path: str | Path) -> LocalizationConfig:
        """Load config from the ``localization`` section of a YAML file.

        A missing file or missing section yields the defaults.
        """
        config_path = Path(path)
        if not config_path.exists():
            return cls()

        content = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
        return cls.from_dict(content.get("localization") or {})

    def registry(self) -> LocaleRegistry:
        """Build the locale registry described by this config."""
        return LocaleRegistry(
            locales=tuple(self.locales),
            default_locale=self.default_locale or self.locales[0],
            fallback=self.fallback,
        )
