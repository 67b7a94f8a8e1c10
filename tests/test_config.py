"""Tests for localization configuration loading."""

from localized_document_storage.config import LocalizationConfig


class TestLocalizationConfig:
    def test_defaults(self):
        config = LocalizationConfig()
        assert config.locales == ["en"]
        assert config.default_locale == "en"
        assert config.fallback is True
        assert config.default_depth == 0

    def test_default_locale_is_first(self):
        config = LocalizationConfig(locales=["es", "en"])
        assert config.default_locale == "es"

    def test_registry(self):
        registry = LocalizationConfig(locales=["en", "es"], fallback=False).registry()
        assert registry.locales == ("en", "es")
        assert registry.default_locale == "en"
        assert registry.fallback is False


class TestFromEnv:
    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("LOCALIZED_STORAGE_LOCALES", "en, es ,fr")
        monkeypatch.setenv("LOCALIZED_STORAGE_DEFAULT_LOCALE", "es")
        monkeypatch.setenv("LOCALIZED_STORAGE_FALLBACK", "false")
        monkeypatch.setenv("LOCALIZED_STORAGE_DEFAULT_DEPTH", "2")

        config = LocalizationConfig.from_env()

        assert config.locales == ["en", "es", "fr"]
        assert config.default_locale == "es"
        assert config.fallback is False
        assert config.default_depth == 2

    def test_missing_environment_uses_defaults(self, monkeypatch):
        for name in (
            "LOCALIZED_STORAGE_LOCALES",
            "LOCALIZED_STORAGE_DEFAULT_LOCALE",
            "LOCALIZED_STORAGE_FALLBACK",
            "LOCALIZED_STORAGE_DEFAULT_DEPTH",
        ):
            monkeypatch.delenv(name, raising=False)

        config = LocalizationConfig.from_env()

        assert config.locales == ["en"]
        assert config.default_locale == "en"
        assert config.fallback is True


class TestFromFile:
    def test_reads_localization_section(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text(
            "localization:\n"
            "  locales: [en, es]\n"
            "  default_locale: es\n"
            "  fallback: false\n"
            "  default_depth: 1\n"
            "other:\n"
            "  ignored: true\n"
        )

        config = LocalizationConfig.from_file(path)

        assert config.locales == ["en", "es"]
        assert config.default_locale == "es"
        assert config.fallback is False
        assert config.default_depth == 1

    def test_comma_separated_locales(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("localization:\n  locales: en,es\n")

        config = LocalizationConfig.from_file(path)

        assert config.locales == ["en", "es"]

    def test_missing_file(self, tmp_path):
        config = LocalizationConfig.from_file(tmp_path / "missing.yaml")
        assert config.locales == ["en"]

    def test_missing_section(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("other: {}\n")

        config = LocalizationConfig.from_file(path)

        assert config.locales == ["en"]
