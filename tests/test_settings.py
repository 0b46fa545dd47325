from pathlib import Path

import pytest

from impact_ledger.core import settings
from impact_ledger.errors import ConfigurationError


def test_read_config_file_skips_empty_values(tmp_path: Path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text("OPENAI_MODEL: gpt-4o-mini\nOPENAI_BASE_URL:\nCLASSIFIER_TIMEOUT: 60\n")
    assert settings.read_config_file(str(path)) == {
        "OPENAI_MODEL": "gpt-4o-mini",
        "CLASSIFIER_TIMEOUT": "60",
    }


def test_read_config_file_missing(tmp_path: Path) -> None:
    assert settings.read_config_file(str(tmp_path / "absent.yaml")) == {}
    assert settings.read_config_file(None) == {}


@pytest.mark.parametrize("content", ["- just\n- a list\n", "key: [unclosed\n"])
def test_read_config_file_rejects_bad_yaml(tmp_path: Path, content: str) -> None:
    path = tmp_path / "config.yaml"
    path.write_text(content)
    with pytest.raises(ConfigurationError):
        settings.read_config_file(str(path))


def test_environment_wins_over_config_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    (tmp_path / "config.yaml").write_text("OPENAI_MODEL: from-config\nVENDOR_CACHE_VALIDITY_DAYS: 30\n")
    monkeypatch.setenv("CONFIG_DIR", str(tmp_path))
    monkeypatch.setenv("OPENAI_MODEL", "from-env")
    # Register the key so the value loaded from the file is undone afterwards.
    monkeypatch.setenv("VENDOR_CACHE_VALIDITY_DAYS", "0")
    monkeypatch.delenv("VENDOR_CACHE_VALIDITY_DAYS")

    settings.load_environment()

    assert settings.get_config_path() == str(tmp_path / "config.yaml")
    assert settings.openai_model() == "from-env"
    assert settings.vendor_cache_validity_days() == 30


def test_numeric_helpers_fall_back(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CLASSIFIER_TIMEOUT", "soon")
    assert settings.classifier_timeout() == settings.DEFAULT_CLASSIFIER_TIMEOUT
    monkeypatch.setenv("CLASSIFIER_TIMEOUT", "0")
    assert settings.classifier_timeout() == settings.DEFAULT_CLASSIFIER_TIMEOUT
    monkeypatch.setenv("CLASSIFIER_TIMEOUT", "45")
    assert settings.classifier_timeout() == 45.0
    monkeypatch.setenv("VENDOR_CACHE_VALIDITY_DAYS", "-3")
    assert settings.vendor_cache_validity_days() == 90


def test_mask_value() -> None:
    assert settings.mask_value("OPENAI_API_KEY", "sk-abcdef123") == "sk...23"
    assert settings.mask_value("OPENAI_API_KEY", "abc") == "****"
    assert settings.mask_value("OPENAI_MODEL", "gpt-4o") == "gpt-4o"
