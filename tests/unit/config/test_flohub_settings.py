"""Unit tests for flohub.config.settings.FloHubSettings."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from flohub.config.settings import FloHubSettings

pytestmark = [pytest.mark.unit, pytest.mark.fast]


def test_settings_when_yaml_present_then_values_loaded(tmp_path: Path) -> None:
    config_file = tmp_path / "config.yaml"
    config_file.write_text(
        "web_port: 9090\nevent_cache_ttl: 60\nunknown_key: 1\ndata_dir: /tmp/flohub-test\n",
        encoding="utf-8",
    )

    settings = FloHubSettings(config_file=config_file)

    assert settings.web_port == 9090
    assert settings.event_cache_ttl == 60
    assert settings.data_dir == Path("/tmp/flohub-test")


def test_settings_when_env_and_yaml_disagree_then_env_wins(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    config_file = tmp_path / "config.yaml"
    config_file.write_text("web_port: 9090\n", encoding="utf-8")
    monkeypatch.setenv("FLOHUB_WEB_PORT", "7070")

    settings = FloHubSettings(config_file=config_file)

    assert settings.web_port == 7070


def test_settings_when_explicit_argument_then_beats_yaml(tmp_path: Path) -> None:
    config_file = tmp_path / "config.yaml"
    config_file.write_text("source_timeout: 99\n", encoding="utf-8")

    settings = FloHubSettings(config_file=config_file, source_timeout=5)

    assert settings.source_timeout == 5


def test_settings_when_log_level_invalid_then_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValidationError):
        FloHubSettings(config_file=tmp_path / "none.yaml", log_level="LOUD")


def test_microsoft_token_url_when_tenant_set_then_formatted(tmp_path: Path) -> None:
    settings = FloHubSettings(config_file=tmp_path / "none.yaml", microsoft_tenant="contoso")

    assert settings.microsoft_token_url == (
        "https://login.microsoftonline.com/contoso/oauth2/v2.0/token"
    )
