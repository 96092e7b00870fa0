"""Tests for configuration settings."""
import pytest

pytestmark = pytest.mark.unit


def test_defaults(monkeypatch):
    """Settings fall back to documented defaults."""
    from config.settings import Settings

    for var in ("BRIDGE_ORIGIN_NAME", "BRIDGE_MIN_RANK_SCORE", "BRIDGE_MAX_IMPORT_ROWS"):
        monkeypatch.delenv(var, raising=False)
    settings = Settings(_env_file=None)

    assert settings.origin_name == "Michelle Campeau"
    assert settings.min_rank_score == 2.0
    assert settings.max_import_rows == 500


def test_env_overrides(monkeypatch):
    """BRIDGE_-prefixed environment variables override defaults."""
    from config.settings import Settings

    monkeypatch.setenv("BRIDGE_ORIGIN_NAME", "Ada Lovelace")
    monkeypatch.setenv("BRIDGE_MIN_RANK_SCORE", "1.5")

    settings = Settings(_env_file=None)

    assert settings.origin_name == "Ada Lovelace"
    assert settings.min_rank_score == 1.5


def test_db_path_parent_is_created(tmp_path, monkeypatch):
    from config.settings import Settings
    from api.utils.db_paths import get_crm_db_path

    target = tmp_path / "nested" / "bridge.db"
    monkeypatch.setattr("api.utils.db_paths.settings", Settings(db_path=target))

    assert get_crm_db_path() == str(target.resolve())
    assert target.parent.is_dir()


def test_blank_origin_name_rejected():
    from pydantic import ValidationError
    from config.settings import Settings

    with pytest.raises(ValidationError):
        Settings(_env_file=None, origin_name="")
