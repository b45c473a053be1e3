"""Tests for settings."""

import pytest
from pydantic import ValidationError

from ratebook.core.config import Settings, clear_settings_cache, get_settings


def test_defaults():
    """Two approving roles and whole-dollar premiums by default."""
    settings = Settings()
    assert settings.required_approval_roles == ["product_manager", "compliance"]
    assert settings.final_rounding_mode == "nearest"
    assert settings.final_rounding_precision == 0
    assert not settings.is_production


def test_environment_override(monkeypatch):
    """RATEBOOK_ variables override defaults."""
    monkeypatch.setenv("RATEBOOK_MAX_PUBLISH_ITEMS", "25")
    monkeypatch.setenv("RATEBOOK_REQUIRED_APPROVAL_ROLES", '["actuary"]')
    clear_settings_cache()

    settings = get_settings()

    assert settings.max_publish_items == 25
    assert settings.required_approval_roles == ["actuary"]
    assert get_settings() is settings


def test_roles_must_be_distinct():
    """The same role cannot be required twice."""
    with pytest.raises(ValidationError):
        Settings(required_approval_roles=["compliance", "compliance"])


def test_unknown_rounding_mode():
    """Only known rounding modes are accepted."""
    with pytest.raises(ValidationError):
        Settings(final_rounding_mode="sideways")


def test_settings_are_immutable():
    """Settings cannot change after load."""
    settings = Settings()
    with pytest.raises(ValidationError):
        settings.max_publish_items = 3
