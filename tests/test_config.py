import pytest

from vm_forecast.config import Settings, get_settings, reset_settings, set_settings, settings_from_env


def test_defaults():
    s = get_settings()
    assert s.fine_width == 300
    assert s.slot_width == 300
    assert s.slot_ratio == 1
    assert s.default_policy == "current"
    assert s.product_source is None


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("VMF_FINE_WIDTH", "60")
    monkeypatch.setenv("VMF_SLOT_WIDTH", "300")
    monkeypatch.setenv("VMF_POLICY", "foar-product")
    monkeypatch.setenv("VMF_PRODUCT_SOURCE", "http://db.local/product")
    monkeypatch.setenv("VMF_PRODUCT_TIMEOUT", "2.5")
    s = settings_from_env()
    assert s.slot_ratio == 5
    assert s.default_policy == "foar-product"
    assert s.product_source == "http://db.local/product"
    assert s.product_timeout_s == 2.5


def test_slot_defaults_to_fine(monkeypatch):
    monkeypatch.setenv("VMF_FINE_WIDTH", "120")
    assert settings_from_env().slot_width == 120


def test_settings_are_cached(monkeypatch):
    first = get_settings()
    monkeypatch.setenv("VMF_POLICY", "batch")
    assert get_settings() is first
    reset_settings()
    assert get_settings().default_policy == "batch"


def test_set_settings():
    custom = Settings(slot_width=900)
    set_settings(custom)
    assert get_settings() is custom


@pytest.mark.parametrize(
    "kwargs",
    [
        {"fine_width": 0},
        {"slot_width": -300},
        {"fine_width": 300, "slot_width": 450},
        {"default_policy": "oracle"},
    ],
)
def test_invalid_settings(kwargs):
    with pytest.raises(ValueError):
        Settings(**kwargs)


def test_bad_env_value(monkeypatch):
    monkeypatch.setenv("VMF_FINE_WIDTH", "five minutes")
    with pytest.raises(ValueError):
        settings_from_env()
