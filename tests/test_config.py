import pytest

from screen_mockup.config import Settings, hex_to_rgb
from screen_mockup.errors import ConfigError


def test_defaults():
    settings = Settings.from_env({})
    assert settings.api_key is None
    assert settings.description_model == "gemini-2.5-flash-lite"
    assert settings.composition_model == "gemini-2.5-flash-image"
    assert settings.target_dimension == 1024
    assert settings.jpeg_quality == 95
    assert settings.padding_color == (0, 0, 0)
    assert settings.timeout_ms == 120_000


def test_api_key_precedence():
    env = {"API_KEY": "third", "GOOGLE_API_KEY": "second", "GEMINI_API_KEY": "first"}
    assert Settings.from_env(env).api_key == "first"
    del env["GEMINI_API_KEY"]
    assert Settings.from_env(env).api_key == "second"
    del env["GOOGLE_API_KEY"]
    assert Settings.from_env(env).api_key == "third"


def test_overrides():
    settings = Settings.from_env({
        "GEMINI_API_KEY": " key ",
        "SCREEN_MOCKUP_DESCRIPTION_MODEL": "gemini-2.5-flash",
        "SCREEN_MOCKUP_TARGET_DIMENSION": "768",
        "SCREEN_MOCKUP_JPEG_QUALITY": "80",
        "SCREEN_MOCKUP_PADDING_COLOR": "#fff",
        "SCREEN_MOCKUP_TIMEOUT": "30",
    })
    assert settings.api_key == "key"
    assert settings.description_model == "gemini-2.5-flash"
    assert settings.target_dimension == 768
    assert settings.jpeg_quality == 80
    assert settings.padding_color == (255, 255, 255)
    assert settings.timeout_ms == 30_000


def test_blank_values_fall_back_to_defaults():
    assert Settings.from_env({"SCREEN_MOCKUP_TARGET_DIMENSION": "  "}).target_dimension == 1024


@pytest.mark.parametrize(
    "var, value",
    [
        ("SCREEN_MOCKUP_TARGET_DIMENSION", "0"),
        ("SCREEN_MOCKUP_TARGET_DIMENSION", "big"),
        ("SCREEN_MOCKUP_JPEG_QUALITY", "101"),
        ("SCREEN_MOCKUP_PADDING_COLOR", "black"),
        ("SCREEN_MOCKUP_TIMEOUT", "-5"),
    ],
)
def test_invalid_values_name_the_variable(var, value):
    with pytest.raises(ConfigError) as info:
        Settings.from_env({var: value})
    assert var in str(info.value)


def test_hex_to_rgb():
    assert hex_to_rgb("#1A2B3C") == (26, 43, 60)
    assert hex_to_rgb("abc") == (170, 187, 204)
    with pytest.raises(ValueError):
        hex_to_rgb("#12345")
