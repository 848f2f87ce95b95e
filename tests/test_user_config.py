"""Unit tests for the text_to_video user config file."""

from __future__ import annotations

from pathlib import Path

import pytest

from domain.word_video import CONFIG_FILE_CODE, TextVideoValidationError
from service.user_config import UserConfig, load_user_config, resolve_setting


def write_config(target_path: Path, content: str) -> Path:
    """Write TOML content to disk."""
    target_path.write_text(content, encoding="utf-8")
    return target_path


def test_loads_all_keys(tmp_path: Path) -> None:
    """Read every supported key with its declared type."""
    config_path = write_config(
        tmp_path / "config.toml",
        "\n".join(
            [
                "wpm = 250",
                'text_color = "white"',
                'background = "#000000"',
                'secondary_color = "rgb(10,10,10)"',
                "rest_seconds = 1",
                "focus_lines = false",
                "wpm_indicator = false",
                'font_file = "/fonts/Sans.ttf"',
                "font_size = 90",
                "overwrite = true",
            ]
        ),
    )

    config = load_user_config(str(config_path))

    assert config == UserConfig(
        wpm=250.0,
        text_color="white",
        background="#000000",
        secondary_color="rgb(10,10,10)",
        rest_seconds=1.0,
        focus_lines=False,
        wpm_indicator=False,
        font_file="/fonts/Sans.ttf",
        font_size=90,
        overwrite=True,
    )
    assert isinstance(config.wpm, float)


def test_missing_default_config_is_empty(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """No file at the default location means no overrides."""
    monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path))
    assert load_user_config(None) == UserConfig()


def test_default_config_is_read_from_home(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Pick up the per-user file when it exists."""
    monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path))
    write_config(tmp_path / ".text_to_video.toml", "wpm = 120\n")
    assert load_user_config(None).wpm == 120.0


def test_missing_explicit_config_fails(tmp_path: Path) -> None:
    """An explicit --config path must exist."""
    with pytest.raises(TextVideoValidationError) as excinfo:
        load_user_config(str(tmp_path / "absent.toml"))
    assert excinfo.value.code == CONFIG_FILE_CODE


@pytest.mark.parametrize(
    "content",
    [
        "wpm = ",
        "speed = 300\n",
        'wpm = "fast"\n',
        "font_size = 1.5\n",
        "font_size = true\n",
        "focus_lines = 1\n",
    ],
)
def test_invalid_config_fails(tmp_path: Path, content: str) -> None:
    """Reject bad TOML, unknown keys and wrong value types."""
    config_path = write_config(tmp_path / "config.toml", content)
    with pytest.raises(TextVideoValidationError) as excinfo:
        load_user_config(str(config_path))
    assert excinfo.value.code == CONFIG_FILE_CODE


def test_resolve_setting_precedence() -> None:
    """CLI beats config, config beats the default."""
    assert resolve_setting(100.0, 200.0, 300.0) == 100.0
    assert resolve_setting(None, 200.0, 300.0) == 200.0
    assert resolve_setting(None, None, 300.0) == 300.0
    assert resolve_setting(False, True, True) is False
