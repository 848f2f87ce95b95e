"""User configuration file support for text_to_video."""

from __future__ import annotations

from dataclasses import dataclass, fields
import os
from pathlib import Path
import tomllib
from typing import Any, Mapping, TypeVar

from domain.word_video import CONFIG_FILE_CODE, TextVideoValidationError

DEFAULT_CONFIG_FILE_NAME = ".text_to_video.toml"

SettingValue = TypeVar("SettingValue")


@dataclass(frozen=True)
class UserConfig:
    """Optional overrides loaded from the user TOML file."""

    wpm: float | None = None
    text_color: str | None = None
    background: str | None = None
    secondary_color: str | None = None
    rest_seconds: float | None = None
    focus_lines: bool | None = None
    wpm_indicator: bool | None = None
    font_file: str | None = None
    font_size: int | None = None
    overwrite: bool | None = None


CONFIG_VALUE_TYPES: dict[str, tuple[type, ...]] = {
    "wpm": (int, float),
    "text_color": (str,),
    "background": (str,),
    "secondary_color": (str,),
    "rest_seconds": (int, float),
    "focus_lines": (bool,),
    "wpm_indicator": (bool,),
    "font_file": (str,),
    "font_size": (int,),
    "overwrite": (bool,),
}


def default_config_path() -> Path:
    """Return the per-user config location."""
    return Path.home() / DEFAULT_CONFIG_FILE_NAME


def validate_config_values(values: Mapping[str, Any], config_path: Path) -> dict[str, Any]:
    """Check keys and value types from a parsed TOML document."""
    known_keys = {field.name for field in fields(UserConfig)}
    unknown_keys = sorted(set(values) - known_keys)
    if unknown_keys:
        raise TextVideoValidationError(
            CONFIG_FILE_CODE,
            f"unknown keys in {config_path}: {', '.join(unknown_keys)}",
        )

    validated: dict[str, Any] = {}
    for key, value in values.items():
        expected_types = CONFIG_VALUE_TYPES[key]
        # bool is a subclass of int
        is_bool_mismatch = isinstance(value, bool) and bool not in expected_types
        if is_bool_mismatch or not isinstance(value, expected_types):
            raise TextVideoValidationError(
                CONFIG_FILE_CODE,
                f"invalid type for {key!r} in {config_path}: {type(value).__name__}",
            )
        if key in ("wpm", "rest_seconds"):
            value = float(value)
        validated[key] = value
    return validated


def load_user_config(config_path: str | None) -> UserConfig:
    """Load the user config file.

    An explicit path must exist. The default path is optional and yields an
    empty UserConfig when absent.
    """
    if config_path is None:
        resolved_path = default_config_path()
        if not resolved_path.is_file():
            return UserConfig()
    else:
        resolved_path = Path(os.path.expanduser(config_path))
        if not resolved_path.is_file():
            raise TextVideoValidationError(
                CONFIG_FILE_CODE, f"config file not found: {resolved_path}"
            )

    try:
        with open(resolved_path, "rb") as file_handle:
            values = tomllib.load(file_handle)
    except tomllib.TOMLDecodeError as exc:
        raise TextVideoValidationError(
            CONFIG_FILE_CODE, f"failed to parse {resolved_path}: {exc}"
        ) from exc
    except OSError as exc:
        raise TextVideoValidationError(
            CONFIG_FILE_CODE, f"failed to read {resolved_path}: {exc}"
        ) from exc

    return UserConfig(**validate_config_values(values, resolved_path))


def resolve_setting(
    cli_value: SettingValue | None,
    config_value: SettingValue | None,
    default_value: SettingValue,
) -> SettingValue:
    """Pick the CLI value, then the config value, then the default."""
    if cli_value is not None:
        return cli_value
    if config_value is not None:
        return config_value
    return default_value
