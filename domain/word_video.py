"""Domain types and parsing for text_to_video."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import logging
import re
from typing import Tuple

import jieba
from PIL import ImageColor

INVALID_INPUT_CODE = "text_to_video.input.invalid_input"
INVALID_COLOR_CODE = "text_to_video.input.invalid_color"
INVALID_CONFIG_CODE = "text_to_video.input.invalid_config"
EMPTY_TEXT_CODE = "text_to_video.input.empty_text"
INPUT_FILE_CODE = "text_to_video.input.file_error"
CONFIG_FILE_CODE = "text_to_video.input.config_file"
FONT_CODE = "text_to_video.input.font"
OUTPUT_EXISTS_CODE = "text_to_video.input.output_exists"

HEX_COLOR_PATTERN = re.compile(r"^(?:#|0x)([0-9a-fA-F]{6})$")
RGB_COLOR_PATTERN = re.compile(
    r"^rgb\(\s*(\d{1,3})\s*,\s*(\d{1,3})\s*,\s*(\d{1,3})\s*\)$", re.IGNORECASE
)
ATTACHED_PUNCTUATION = frozenset(
    (",", ".", "!", "?", ";", ":", "。", "、", "！", "？")
)
WORD_CONNECTOR = "-"
QUOTE_CHARACTER = '"'
HAN_CHARACTER_PATTERN = re.compile(r"[\u3400-\u4dbf\u4e00-\u9fff\uf900-\ufaff]")

jieba.setLogLevel(logging.WARNING)


class TextVideoValidationError(ValueError):
    """Validation error with a stable error code."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code


class ColorKind(str, Enum):
    """Accepted color notations."""

    NAMED = "named"
    HEX = "hex"
    RGB = "rgb"


@dataclass(frozen=True)
class ColorSpec:
    """Parsed color with its source notation and resolved channels."""

    kind: ColorKind
    source: str
    rgb: Tuple[int, int, int]

    def __post_init__(self) -> None:
        if len(self.rgb) != 3:
            raise TextVideoValidationError(INVALID_COLOR_CODE, "rgb must have 3 channels")
        for channel in self.rgb:
            if channel < 0 or channel > 255:
                raise TextVideoValidationError(
                    INVALID_COLOR_CODE, "color channel out of range"
                )

    @property
    def ffmpeg_value(self) -> str:
        """Return the canonical 0xRRGGBB form accepted by ffmpeg."""
        red_value, green_value, blue_value = self.rgb
        return f"0x{red_value:02X}{green_value:02X}{blue_value:02X}"


@dataclass(frozen=True)
class TimedWord:
    """A word shown over the half-open window [start_seconds, end_seconds)."""

    word: str
    start_seconds: float
    end_seconds: float
    color: ColorSpec
    font_size: int

    def __post_init__(self) -> None:
        if not self.word:
            raise TextVideoValidationError(INVALID_INPUT_CODE, "word must be non-empty")
        if self.start_seconds < 0:
            raise TextVideoValidationError(
                INVALID_INPUT_CODE, "word start time must be non-negative"
            )
        if self.end_seconds <= self.start_seconds:
            raise TextVideoValidationError(
                INVALID_INPUT_CODE, "word end time must be after start time"
            )
        if self.font_size <= 0:
            raise TextVideoValidationError(
                INVALID_INPUT_CODE, "font_size must be positive"
            )


@dataclass(frozen=True)
class OverlayStyle:
    """Settings shared by every overlay in the filter chain."""

    font_file: str
    secondary_color: ColorSpec
    focus_lines: bool
    wpm_indicator: bool

    def __post_init__(self) -> None:
        if not self.font_file.strip():
            raise TextVideoValidationError(FONT_CODE, "font_file must be non-empty")


@dataclass(frozen=True)
class RenderSpec:
    """Everything the encoder invocation needs, fixed before it runs."""

    words: Tuple[TimedWord, ...]
    background: ColorSpec
    output_video_file: str
    duration_seconds: float
    width: int
    height: int
    fps: int
    overwrite: bool

    def __post_init__(self) -> None:
        if not self.words:
            raise TextVideoValidationError(EMPTY_TEXT_CODE, "no words to render")
        if not self.output_video_file.strip():
            raise TextVideoValidationError(
                INVALID_CONFIG_CODE, "output_video_file must be non-empty"
            )
        if self.duration_seconds <= 0:
            raise TextVideoValidationError(
                INVALID_INPUT_CODE, "duration_seconds must be positive"
            )
        if self.width <= 0 or self.height <= 0:
            raise TextVideoValidationError(
                INVALID_CONFIG_CODE, "width and height must be positive"
            )
        if self.width % 2 or self.height % 2:
            raise TextVideoValidationError(
                INVALID_CONFIG_CODE, "width and height must be even"
            )
        if self.fps <= 0:
            raise TextVideoValidationError(INVALID_CONFIG_CODE, "fps must be positive")

        last_end = 0.0
        for timed_word in self.words:
            if timed_word.start_seconds != last_end:
                raise TextVideoValidationError(
                    INVALID_INPUT_CODE, "word windows must be contiguous"
                )
            last_end = timed_word.end_seconds
        if last_end != self.duration_seconds:
            raise TextVideoValidationError(
                INVALID_INPUT_CODE, "word windows must cover the full duration"
            )


def parse_color(color_value: str) -> ColorSpec:
    """Parse a named, hex or rgb() color into a ColorSpec."""
    normalized = color_value.strip()

    hex_match = HEX_COLOR_PATTERN.fullmatch(normalized)
    if hex_match:
        rgb_hex = hex_match.group(1)
        return ColorSpec(
            kind=ColorKind.HEX,
            source=color_value,
            rgb=(int(rgb_hex[0:2], 16), int(rgb_hex[2:4], 16), int(rgb_hex[4:6], 16)),
        )

    rgb_match = RGB_COLOR_PATTERN.fullmatch(normalized)
    if rgb_match:
        channels = tuple(int(part) for part in rgb_match.groups())
        if any(channel > 255 for channel in channels):
            raise TextVideoValidationError(
                INVALID_COLOR_CODE,
                f"rgb channels must be within 0..255: {color_value!r}",
            )
        return ColorSpec(kind=ColorKind.RGB, source=color_value, rgb=channels)

    color_name = normalized.lower()
    if color_name in ImageColor.colormap:
        red_value, green_value, blue_value = ImageColor.getrgb(color_name)[:3]
        return ColorSpec(
            kind=ColorKind.NAMED,
            source=color_value,
            rgb=(red_value, green_value, blue_value),
        )

    raise TextVideoValidationError(
        INVALID_COLOR_CODE,
        f"invalid color {color_value!r}; use a named color (white), "
        "#RRGGBB / 0xRRGGBB, or rgb(255,0,0)",
    )


def merge_tokens_into(words: list[str], tokens: list[str]) -> None:
    """Append tokens to words, reattaching punctuation and hyphen joins."""
    index = 0
    while index < len(tokens):
        token = tokens[index]
        next_token = tokens[index + 1] if index + 1 < len(tokens) else None
        if token == WORD_CONNECTOR and words and next_token is not None:
            words[-1] = f"{words[-1]}{WORD_CONNECTOR}{next_token}"
            index += 2
            continue
        if token in ATTACHED_PUNCTUATION and words:
            words[-1] = words[-1] + token
        else:
            words.append(token)
        index += 1


def segment_text(text_value: str) -> list[str]:
    """Split text on whitespace, then cut Han runs into words with jieba."""
    tokens: list[str] = []
    for token in text_value.split():
        if not HAN_CHARACTER_PATTERN.search(token):
            tokens.append(token)
            continue
        tokens.extend(
            piece.strip() for piece in jieba.lcut(token, HMM=True) if piece.strip()
        )
    return tokens


def tokenize_words(text_value: str) -> Tuple[str, ...]:
    """Split text into display words.

    Words are whitespace-delimited, and text with Han characters is cut
    into words with jieba. A double-quoted span stays one word, standalone
    punctuation joins the previous word and a standalone hyphen joins its
    neighbours.
    """
    stripped_text = text_value.replace("\ufeff", "").strip()
    if not stripped_text:
        raise TextVideoValidationError(EMPTY_TEXT_CODE, "input text contains no words")

    words: list[str] = []
    segment: list[str] = []
    in_quotes = False
    for character in stripped_text:
        if character != QUOTE_CHARACTER:
            segment.append(character)
            continue
        if not in_quotes:
            merge_tokens_into(words, segment_text("".join(segment)))
            segment = [character]
            in_quotes = True
        else:
            segment.append(character)
            words.append("".join(segment))
            segment = []
            in_quotes = False

    remainder = "".join(segment)
    if in_quotes:
        if remainder.strip():
            words.append(remainder.strip())
    else:
        merge_tokens_into(words, segment_text(remainder))

    if not words:
        raise TextVideoValidationError(EMPTY_TEXT_CODE, "input text contains no words")

    return tuple(words)
