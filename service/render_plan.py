"""Word timing and ffmpeg filter-chain construction for text_to_video."""

from __future__ import annotations

from dataclasses import dataclass
import logging
import math
from typing import Sequence, Tuple

from domain.word_video import (
    EMPTY_TEXT_CODE,
    INVALID_INPUT_CODE,
    ColorSpec,
    OverlayStyle,
    RenderSpec,
    TextVideoValidationError,
    TimedWord,
)

SECONDS_PER_MINUTE = 60.0
SENTENCE_ENDINGS = (".", "!", "?")
LONG_WORD_CHARACTERS = 50
LONG_WORD_SCALE = 0.8
WORD_X_EXPRESSION = "(w-text_w)/5*2"
WORD_Y_EXPRESSION = "h/2-ascent"
FOCUS_LINE_THICKNESS = 10
FOCUS_TICK_LENGTH = 75
WPM_INDICATOR_FONT_SIZE = 60
WPM_INDICATOR_X_EXPRESSION = "(w-text_w)*0.9"
WPM_INDICATOR_Y_EXPRESSION = "(h-text_h)*0.9"
TIME_DECIMALS = 6
OPTION_SPECIAL_CHARACTERS = "\\':"
GRAPH_SPECIAL_CHARACTERS = "\\'[],;"
LOGGER = logging.getLogger("text_to_video")


@dataclass(frozen=True)
class WordTiming:
    """Resolved word windows and the total they cover."""

    words: Tuple[TimedWord, ...]
    seconds_per_word: float
    duration_seconds: float


def compute_seconds_per_word(words_per_minute: float) -> float:
    """Return the uniform display duration for one word."""
    if not math.isfinite(words_per_minute) or words_per_minute <= 0:
        raise TextVideoValidationError(
            INVALID_INPUT_CODE, "words per minute must be positive"
        )
    return SECONDS_PER_MINUTE / words_per_minute


def ends_sentence(word: str) -> bool:
    """Return True when a word closes a sentence."""
    return word.endswith(SENTENCE_ENDINGS)


def compute_word_font_size(word: str, font_size: int) -> int:
    """Shrink very long words so they stay on the canvas."""
    if len(word) > LONG_WORD_CHARACTERS:
        return max(1, int(font_size * LONG_WORD_SCALE))
    return font_size


def compute_boundaries(
    words: Sequence[str],
    seconds_per_word: float,
    rest_seconds: float,
    duration_override: float | None,
) -> Tuple[float, ...]:
    """Compute the N + 1 window boundaries shared by adjacent words."""
    word_count = len(words)
    if duration_override is not None:
        boundaries = [duration_override * index / word_count for index in range(word_count)]
        boundaries.append(duration_override)
        return tuple(boundaries)

    boundaries = [0.0]
    rest_total = 0.0
    for index, word in enumerate(words):
        if rest_seconds > 0 and index > 0 and ends_sentence(word):
            rest_total += rest_seconds
        boundaries.append((index + 1) * seconds_per_word + rest_total)
    return tuple(boundaries)


def build_word_timing(
    words: Sequence[str],
    words_per_minute: float,
    text_color: ColorSpec,
    font_size: int,
    duration_override: float | None = None,
    rest_seconds: float = 0.0,
) -> WordTiming:
    """Assign each word a contiguous half-open display window.

    Without an override the total is ``len(words) * 60 / words_per_minute``
    plus any sentence rest. With an override every word gets
    ``duration_override / len(words)`` and rest is not applied.
    """
    if not words:
        raise TextVideoValidationError(EMPTY_TEXT_CODE, "no words to time")
    if not math.isfinite(rest_seconds) or rest_seconds < 0:
        raise TextVideoValidationError(
            INVALID_INPUT_CODE, "rest seconds must be non-negative"
        )
    seconds_per_word = compute_seconds_per_word(words_per_minute)

    if duration_override is not None:
        if not math.isfinite(duration_override) or duration_override <= 0:
            raise TextVideoValidationError(
                INVALID_INPUT_CODE, "duration override must be positive"
            )
        if rest_seconds > 0:
            LOGGER.warning(
                "text_to_video.input.rest_ignored: duration override fixes word "
                "timing; rest-seconds is not applied"
            )
        seconds_per_word = duration_override / len(words)

    boundaries = compute_boundaries(
        words, seconds_per_word, rest_seconds, duration_override
    )
    timed_words = tuple(
        TimedWord(
            word=word,
            start_seconds=boundaries[index],
            end_seconds=boundaries[index + 1],
            color=text_color,
            font_size=compute_word_font_size(word, font_size),
        )
        for index, word in enumerate(words)
    )
    return WordTiming(
        words=timed_words,
        seconds_per_word=seconds_per_word,
        duration_seconds=boundaries[-1],
    )


def format_seconds(value: float) -> str:
    """Format a time offset for a filter expression."""
    formatted = f"{value:.{TIME_DECIMALS}f}".rstrip("0")
    if formatted.endswith("."):
        formatted += "0"
    return formatted


def escape_characters(value: str, special_characters: str) -> str:
    """Backslash-escape every special character in value."""
    return "".join(
        f"\\{character}" if character in special_characters else character
        for character in value
    )


def escape_filter_value(value: str) -> str:
    """Escape text for a filter option inside a filtergraph.

    ffmpeg unescapes twice: once when splitting the graph into filters and
    once when splitting a filter's options.
    """
    return escape_characters(
        escape_characters(value, OPTION_SPECIAL_CHARACTERS), GRAPH_SPECIAL_CHARACTERS
    )


def build_enable_expression(start_seconds: float, end_seconds: float) -> str:
    """Build an ffmpeg timeline expression true while start <= t < end."""
    return f"gte(t,{format_seconds(start_seconds)})*lt(t,{format_seconds(end_seconds)})"


def build_background_fill_filter(background: ColorSpec) -> str:
    """Fill the whole canvas for the whole duration."""
    return f"drawbox=x=0:y=0:w=iw:h=ih:color={background.ffmpeg_value}:t=fill"


def build_focus_line_filters(secondary_color: ColorSpec) -> Tuple[str, ...]:
    """Build horizontal guides and the ticks that frame the word anchor."""
    color_value = secondary_color.ffmpeg_value
    return (
        f"drawbox=x=0:y=ih*0.2:w=iw:h={FOCUS_LINE_THICKNESS}:t=fill:color={color_value}",
        f"drawbox=x=0:y=ih*0.8:w=iw:h={FOCUS_LINE_THICKNESS}:t=fill:color={color_value}",
        f"drawbox=x=iw*0.4:y=ih*0.2:w={FOCUS_LINE_THICKNESS}:h={FOCUS_TICK_LENGTH}"
        f":t=fill:color={color_value}",
        f"drawbox=x=iw*0.4:y=ih*0.8-{FOCUS_TICK_LENGTH}:w={FOCUS_LINE_THICKNESS}"
        f":h={FOCUS_TICK_LENGTH}:t=fill:color={color_value}",
    )


def build_word_filter(timed_word: TimedWord, font_file: str) -> str:
    """Build the drawtext filter for one timed word."""
    return (
        f"drawtext=fontfile={escape_filter_value(font_file)}"
        f":text={escape_filter_value(timed_word.word)}"
        ":expansion=none"
        f":fontcolor={timed_word.color.ffmpeg_value}"
        f":fontsize={timed_word.font_size}"
        f":x={WORD_X_EXPRESSION}:y={WORD_Y_EXPRESSION}"
        f":enable='{build_enable_expression(timed_word.start_seconds, timed_word.end_seconds)}'"
    )


def format_wpm(words_per_minute: float) -> str:
    """Format a WPM rate without a trailing .0."""
    return f"{words_per_minute:g}"


def build_wpm_indicator_filter(
    words_per_minute: float, font_file: str, secondary_color: ColorSpec
) -> str:
    """Build the static WPM label in the lower-right corner."""
    label = f"{format_wpm(words_per_minute)} wpm"
    return (
        f"drawtext=fontfile={escape_filter_value(font_file)}"
        f":text={escape_filter_value(label)}"
        ":expansion=none"
        f":fontcolor={secondary_color.ffmpeg_value}"
        f":fontsize={WPM_INDICATOR_FONT_SIZE}"
        f":x={WPM_INDICATOR_X_EXPRESSION}:y={WPM_INDICATOR_Y_EXPRESSION}"
    )


def build_filter_chain(
    spec: RenderSpec,
    style: OverlayStyle,
    words_per_minute: float | None,
) -> str:
    """Compose every overlay for the shared canvas into one -vf argument.

    The background fill comes first, then focus lines, then one drawtext per
    word in order. The WPM label comes last and is skipped when
    ``words_per_minute`` is None.
    """
    filters = [build_background_fill_filter(spec.background)]
    if style.focus_lines:
        filters.extend(build_focus_line_filters(style.secondary_color))
    filters.extend(build_word_filter(timed_word, style.font_file) for timed_word in spec.words)
    if style.wpm_indicator and words_per_minute is not None:
        filters.append(
            build_wpm_indicator_filter(
                words_per_minute, style.font_file, style.secondary_color
            )
        )
    return ",".join(filters)
