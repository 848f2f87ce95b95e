"""Unit tests for word timing and filter-chain construction."""

from __future__ import annotations

import logging
from typing import Any, Sequence

import pytest

from domain.word_video import (
    EMPTY_TEXT_CODE,
    INVALID_INPUT_CODE,
    OverlayStyle,
    RenderSpec,
    TextVideoValidationError,
    parse_color,
)
from service.render_plan import (
    build_enable_expression,
    build_filter_chain,
    build_word_timing,
    escape_filter_value,
    format_seconds,
)

WHITE = parse_color("white")


def windows_of(
    words: Sequence[str], words_per_minute: float, **kwargs: Any
) -> list[tuple[float, float]]:
    """Return (start, end) pairs for a timing request."""
    timing = build_word_timing(words, words_per_minute, WHITE, 100, **kwargs)
    return [(word.start_seconds, word.end_seconds) for word in timing.words]


def build_spec(
    words: Sequence[str], words_per_minute: float = 300.0, **kwargs: Any
) -> RenderSpec:
    """Build a RenderSpec for filter-chain tests."""
    timing = build_word_timing(words, words_per_minute, WHITE, 100, **kwargs)
    return RenderSpec(
        words=timing.words,
        background=parse_color("black"),
        output_video_file="out.mp4",
        duration_seconds=timing.duration_seconds,
        width=1920,
        height=1080,
        fps=30,
        overwrite=True,
    )


def test_two_words_at_300_wpm() -> None:
    """Each word gets 0.2 seconds at 300 wpm."""
    timing = build_word_timing(("Hello", "World"), 300, WHITE, 100)

    assert timing.seconds_per_word == pytest.approx(0.2)
    assert [(w.word, w.start_seconds, w.end_seconds) for w in timing.words] == [
        ("Hello", 0.0, pytest.approx(0.2)),
        ("World", pytest.approx(0.2), pytest.approx(0.4)),
    ]
    assert timing.duration_seconds == pytest.approx(0.4)


def test_duration_override_splits_evenly() -> None:
    """An override divides the duration evenly across words."""
    timing = build_word_timing(("A", "B", "C"), 300, WHITE, 100, duration_override=9.0)

    assert timing.seconds_per_word == 3.0
    assert [(w.start_seconds, w.end_seconds) for w in timing.words] == [
        (0.0, 3.0),
        (3.0, 6.0),
        (6.0, 9.0),
    ]
    assert timing.duration_seconds == 9.0


@pytest.mark.parametrize("word_count", [1, 2, 3, 7, 10, 333])
@pytest.mark.parametrize("words_per_minute", [1, 60, 137, 300, 999.5])
def test_windows_cover_wpm_duration(word_count: int, words_per_minute: float) -> None:
    """Windows are ordered, contiguous and cover [0, N * 60 / R)."""
    words = tuple(f"w{index}" for index in range(word_count))
    windows = windows_of(words, words_per_minute)

    assert windows[0][0] == 0.0
    for (start, end), (next_start, _) in zip(windows, windows[1:]):
        assert start < end
        assert end == next_start
    assert windows[-1][1] == pytest.approx(word_count * 60 / words_per_minute)


@pytest.mark.parametrize("word_count", [1, 3, 7, 11])
@pytest.mark.parametrize("duration", [0.1, 1.0, 9.0, 10.0 / 3.0])
def test_override_covers_exact_duration(word_count: int, duration: float) -> None:
    """The last window ends exactly at the override."""
    words = tuple(f"w{index}" for index in range(word_count))
    windows = windows_of(words, 300, duration_override=duration)

    for (start, end), (next_start, _) in zip(windows, windows[1:]):
        assert end == next_start
        assert end - start == pytest.approx(duration / word_count)
    assert windows[-1][1] == duration


def test_rest_extends_sentence_endings() -> None:
    """Sentence-ending words hold for the extra rest time."""
    windows = windows_of(("One", "two.", "Three", "four!"), 60, rest_seconds=0.5)

    assert windows == [
        (0.0, 1.0),
        (1.0, 2.5),
        (2.5, 3.5),
        (3.5, 5.0),
    ]


def test_rest_skips_first_word() -> None:
    """The first word never receives a rest."""
    windows = windows_of(("Stop.", "go"), 60, rest_seconds=0.5)
    assert windows == [(0.0, 1.0), (1.0, 2.0)]


def test_rest_ignored_with_override(caplog: pytest.LogCaptureFixture) -> None:
    """An override wins over rest and logs a warning."""
    with caplog.at_level(logging.WARNING, logger="text_to_video"):
        windows = windows_of(("A.", "B."), 300, duration_override=2.0, rest_seconds=1.0)

    assert windows == [(0.0, 1.0), (1.0, 2.0)]
    assert "rest_ignored" in caplog.text


def test_long_words_shrink() -> None:
    """Words past 50 characters use 80 percent of the font size."""
    timing = build_word_timing(("short", "x" * 51), 300, WHITE, 100)
    assert [word.font_size for word in timing.words] == [100, 80]


def test_empty_words_fail() -> None:
    """An empty word list is invalid input."""
    with pytest.raises(TextVideoValidationError) as excinfo:
        build_word_timing((), 300, WHITE, 100)
    assert excinfo.value.code == EMPTY_TEXT_CODE


@pytest.mark.parametrize("words_per_minute", [0, -1, -300.5, float("nan"), float("inf")])
def test_non_positive_wpm_fails(words_per_minute: float) -> None:
    """Zero, negative or non-finite rates are invalid input."""
    with pytest.raises(TextVideoValidationError) as excinfo:
        build_word_timing(("a",), words_per_minute, WHITE, 100)
    assert excinfo.value.code == INVALID_INPUT_CODE


@pytest.mark.parametrize(
    ("override", "rest"), [
        (0.0, 0.0),
        (-1.0, 0.0),
        (float("nan"), 0.0),
        (float("inf"), 0.0),
        (None, -0.1),
        (None, float("nan")),
    ]
)
def test_non_positive_duration_or_negative_rest_fails(
    override: float | None, rest: float
) -> None:
    """Invalid overrides and rests are invalid input."""
    with pytest.raises(TextVideoValidationError) as excinfo:
        build_word_timing(("a",), 300, WHITE, 100, duration_override=override, rest_seconds=rest)
    assert excinfo.value.code == INVALID_INPUT_CODE


def test_format_seconds() -> None:
    """Time offsets drop trailing zeros but stay decimal."""
    assert format_seconds(0.0) == "0.0"
    assert format_seconds(0.2) == "0.2"
    assert format_seconds(3.0) == "3.0"
    assert format_seconds(1.0 / 3.0) == "0.333333"


def test_enable_expression_is_half_open() -> None:
    """The enable expression includes the start and excludes the end."""
    assert build_enable_expression(0.2, 0.4) == "gte(t,0.2)*lt(t,0.4)"


def test_escape_filter_value() -> None:
    """Escape option and graph special characters."""
    assert escape_filter_value("it's 5:00, \\o/") == r"it\\\'s 5\\:00\, \\\\o/"


def test_filter_chain_order_and_boundaries() -> None:
    """Background fill, focus lines, words in order, then the WPM label."""
    spec = build_spec(("Hello", "World"))
    style = OverlayStyle(
        font_file="/fonts/Sans.ttf",
        secondary_color=parse_color("#1a1911"),
        focus_lines=True,
        wpm_indicator=True,
    )

    filters = build_filter_chain(spec, style, 300.0).split(",drawtext=")
    head = filters[0].split(",")

    assert head[0] == "drawbox=x=0:y=0:w=iw:h=ih:color=0x000000:t=fill"
    assert len(head) == 5
    assert all("color=0x1A1911" in part for part in head[1:])
    assert len(filters) == 4
    assert "text=Hello:" in filters[1]
    assert "enable='gte(t,0.0)*lt(t,0.2)'" in filters[1]
    assert "fontcolor=0xFFFFFF" in filters[1]
    assert "fontfile=/fonts/Sans.ttf:" in filters[1]
    assert "text=World:" in filters[2]
    assert "enable='gte(t,0.2)*lt(t,0.4)'" in filters[2]
    assert "text=300 wpm:" in filters[3]
    assert "enable=" not in filters[3]


def test_filter_chain_optional_overlays() -> None:
    """Focus lines and the WPM label can be turned off."""
    spec = build_spec(("A", "B", "C"), duration_override=9.0)
    style = OverlayStyle(
        font_file="/fonts/Sans.ttf",
        secondary_color=parse_color("gray"),
        focus_lines=False,
        wpm_indicator=True,
    )

    chain = build_filter_chain(spec, style, None)

    assert chain.count("drawbox=") == 1
    assert chain.count("drawtext=") == 3
    assert "wpm" not in chain
    assert "enable='gte(t,6.0)*lt(t,9.0)'" in chain


def test_adjacent_boundaries_format_identically() -> None:
    """Adjacent words share the same boundary text so no gap can appear."""
    spec = build_spec(tuple(f"w{index}" for index in range(7)), words_per_minute=137)
    style = OverlayStyle("/fonts/Sans.ttf", WHITE, False, False)
    chain = build_filter_chain(spec, style, 137.0)

    enables = [part.split("enable='")[1].rstrip("'") for part in chain.split(",drawtext=")[1:]]
    ends = [expression.split("lt(t,")[1].rstrip(")") for expression in enables]
    starts = [expression.split("gte(t,")[1].split(")")[0] for expression in enables]
    assert starts[1:] == ends[:-1]
