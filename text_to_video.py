#!/usr/bin/env -S uv run
# /// script
# requires-python = ">=3.11"
# dependencies = [
#   "jieba>=0.42",
#   "pillow>=10"
# ]
# ///
"""Render text word-by-word into a video through ffmpeg drawtext filters."""

from __future__ import annotations

import argparse
import logging
import os
import platform
import shutil
import subprocess
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from PIL import ImageFont

from domain.word_video import (
    FONT_CODE,
    INPUT_FILE_CODE,
    INVALID_CONFIG_CODE,
    INVALID_INPUT_CODE,
    OUTPUT_EXISTS_CODE,
    OverlayStyle,
    RenderSpec,
    TextVideoValidationError,
    parse_color,
    tokenize_words,
)
from service.render_plan import build_filter_chain, build_word_timing
from service.user_config import load_user_config, resolve_setting

LOGGER = logging.getLogger("text_to_video")

FFMPEG_NOT_FOUND_CODE = "text_to_video.ffmpeg.not_found"
FFMPEG_EXEC_CODE = "text_to_video.ffmpeg.exec_error"
FFMPEG_PROCESS_CODE = "text_to_video.ffmpeg.process_failed"
DEFAULT_OUTPUT_FILE = "output.mp4"
DEFAULT_WPM = 300.0
DEFAULT_TEXT_COLOR = "#ffffee"
DEFAULT_BACKGROUND = "black"
DEFAULT_SECONDARY_COLOR = "#1a1911"
DEFAULT_REST_SECONDS = 0.0
DEFAULT_FONT_SIZE = 100
DEFAULT_WIDTH = 1920
DEFAULT_HEIGHT = 1080
DEFAULT_FPS = 30
H264_CODEC = "libx264"
H264_PIXEL_FORMAT = "yuv420p"
H264_CRF = "23"
H264_PRESET = "ultrafast"
H264_TUNE = "stillimage"
LINUX_FONT_CANDIDATES = (
    "/usr/share/fonts/opentype/noto/NotoSansCJK-Regular.ttc",
    "/usr/share/fonts/truetype/droid/DroidSansFallbackFull.ttf",
    "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
)
MACOS_FONT_CANDIDATES = (
    "/Library/Fonts/Arial Unicode.ttc",
    "/System/Library/Fonts/STHeiti Medium.ttc",
    "/System/Library/Fonts/STHeiti Light.ttc",
)


class EncoderPipelineError(RuntimeError):
    """ffmpeg failure with a stable error code and optional exit status."""

    def __init__(self, code: str, message: str, exit_code: int | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.exit_code = exit_code


@dataclass(frozen=True)
class RenderRequest:
    """Parsed CLI request ready for encoding."""

    spec: RenderSpec
    style: OverlayStyle
    words_per_minute: float
    seconds_per_word: float
    duration_override: bool


def configure_logging() -> None:
    """Configure logging for CLI output."""
    logging.basicConfig(level=logging.INFO, format="%(message)s")


def ensure_ffmpeg_available() -> None:
    """Ensure ffmpeg is installed and executable."""
    ffmpeg_path = shutil.which("ffmpeg")
    if not ffmpeg_path:
        raise EncoderPipelineError(
            FFMPEG_NOT_FOUND_CODE,
            "ffmpeg not on PATH; install it from https://ffmpeg.org/download.html",
        )
    try:
        result = subprocess.run(
            [ffmpeg_path, "-version"],
            stdout=subprocess.PIPE,
            stderr=subprocess.DEVNULL,
            text=True,
            check=True,
        )
    except (OSError, subprocess.CalledProcessError) as exc:
        raise EncoderPipelineError(
            FFMPEG_EXEC_CODE, "ffmpeg exists but could not be executed"
        ) from exc
    version_lines = result.stdout.splitlines()
    if version_lines:
        LOGGER.info("ffmpeg found: %s", version_lines[0])


def read_input_text(input_text: str | None, input_text_file: str | None) -> str:
    """Return the text to render from the flag, a UTF-8 file or piped stdin."""
    if input_text is not None:
        return input_text

    if input_text_file is not None:
        text_path = Path(input_text_file)
        try:
            raw_text = text_path.read_bytes()
        except OSError as exc:
            raise TextVideoValidationError(
                INPUT_FILE_CODE, f"cannot read input text file {text_path}: {exc.strerror}"
            ) from exc
        try:
            return raw_text.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise TextVideoValidationError(
                INPUT_FILE_CODE,
                f"{text_path} is not UTF-8 (bad byte at offset {exc.start})",
            ) from exc

    if sys.stdin is None or sys.stdin.isatty():
        raise TextVideoValidationError(
            INVALID_INPUT_CODE,
            'no input text; use --input-text, --input-text-file or echo "text" | text_to_video.py',
        )
    piped_text = sys.stdin.buffer.read().decode("utf-8", errors="replace")
    if not piped_text.strip():
        raise TextVideoValidationError(INVALID_INPUT_CODE, "the piped input was empty")
    return piped_text


def find_default_font() -> str:
    """Return the first installed font suited to the host OS."""
    system_name = platform.system()
    if system_name == "Windows":
        windows_dir = os.environ.get("WINDIR", "C:\\Windows").replace("\\", "/")
        candidates: Sequence[str] = (f"{windows_dir}/Fonts/msyh.ttc",)
    elif system_name == "Darwin":
        candidates = MACOS_FONT_CANDIDATES
    elif system_name == "Linux":
        candidates = LINUX_FONT_CANDIDATES
    else:
        raise TextVideoValidationError(
            FONT_CODE, f"unsupported OS {system_name!r}; provide --font-file"
        )

    for candidate in candidates:
        if os.path.isfile(candidate):
            return candidate
    raise TextVideoValidationError(
        FONT_CODE, f"no suitable font found on {system_name}; provide --font-file"
    )


def resolve_font_file(font_file: str | None, font_size: int) -> str:
    """Resolve and load-check the font used by every drawtext filter."""
    resolved = font_file if font_file is not None else find_default_font()
    if not os.path.isfile(resolved):
        raise TextVideoValidationError(FONT_CODE, f"font file not found: {resolved}")
    try:
        ImageFont.truetype(resolved, size=font_size, layout_engine=ImageFont.Layout.BASIC)
    except OSError as exc:
        raise TextVideoValidationError(
            FONT_CODE, f"failed to load font {resolved}: {str(exc).strip()}"
        ) from exc
    return resolved


def build_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="text_to_video.py",
        description="Convert text to a word-by-word video using ffmpeg.",
    )
    input_group = parser.add_mutually_exclusive_group()
    input_group.add_argument("--input-text", "-t", help="text to render (default: stdin)")
    input_group.add_argument("--input-text-file", help="UTF-8 text file to render")
    parser.add_argument("--output-video-file", "-o", default=DEFAULT_OUTPUT_FILE)
    parser.add_argument("--wpm", "-w", type=float, default=None, help="words per minute (default: 300)")
    parser.add_argument("--duration-seconds", type=float, default=None)
    parser.add_argument(
        "--rest-seconds",
        type=float,
        default=None,
        help="extra hold after sentence-ending words (default: 0)",
    )
    parser.add_argument("--text-color", default=None, help="default: #ffffee")
    parser.add_argument("--background", default=None, help="default: black")
    parser.add_argument("--secondary-color", default=None, help="default: #1a1911")
    parser.add_argument("--font-size", type=int, default=None, help="default: 100")
    parser.add_argument("--font-file", default=None)
    parser.add_argument("--width", type=int, default=DEFAULT_WIDTH)
    parser.add_argument("--height", type=int, default=DEFAULT_HEIGHT)
    parser.add_argument("--fps", type=int, default=DEFAULT_FPS)
    parser.add_argument("--focus-lines", action=argparse.BooleanOptionalAction, default=None)
    parser.add_argument("--wpm-indicator", action=argparse.BooleanOptionalAction, default=None)
    parser.add_argument("--overwrite", action="store_true", default=None)
    parser.add_argument("--config", default=None, help="default: ~/.text_to_video.toml")
    return parser


def parse_args(argv: Sequence[str]) -> RenderRequest:
    """Parse CLI arguments into a RenderRequest."""
    parsed = build_parser().parse_args(argv)
    user_config = load_user_config(parsed.config)

    words_per_minute = resolve_setting(parsed.wpm, user_config.wpm, DEFAULT_WPM)
    rest_seconds = resolve_setting(
        parsed.rest_seconds, user_config.rest_seconds, DEFAULT_REST_SECONDS
    )
    font_size = resolve_setting(parsed.font_size, user_config.font_size, DEFAULT_FONT_SIZE)
    if font_size <= 0:
        raise TextVideoValidationError(INVALID_CONFIG_CODE, "font size must be positive")
    text_color = parse_color(
        resolve_setting(parsed.text_color, user_config.text_color, DEFAULT_TEXT_COLOR)
    )
    background = parse_color(
        resolve_setting(parsed.background, user_config.background, DEFAULT_BACKGROUND)
    )
    secondary_color = parse_color(
        resolve_setting(
            parsed.secondary_color, user_config.secondary_color, DEFAULT_SECONDARY_COLOR
        )
    )
    focus_lines = resolve_setting(parsed.focus_lines, user_config.focus_lines, True)
    wpm_indicator = resolve_setting(parsed.wpm_indicator, user_config.wpm_indicator, True)
    overwrite = resolve_setting(parsed.overwrite, user_config.overwrite, False)

    if os.path.exists(parsed.output_video_file) and not overwrite:
        raise TextVideoValidationError(
            OUTPUT_EXISTS_CODE,
            f"output file exists: {parsed.output_video_file}; pass --overwrite to replace it",
        )

    words = tokenize_words(read_input_text(parsed.input_text, parsed.input_text_file))

    timing = build_word_timing(
        words,
        words_per_minute,
        text_color,
        font_size,
        duration_override=parsed.duration_seconds,
        rest_seconds=rest_seconds,
    )
    font_file = resolve_font_file(
        resolve_setting(parsed.font_file, user_config.font_file, None), font_size
    )

    spec = RenderSpec(
        words=timing.words,
        background=background,
        output_video_file=parsed.output_video_file,
        duration_seconds=timing.duration_seconds,
        width=parsed.width,
        height=parsed.height,
        fps=parsed.fps,
        overwrite=overwrite,
    )
    style = OverlayStyle(
        font_file=font_file,
        secondary_color=secondary_color,
        focus_lines=focus_lines,
        wpm_indicator=wpm_indicator,
    )
    return RenderRequest(
        spec=spec,
        style=style,
        words_per_minute=words_per_minute,
        seconds_per_word=timing.seconds_per_word,
        duration_override=parsed.duration_seconds is not None,
    )


def build_ffmpeg_command(spec: RenderSpec, filter_chain: str) -> list[str]:
    """Build the ffmpeg invocation for a RenderSpec and its filter chain."""
    duration_value = f"{spec.duration_seconds:.6f}"
    return [
        "ffmpeg",
        "-hide_banner",
        "-loglevel",
        "error",
        "-f",
        "lavfi",
        "-i",
        f"color=c={spec.background.ffmpeg_value}:s={spec.width}x{spec.height}"
        f":d={duration_value}:r={spec.fps}",
        "-vf",
        filter_chain,
        "-map",
        "0:v:0",
        "-t",
        duration_value,
        "-c:v",
        H264_CODEC,
        "-preset",
        H264_PRESET,
        "-crf",
        H264_CRF,
        "-tune",
        H264_TUNE,
        "-pix_fmt",
        H264_PIXEL_FORMAT,
        "-movflags",
        "+faststart",
        "-y" if spec.overwrite else "-n",
        spec.output_video_file,
    ]


def run_ffmpeg(command: Sequence[str]) -> None:
    """Run ffmpeg to completion and raise on a non-zero exit."""
    try:
        result = subprocess.run(
            list(command),
            stdout=subprocess.DEVNULL,
            stderr=subprocess.PIPE,
            text=True,
            check=False,
        )
    except FileNotFoundError as exc:
        raise EncoderPipelineError(FFMPEG_NOT_FOUND_CODE, "ffmpeg not found") from exc

    if result.returncode != 0:
        stderr_text = (result.stderr or "").strip()
        raise EncoderPipelineError(
            FFMPEG_PROCESS_CODE,
            f"ffmpeg failed with exit code {result.returncode}. {stderr_text}",
            exit_code=result.returncode,
        )


def render_video(request: RenderRequest) -> None:
    """Build the filter chain for a request and encode it."""
    filter_chain = build_filter_chain(
        request.spec,
        request.style,
        None if request.duration_override else request.words_per_minute,
    )
    run_ffmpeg(build_ffmpeg_command(request.spec, filter_chain))


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entrypoint."""
    configure_logging()
    started_at = time.perf_counter()

    try:
        request = parse_args(sys.argv[1:] if argv is None else argv)
        ensure_ffmpeg_available()
        LOGGER.info("Using font: %s", request.style.font_file)
        LOGGER.info("Creating video: %s", request.spec.output_video_file)
        LOGGER.info(
            "Words: %d | WPM: %g | Duration per word: %.2fs",
            len(request.spec.words),
            request.words_per_minute,
            request.seconds_per_word,
        )
        LOGGER.info("Rendering video...")
        render_video(request)
        LOGGER.info(
            "Video created: %s in %.2fs (total video: %.2fs)",
            request.spec.output_video_file,
            time.perf_counter() - started_at,
            request.spec.duration_seconds,
        )
        return 0
    except TextVideoValidationError as exc:
        LOGGER.error("%s: %s", exc.code, str(exc).strip())
        return 1
    except EncoderPipelineError as exc:
        LOGGER.error("%s: %s", exc.code, str(exc).strip())
        if exc.exit_code is not None and exc.exit_code < 0:
            return 128 - exc.exit_code
        return exc.exit_code or 1
    except Exception as exc:
        LOGGER.error("text_to_video.unhandled_error: %s", str(exc).strip())
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
