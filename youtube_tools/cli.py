from __future__ import annotations

import argparse
import asyncio
import dataclasses
import logging
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import IO

from . import __version__
from .config import DEFAULT_OUTPUT, ConfigError, load_config, resolve_output, validate_runtime
from .downloader import AcquireError
from .ffmpeg_pipeline import MergeError
from .media_source import MediaSource
from .runner import run_pipeline
from .workspace import WorkspaceError


logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="youtube-tools",
        description=(
            "Download the best video and audio streams of a URL and merge them "
            "into one MP4/MOV file, or stream the result to stdout."
        ),
    )
    parser.add_argument("source", help="Video URL (or any identifier yt-dlp understands).")
    parser.add_argument(
        "-o",
        "--output",
        nargs="?",
        const=DEFAULT_OUTPUT,
        default=None,
        help=(
            f"Output file (.mp4 or .mov). A bare -o writes {DEFAULT_OUTPUT}; '-' or no "
            "option streams mp4 to stdout, which must not be a terminal."
        ),
    )
    parser.add_argument("--cookies", type=Path, default=None, help="Netscape cookie file for yt-dlp.")
    parser.add_argument("--temp-dir", type=Path, default=None, help="Parent directory for the scratch workspace.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging.")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def setup_logging(level: str) -> None:
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    if root_logger.handlers:
        return

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root_logger.addHandler(handler)


def _isatty(stream: IO[bytes]) -> bool:
    isatty = getattr(stream, "isatty", None)
    return bool(isatty and isatty())


def main(
    argv: Sequence[str] | None = None,
    source: MediaSource | None = None,
    stdout: IO[bytes] | None = None,
) -> int:
    args = build_parser().parse_args(argv)

    config = load_config()
    overrides: dict[str, Path] = {}
    if args.temp_dir is not None:
        overrides["temp_root"] = args.temp_dir.expanduser()
    if args.cookies is not None:
        overrides["cookie_file"] = args.cookies.expanduser()
    if overrides:
        config = dataclasses.replace(config, **overrides)

    setup_logging("DEBUG" if args.verbose else config.log_level)

    sink = stdout if stdout is not None else sys.stdout.buffer
    try:
        target = resolve_output(args.output, stdout_isatty=_isatty(sink))
    except ConfigError as exc:
        logger.error("%s", exc)
        return EXIT_CONFIG

    runtime_errors = validate_runtime(config)
    if runtime_errors:
        for error in runtime_errors:
            logger.error("%s", error)
        return EXIT_CONFIG

    try:
        asyncio.run(
            run_pipeline(
                args.source,
                target,
                config,
                source=source,
                stdout=sink if target.to_stdout else None,
            )
        )
    except (WorkspaceError, AcquireError, MergeError) as exc:
        logger.error("%s", exc)
        return EXIT_FAILURE

    return EXIT_OK
