from __future__ import annotations

import os
import shutil
from pathlib import Path

from .models import Config, Container, OutputTarget


DEFAULT_OUTPUT = "output.mp4"
STDOUT_MARKER = "-"

CONTAINER_BY_EXTENSION: dict[str, Container] = {
    ".mp4": "mp4",
    ".mov": "mov",
}


class ConfigError(RuntimeError):
    pass


def _read_positive_int(env_name: str, default: int) -> int:
    raw = os.getenv(env_name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def _read_optional_path(env_name: str) -> Path | None:
    raw = os.getenv(env_name, "").strip()
    if not raw:
        return None
    return Path(raw).expanduser()


def load_config() -> Config:
    return Config(
        ffmpeg_path=os.getenv("YTT_FFMPEG_PATH", "ffmpeg").strip() or "ffmpeg",
        temp_root=_read_optional_path("YTT_TEMP_ROOT"),
        audio_bitrate_kbps=_read_positive_int("YTT_AUDIO_BITRATE_KBPS", 192),
        chunk_size_kb=_read_positive_int("YTT_CHUNK_SIZE_KB", 256),
        connect_timeout_sec=_read_positive_int("YTT_CONNECT_TIMEOUT_SEC", 10),
        read_timeout_sec=_read_positive_int("YTT_READ_TIMEOUT_SEC", 30),
        ffmpeg_loglevel=os.getenv("YTT_FFMPEG_LOGLEVEL", "warning").strip() or "warning",
        cookie_file=_read_optional_path("YTT_COOKIE_FILE"),
        log_level=os.getenv("YTT_LOG_LEVEL", "INFO").strip().upper() or "INFO",
    )


def validate_runtime(config: Config) -> list[str]:
    errors: list[str] = []
    if shutil.which(config.ffmpeg_path) is None:
        errors.append(f"ffmpeg executable not found: {config.ffmpeg_path}")
    if config.temp_root is not None and not config.temp_root.is_dir():
        errors.append(f"temp root is not a directory: {config.temp_root}")
    if config.cookie_file is not None and not config.cookie_file.is_file():
        errors.append(f"cookie file not found: {config.cookie_file}")
    return errors


def container_for_path(path: Path) -> Container:
    """Map an output file's extension to the muxer format ffmpeg should use."""
    container = CONTAINER_BY_EXTENSION.get(path.suffix.lower())
    if container is None:
        supported = ", ".join(sorted(CONTAINER_BY_EXTENSION))
        raise ConfigError(
            f"unsupported output extension {path.suffix or '(none)'!r} for {path}; "
            f"expected one of: {supported}"
        )
    return container


def resolve_output(output: str | None, stdout_isatty: bool) -> OutputTarget:
    """Decide where the merged container goes.

    ``None`` means no ``--output`` was given: the container is streamed to
    standard output, which is refused when standard output is a terminal.
    ``"-"`` requests standard output explicitly.
    """
    if output is None or output == STDOUT_MARKER:
        if stdout_isatty:
            raise ConfigError(
                "refusing to write binary video data to a terminal; "
                "pipe the output to a file or another process, or pass --output"
            )
        return OutputTarget(container="mp4")

    path = Path(output).expanduser()
    container = container_for_path(path)
    if path.is_dir():
        raise ConfigError(f"output path is a directory: {path}")
    if not path.parent.is_dir():
        raise ConfigError(f"output directory does not exist: {path.parent}")
    return OutputTarget(container=container, path=path)
