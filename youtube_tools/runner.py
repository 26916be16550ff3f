from __future__ import annotations

import logging
from pathlib import Path
from typing import IO, Callable

from .downloader import StreamAcquirer, acquire_tracks, discard_file
from .ffmpeg_pipeline import merge
from .media_source import MediaSource, YtDlpMediaSource
from .models import Config, OutputTarget, Track
from .workspace import workspace


logger = logging.getLogger(__name__)

LogCallback = Callable[[str], None]


def build_tracks(work_dir: Path) -> list[Track]:
    # Video first: when both tracks fail, the first failure in this order is reported.
    return [
        Track(kind="video", selector="highest-video", path=work_dir / "video.track"),
        Track(kind="audio", selector="highest-audio", path=work_dir / "audio.track"),
    ]


async def run_pipeline(
    source_id: str,
    target: OutputTarget,
    config: Config,
    source: MediaSource | None = None,
    stdout: IO[bytes] | int | None = None,
    log_cb: LogCallback | None = None,
) -> Path | None:
    """Download both tracks of ``source_id`` concurrently and mux them into ``target``.

    The workspace is removed on every exit path. Returns the output path, or
    ``None`` when the result was streamed to standard output.
    """
    if source is None:
        source = YtDlpMediaSource(
            cookie_file=config.cookie_file,
            connect_timeout_sec=config.connect_timeout_sec,
            read_timeout_sec=config.read_timeout_sec,
        )
    acquirer = StreamAcquirer(source, chunk_size=config.chunk_size_kb * 1024)

    with workspace(config.temp_root) as work_dir:
        logger.debug("Workspace for %s: %s", source_id, work_dir)
        tracks = build_tracks(work_dir)
        _log(log_cb, f"Downloading from: {source_id}")
        outcomes = await acquire_tracks(acquirer, source_id, tracks)

        failures = [outcome for outcome in outcomes if outcome is not None]
        if failures:
            for track in tracks:
                discard_file(track.path, track.kind)
            raise failures[0]

        _log(log_cb, "Video and audio downloaded successfully.")
        _log(log_cb, "Merging video and audio...")
        video, audio = tracks
        result = await merge(video.path, audio.path, target, work_dir, config, stdout=stdout)

        if result is None:
            _log(log_cb, "Merged video and audio and sent to stdout successfully!")
        else:
            _log(log_cb, f"Merged video and audio into {result}")
        return result


def _log(log_cb: LogCallback | None, message: str) -> None:
    logger.info(message)
    if log_cb:
        log_cb(message)
