from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterator, Sequence
from pathlib import Path

from .media_source import MediaSource, MediaSourceError, select_best
from .models import SELECTOR_KINDS, QualitySelector, StreamCatalog, Track, TrackKind, Variant


logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 256 * 1024


class AcquireError(RuntimeError):
    def __init__(self, track_kind: str, reason: str) -> None:
        super().__init__(f"{track_kind} track failed: {reason}")
        self.track_kind = track_kind
        self.reason = reason


class StreamAcquirer:
    """Drain one rendition of a media item into a file.

    Blocking calls (resolution, every chunk read and every chunk write) are
    handed to the loop's default executor one at a time, so concurrent
    acquisitions interleave at I/O boundaries.
    """

    def __init__(self, source: MediaSource, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        self.source = source
        self.chunk_size = chunk_size

    async def acquire(
        self,
        source_id: str,
        selector: QualitySelector,
        destination: Path,
        track: Track | None = None,
    ) -> Track:
        kind = SELECTOR_KINDS[selector]
        if track is None:
            track = Track(kind=kind, selector=selector, path=destination)

        try:
            _check_destination(destination)
            loop = asyncio.get_running_loop()
            catalog = await loop.run_in_executor(None, self.source.resolve_streams, source_id)
            track.variant = _pick_variant(catalog, kind)
            logger.info(
                "Selected %s format %s (%s, quality=%g, bitrate=%g)",
                kind,
                track.variant.format_id,
                track.variant.ext or "unknown",
                track.variant.quality,
                track.variant.bitrate,
            )

            track.state = "streaming"
            track.bytes_written = await self._transfer(track.variant, destination, kind)
        except (MediaSourceError, OSError) as exc:
            track.state = "failed"
            track.error = str(exc)
            raise AcquireError(kind, track.error) from exc

        track.state = "complete"
        logger.info("Downloaded %s track: %d bytes -> %s", kind, track.bytes_written, destination)
        return track

    async def _transfer(self, variant: Variant, destination: Path, kind: TrackKind) -> int:
        loop = asyncio.get_running_loop()
        chunks: Iterator[bytes] = self.source.open_stream(variant, self.chunk_size)
        bytes_written = 0
        try:
            out_file = destination.open("xb")
            try:
                with out_file:
                    while True:
                        chunk = await loop.run_in_executor(None, next, chunks, None)
                        if chunk is None:
                            break
                        if not chunk:
                            continue
                        await loop.run_in_executor(None, out_file.write, chunk)
                        bytes_written += len(chunk)
            except BaseException:
                discard_file(destination, kind)
                raise
        finally:
            _close_stream(chunks, kind)
        return bytes_written


async def acquire_tracks(
    acquirer: StreamAcquirer,
    source_id: str,
    tracks: Sequence[Track],
) -> list[BaseException | None]:
    """Run every acquisition concurrently and wait until all are terminal.

    A failure never cancels a sibling. Returns one entry per track: ``None``
    on success, the raised exception otherwise.
    """
    outcomes = await asyncio.gather(
        *(acquirer.acquire(source_id, track.selector, track.path, track) for track in tracks),
        return_exceptions=True,
    )
    return [outcome if isinstance(outcome, BaseException) else None for outcome in outcomes]


def discard_file(path: Path, kind: str) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as exc:
        logger.warning("Could not delete %s file %s: %s", kind, path, exc)
    else:
        logger.debug("Deleted %s file %s", kind, path)


def _close_stream(chunks: Iterator[bytes], kind: str) -> None:
    close = getattr(chunks, "close", None)
    if close is None:
        return
    try:
        close()
    except ValueError:
        # Cancelled while a read was still running in the executor thread.
        logger.debug("%s stream still busy in a worker thread, not closed", kind)


def _check_destination(destination: Path) -> None:
    if not destination.parent.is_dir():
        raise FileNotFoundError(f"directory does not exist: {destination.parent}")
    if destination.exists():
        raise FileExistsError(f"file already exists: {destination}")


def _pick_variant(catalog: StreamCatalog, kind: TrackKind) -> Variant:
    variants = catalog.video_variants if kind == "video" else catalog.audio_variants
    if not variants:
        raise MediaSourceError(f"no {kind} variants available")
    return select_best(variants)
