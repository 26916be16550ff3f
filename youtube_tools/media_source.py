from __future__ import annotations

import logging
from collections.abc import Iterator, Sequence
from pathlib import Path
from typing import Any, Protocol

import requests
from yt_dlp import YoutubeDL
from yt_dlp.utils import YoutubeDLError

from .models import StreamCatalog, TrackKind, Variant


logger = logging.getLogger(__name__)

DIRECT_PROTOCOLS = frozenset({"http", "https"})

YTDL_BASE_OPTS: dict[str, Any] = {
    "quiet": True,
    "no_warnings": True,
    "noplaylist": True,
    "skip_download": True,
}


class MediaSourceError(RuntimeError):
    pass


class MediaSource(Protocol):
    def resolve_streams(self, source_id: str) -> StreamCatalog: ...

    def open_stream(self, variant: Variant, chunk_size: int) -> Iterator[bytes]: ...


def select_best(variants: Sequence[Variant]) -> Variant:
    """Return the highest quality variant, using total bitrate to break ties."""
    if not variants:
        raise MediaSourceError("no variants available")
    return max(variants, key=lambda item: (item.quality, item.bitrate))


def _as_number(raw: object) -> float:
    try:
        value = float(raw)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0.0
    return value if value > 0 else 0.0


def _classify(fmt: dict[str, Any]) -> TrackKind | None:
    vcodec = fmt.get("vcodec") or "none"
    acodec = fmt.get("acodec") or "none"
    if vcodec != "none" and acodec == "none":
        return "video"
    if acodec != "none" and vcodec == "none":
        return "audio"
    return None


def _to_variant(fmt: dict[str, Any]) -> Variant | None:
    url = fmt.get("url")
    if not url or fmt.get("protocol", "https") not in DIRECT_PROTOCOLS:
        return None

    kind = _classify(fmt)
    if kind is None:
        return None

    total = _as_number(fmt.get("tbr"))
    if kind == "video":
        quality = _as_number(fmt.get("height"))
        bitrate = total or _as_number(fmt.get("vbr"))
    else:
        quality = _as_number(fmt.get("abr")) or total
        bitrate = total or quality

    return Variant(
        format_id=str(fmt.get("format_id", "")),
        url=url,
        kind=kind,
        quality=quality,
        bitrate=bitrate,
        ext=str(fmt.get("ext") or ""),
        http_headers=dict(fmt.get("http_headers") or {}),
    )


def catalog_from_info(info: dict[str, Any]) -> StreamCatalog:
    video: list[Variant] = []
    audio: list[Variant] = []
    for fmt in info.get("formats") or []:
        variant = _to_variant(fmt)
        if variant is None:
            continue
        (video if variant.kind == "video" else audio).append(variant)
    return StreamCatalog(video_variants=tuple(video), audio_variants=tuple(audio))


class YtDlpMediaSource:
    """Resolve renditions with yt-dlp and stream them over HTTP with requests."""

    def __init__(
        self,
        cookie_file: Path | None = None,
        connect_timeout_sec: float = 10,
        read_timeout_sec: float = 30,
        session: requests.Session | None = None,
    ) -> None:
        self.cookie_file = cookie_file
        self.timeout = (connect_timeout_sec, read_timeout_sec)
        self.session = session or requests.Session()

    def _ytdl_options(self) -> dict[str, Any]:
        options = dict(YTDL_BASE_OPTS)
        if self.cookie_file is not None:
            options["cookiefile"] = str(self.cookie_file)
        return options

    def resolve_streams(self, source_id: str) -> StreamCatalog:
        try:
            with YoutubeDL(self._ytdl_options()) as ydl:
                info = ydl.extract_info(source_id, download=False)
        except YoutubeDLError as exc:
            raise MediaSourceError(f"cannot resolve {source_id}: {exc}") from exc

        if not info:
            raise MediaSourceError(f"no media information for {source_id}")

        catalog = catalog_from_info(info)
        logger.debug(
            "Resolved %s: %d video and %d audio variants",
            source_id,
            len(catalog.video_variants),
            len(catalog.audio_variants),
        )
        return catalog

    def open_stream(self, variant: Variant, chunk_size: int) -> Iterator[bytes]:
        try:
            with self.session.get(
                variant.url,
                headers=variant.http_headers,
                stream=True,
                timeout=self.timeout,
                allow_redirects=True,
            ) as response:
                response.raise_for_status()
                for chunk in response.iter_content(chunk_size=chunk_size):
                    if chunk:
                        yield chunk
        except requests.RequestException as exc:
            raise MediaSourceError(f"stream {variant.format_id} failed: {exc}") from exc
