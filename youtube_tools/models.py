from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal


TrackKind = Literal["video", "audio"]
QualitySelector = Literal["highest-video", "highest-audio"]
TrackState = Literal["pending", "streaming", "complete", "failed"]
Container = Literal["mp4", "mov"]

SELECTOR_KINDS: dict[str, TrackKind] = {
    "highest-video": "video",
    "highest-audio": "audio",
}


@dataclass(frozen=True)
class Config:
    ffmpeg_path: str = "ffmpeg"
    temp_root: Path | None = None
    audio_bitrate_kbps: int = 192
    chunk_size_kb: int = 256
    connect_timeout_sec: int = 10
    read_timeout_sec: int = 30
    ffmpeg_loglevel: str = "warning"
    cookie_file: Path | None = None
    log_level: str = "INFO"


@dataclass(frozen=True)
class Variant:
    format_id: str
    url: str
    kind: TrackKind
    quality: float
    bitrate: float = 0.0
    ext: str = ""
    http_headers: dict[str, str] = field(default_factory=dict, compare=False)


@dataclass(frozen=True)
class StreamCatalog:
    video_variants: tuple[Variant, ...]
    audio_variants: tuple[Variant, ...]


@dataclass
class Track:
    kind: TrackKind
    selector: QualitySelector
    path: Path
    state: TrackState = "pending"
    error: str = ""
    variant: Variant | None = None
    bytes_written: int = 0


@dataclass(frozen=True)
class OutputTarget:
    container: Container
    path: Path | None = None

    @property
    def to_stdout(self) -> bool:
        return self.path is None
