from __future__ import annotations

import random
import sys
import threading
from collections.abc import Callable, Iterable, Iterator
from pathlib import Path

import pytest

from youtube_tools.models import Config, StreamCatalog, Variant


FAKE_FFMPEG_SOURCE = '''
import json
import os
import sys

args = sys.argv[1:]
record = os.environ.get("FAKE_FFMPEG_RECORD")
if record:
    with open(record, "a") as handle:
        handle.write(json.dumps(args) + "\\n")

inputs = [args[i + 1] for i, arg in enumerate(args) if arg == "-i"]
output = args[-1]
for number, path in enumerate(inputs):
    sys.stderr.write("Input #%d, fake, from '%s':\\n" % (number, path))
long_line = int(os.environ.get("FAKE_FFMPEG_LONG_LINE", "0"))
if long_line:
    sys.stderr.write("x" * long_line + "\\n")
sys.stderr.flush()

exit_code = int(os.environ.get("FAKE_FFMPEG_EXIT", "0"))
parts = []
for path in inputs:
    with open(path, "rb") as handle:
        parts.append(handle.read())
payload = b"MERGED:" + b"|".join(parts)

if output == "pipe:1":
    sys.stdout.buffer.write(payload)
    sys.stdout.buffer.flush()
else:
    with open(output, "wb") as handle:
        handle.write(payload if exit_code == 0 else payload[:4])

if exit_code:
    sys.stderr.write("Error: fake failure\\n")
sys.exit(exit_code)
'''


StreamFactory = Callable[[], Iterator[bytes]]


def video_variant(height: int, bitrate: float = 0.0) -> Variant:
    return Variant(
        format_id=f"v{height}",
        url=f"https://media.example/v{height}",
        kind="video",
        quality=height,
        bitrate=bitrate or height * 4.0,
        ext="webm",
    )


def audio_variant(kbps: int) -> Variant:
    return Variant(
        format_id=f"a{kbps}",
        url=f"https://media.example/a{kbps}",
        kind="audio",
        quality=kbps,
        bitrate=kbps,
        ext="m4a",
    )


def sample_catalog(seed: int = 7) -> StreamCatalog:
    videos = [video_variant(480), video_variant(720), video_variant(1080)]
    audios = [audio_variant(96), audio_variant(160)]
    shuffler = random.Random(seed)
    shuffler.shuffle(videos)
    shuffler.shuffle(audios)
    return StreamCatalog(video_variants=tuple(videos), audio_variants=tuple(audios))


class FakeMediaSource:
    """In-memory media source keyed by format id."""

    def __init__(
        self,
        catalog: StreamCatalog | None = None,
        streams: dict[str, Iterable[bytes] | StreamFactory] | None = None,
        resolve_error: Exception | None = None,
    ) -> None:
        self.catalog = catalog or sample_catalog()
        self.streams = streams or {}
        self.resolve_error = resolve_error
        self.resolve_calls: list[str] = []
        self.opened: list[str] = []
        self.closed: list[str] = []
        self._lock = threading.Lock()

    def resolve_streams(self, source_id: str) -> StreamCatalog:
        with self._lock:
            self.resolve_calls.append(source_id)
        if self.resolve_error is not None:
            raise self.resolve_error
        return self.catalog

    def open_stream(self, variant: Variant, chunk_size: int) -> Iterator[bytes]:
        with self._lock:
            self.opened.append(variant.format_id)
        return self._chunks(variant)

    def _chunks(self, variant: Variant) -> Iterator[bytes]:
        stream = self.streams.get(variant.format_id, [variant.format_id.encode()])
        try:
            yield from (stream() if callable(stream) else stream)
        finally:
            with self._lock:
                self.closed.append(variant.format_id)


@pytest.fixture
def fake_ffmpeg(tmp_path: Path) -> Path:
    script = tmp_path / "bin" / "fake-ffmpeg"
    script.parent.mkdir()
    script.write_text(f"#!{sys.executable}\n{FAKE_FFMPEG_SOURCE}")
    script.chmod(0o755)
    return script


@pytest.fixture
def temp_root(tmp_path: Path) -> Path:
    root = tmp_path / "scratch"
    root.mkdir()
    return root


@pytest.fixture
def config(fake_ffmpeg: Path, temp_root: Path) -> Config:
    return Config(ffmpeg_path=str(fake_ffmpeg), temp_root=temp_root, chunk_size_kb=1)
