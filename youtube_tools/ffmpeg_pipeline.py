from __future__ import annotations

import asyncio
import logging
import os
import shlex
import shutil
from collections import deque
from collections.abc import AsyncIterator, Sequence
from pathlib import Path
from typing import IO, Any

from .models import Config, Container, OutputTarget


logger = logging.getLogger(__name__)

STDOUT_SINK = "pipe:1"
DIAGNOSTIC_TAIL_LINES = 20
TRUNCATED_LINE = "[diagnostic line too long, truncated]"

# A pipe cannot be seeked back to write the moov atom, so streamed mp4 is fragmented.
STREAM_MOVFLAGS = "frag_keyframe+empty_moov"
FILE_MOVFLAGS = "+faststart"


class MergeError(RuntimeError):
    def __init__(self, message: str, returncode: int | None = None, diagnostics: str = "") -> None:
        super().__init__(message)
        self.returncode = returncode
        self.diagnostics = diagnostics


def build_merge_command(
    ffmpeg_path: str,
    video_path: Path,
    audio_path: Path,
    container: Container,
    output_path: Path | None,
    audio_bitrate_kbps: int = 192,
    loglevel: str = "warning",
) -> list[str]:
    """Copy the video stream, encode audio to AAC and mux both into one container.

    ``output_path=None`` streams the container to standard output.
    """
    movflags = STREAM_MOVFLAGS if output_path is None else FILE_MOVFLAGS
    return [
        ffmpeg_path,
        "-hide_banner",
        "-nostdin",
        "-nostats",
        "-y",
        "-loglevel",
        loglevel,
        "-i",
        str(video_path),
        "-i",
        str(audio_path),
        "-map",
        "0:v:0",
        "-map",
        "1:a:0",
        "-c:v",
        "copy",
        "-c:a",
        "aac",
        "-b:a",
        f"{audio_bitrate_kbps}k",
        "-movflags",
        movflags,
        "-f",
        container,
        STDOUT_SINK if output_path is None else str(output_path),
    ]


class TranscoderProcess:
    """Handle on a running transcoder child process."""

    def __init__(self, command: Sequence[str], process: asyncio.subprocess.Process) -> None:
        self.command = list(command)
        self.process = process

    @classmethod
    async def start(
        cls,
        command: Sequence[str],
        stdout: IO[bytes] | int | None = None,
    ) -> TranscoderProcess:
        logger.debug("Running transcoder: %s", shlex.join(command))
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=stdout,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise MergeError(f"cannot launch {command[0]}: {exc}") from exc
        return cls(command, process)

    async def diagnostics(self) -> AsyncIterator[str]:
        stream = self.process.stderr
        if stream is None:
            return
        while True:
            try:
                raw = await stream.readline()
            except ValueError:
                # Longer than the reader's limit; the oversized chunk is dropped.
                yield TRUNCATED_LINE
                continue
            if not raw:
                break
            line = raw.decode("utf-8", errors="replace").rstrip()
            if line:
                yield line

    async def wait(self) -> int:
        return await self.process.wait()

    async def kill(self) -> None:
        if self.process.returncode is None:
            self.process.kill()
            await self.process.wait()


async def merge(
    video_path: Path,
    audio_path: Path,
    target: OutputTarget,
    work_dir: Path,
    config: Config,
    stdout: IO[bytes] | int | None = None,
) -> Path | None:
    """Mux the two track files into ``target``.

    File targets are staged inside ``work_dir`` and moved into place only
    after the transcoder exits cleanly. Returns the final path, or ``None``
    when the container was streamed to standard output.
    """
    for path in (video_path, audio_path):
        if not path.is_file():
            raise MergeError(f"merge input is missing: {path}")

    staged = None if target.path is None else work_dir / f"merged.{target.container}"
    command = build_merge_command(
        config.ffmpeg_path,
        video_path,
        audio_path,
        target.container,
        staged,
        audio_bitrate_kbps=config.audio_bitrate_kbps,
        loglevel=config.ffmpeg_loglevel,
    )

    sink: Any = stdout if staged is None else asyncio.subprocess.DEVNULL
    process = await TranscoderProcess.start(command, stdout=sink)
    tail: deque[str] = deque(maxlen=DIAGNOSTIC_TAIL_LINES)
    try:
        async for line in process.diagnostics():
            tail.append(line)
            logger.info("ffmpeg: %s", line)
        returncode = await process.wait()
    finally:
        await process.kill()

    if returncode != 0:
        if staged is not None:
            staged.unlink(missing_ok=True)
        detail = tail[-1] if tail else "no diagnostic output"
        raise MergeError(
            f"ffmpeg exited with code {returncode}: {detail}",
            returncode=returncode,
            diagnostics="\n".join(tail),
        )

    if staged is None or target.path is None:
        return None

    publish(staged, target.path)
    return target.path


def publish(staged: Path, destination: Path) -> None:
    """Move a finished file into place without ever exposing a partial copy.

    The file first lands under a hidden name beside ``destination`` (a copy
    when the workspace sits on another filesystem) and is then renamed.
    """
    partial = destination.with_name(f".{destination.name}.part")
    try:
        shutil.move(str(staged), str(partial))
        os.replace(partial, destination)
    except OSError as exc:
        partial.unlink(missing_ok=True)
        raise MergeError(f"cannot move merged file to {destination}: {exc}") from exc
