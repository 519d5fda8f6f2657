"""ffmpeg / ffprobe invocation with lifecycle event reporting."""

from __future__ import annotations

import asyncio
import logging
import re
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Optional

from storyreel.errors import MediaProcessingError

_OUT_TIME_RE = re.compile(r"^out_time_(?:ms|us)=(\d+)$")


@dataclass
class MediaEvent:
    kind: str  # start | progress | end | error
    label: str
    command: list[str] = field(default_factory=list)
    seconds: float | None = None
    detail: str | None = None


MediaEventListener = Callable[[MediaEvent], None]


def write_concat_manifest(paths: Iterable[str | Path], manifest_path: str | Path) -> Path:
    manifest = Path(manifest_path)
    lines = []
    for item in paths:
        posix = Path(item).resolve().as_posix().replace("'", "'\\''")
        lines.append(f"file '{posix}'")
    manifest.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return manifest


class FFmpegRunner:
    def __init__(
        self,
        ffmpeg_path: str = "ffmpeg",
        ffprobe_path: str = "ffprobe",
        listener: MediaEventListener | None = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.ffmpeg_path = ffmpeg_path
        self.ffprobe_path = ffprobe_path
        self.listener = listener
        self.log = logger or logging.getLogger(__name__)

    async def run(self, args: list[str], label: str) -> None:
        command = [
            self.ffmpeg_path,
            "-hide_banner",
            "-nostats",
            "-loglevel",
            "error",
            "-progress",
            "pipe:2",
            "-y",
            *args,
        ]
        self._emit(MediaEvent(kind="start", label=label, command=command))
        self.log.debug("ffmpeg started", extra={"label": label, "command": " ".join(command)})
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            self._emit(MediaEvent(kind="error", label=label, command=command, detail=str(exc)))
            raise MediaProcessingError(command, None, str(exc)) from exc

        tail: deque[str] = deque(maxlen=40)
        try:
            while True:
                raw = await process.stderr.readline()
                if not raw:
                    break
                line = raw.decode("utf-8", errors="replace").strip()
                if not line:
                    continue
                match = _OUT_TIME_RE.match(line)
                if match:
                    seconds = int(match.group(1)) / 1_000_000
                    self._emit(MediaEvent(kind="progress", label=label, command=command, seconds=seconds))
                    continue
                if "=" in line and " " not in line:
                    # remaining -progress key=value pairs
                    continue
                tail.append(line)
            returncode = await process.wait()
        except BaseException:
            await self._terminate(process, label, command)
            raise

        if returncode != 0:
            stderr_tail = "\n".join(tail)
            self._emit(MediaEvent(kind="error", label=label, command=command, detail=stderr_tail))
            self.log.error(
                "ffmpeg failed",
                extra={"label": label, "returncode": returncode, "stderr": stderr_tail},
            )
            raise MediaProcessingError(command, returncode, stderr_tail)
        self._emit(MediaEvent(kind="end", label=label, command=command))
        self.log.debug("ffmpeg finished", extra={"label": label})

    async def probe_duration(self, path: str | Path) -> float:
        command = [
            self.ffprobe_path,
            "-v",
            "error",
            "-show_entries",
            "format=duration",
            "-of",
            "default=noprint_wrappers=1:nokey=1",
            str(path),
        ]
        label = f"probe:{Path(path).name}"
        self._emit(MediaEvent(kind="start", label=label, command=command))
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            self._emit(MediaEvent(kind="error", label=label, command=command, detail=str(exc)))
            raise MediaProcessingError(command, None, str(exc)) from exc
        try:
            stdout, stderr = await process.communicate()
        except BaseException:
            await self._terminate(process, label, command)
            raise

        if process.returncode != 0:
            detail = stderr.decode("utf-8", errors="replace")
            self._emit(MediaEvent(kind="error", label=label, command=command, detail=detail))
            raise MediaProcessingError(command, process.returncode, detail)
        try:
            seconds = float(stdout.decode("utf-8").strip())
        except ValueError as exc:
            detail = f"unparseable duration {stdout!r}"
            self._emit(MediaEvent(kind="error", label=label, command=command, detail=detail))
            raise MediaProcessingError(command, process.returncode, detail) from exc
        self._emit(MediaEvent(kind="end", label=label, command=command, seconds=seconds))
        return seconds

    async def concat(
        self,
        inputs: list[str | Path],
        output: str | Path,
        manifest_path: str | Path,
        label: str = "concat",
    ) -> Path:
        """Stream-copy ``inputs`` into ``output`` through a concat demuxer manifest."""
        manifest = write_concat_manifest(inputs, manifest_path)
        try:
            await self.run(
                ["-f", "concat", "-safe", "0", "-i", str(manifest), "-c", "copy", str(output)],
                label=label,
            )
        finally:
            manifest.unlink(missing_ok=True)
        return Path(output)

    async def _terminate(self, process: asyncio.subprocess.Process, label: str, command: list[str]) -> None:
        """Kill a child whose caller went away, then reap it."""
        if process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass
            await process.wait()
        self._emit(MediaEvent(kind="error", label=label, command=command, detail="interrupted"))
        self.log.warning("media process killed", extra={"label": label, "pid": process.pid})

    def _emit(self, event: MediaEvent) -> None:
        if self.listener is None:
            return
        try:
            self.listener(event)
        except Exception:  # pragma: no cover - best effort
            self.log.warning("media event listener failed", extra={"label": event.label}, exc_info=True)
