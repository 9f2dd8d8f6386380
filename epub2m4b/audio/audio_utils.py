"""Audio utility functions - external process runner, duration probing and ffmpeg paths."""

import asyncio
import contextlib
import json
import logging
import subprocess
from pathlib import Path
from typing import Optional

import static_ffmpeg

logger = logging.getLogger(__name__)


def get_ffmpeg_paths() -> tuple[str, str]:
    """Return (ffmpeg_path, ffprobe_path) using the bundled static-ffmpeg binaries.

    Downloads binaries on first use if not already present.
    """
    ffmpeg_path, ffprobe_path = static_ffmpeg.run.get_or_fetch_platform_executables_else_raise()
    return ffmpeg_path, ffprobe_path


def check_ffmpeg() -> tuple[str, str]:
    """Verify that ffmpeg and ffprobe are available (downloads if needed)."""
    try:
        return get_ffmpeg_paths()
    except Exception as e:
        raise RuntimeError(
            f"Impossibile ottenere ffmpeg: {e}\n"
            f"Prova a reinstallare: pip install --force-reinstall static-ffmpeg"
        ) from e


async def run_process(args: list[str], input: Optional[bytes] = None) -> bytes:
    """Run an external command and return its stdout.

    The child is killed if the awaiting task is cancelled.

    Raises:
        subprocess.CalledProcessError: If the command exits with non-zero status.
    """
    logger.debug("Esecuzione: %s", " ".join(args))
    process = await asyncio.create_subprocess_exec(
        *args,
        stdin=subprocess.PIPE if input is not None else subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
    )
    try:
        stdout, stderr = await process.communicate(input)
    except asyncio.CancelledError:
        with contextlib.suppress(ProcessLookupError):
            process.kill()
        await process.wait()
        raise

    if process.returncode != 0:
        raise subprocess.CalledProcessError(process.returncode, args, stdout, stderr)
    return stdout


async def probe_duration_ms(ffprobe: str, audio_path: Path) -> int:
    """Get audio file duration in milliseconds using ffprobe."""
    stdout = await run_process([
        ffprobe, "-v", "quiet",
        "-print_format", "json",
        "-show_format",
        str(audio_path),
    ])
    data = json.loads(stdout)
    try:
        duration_seconds = float(data["format"]["duration"])
    except (KeyError, ValueError) as e:
        raise RuntimeError(f"Durata non disponibile per {audio_path}") from e
    return int(duration_seconds * 1000)
