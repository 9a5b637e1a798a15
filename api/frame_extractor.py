"""Extract candidate frames from video streams using ffmpeg.

Grabs single frames at given timestamps from a local file or HTTP stream,
without downloading the whole video, and fingerprints each one. A frame that
cannot be extracted or decoded becomes a candidate with a missing fingerprint.
"""
import asyncio
import logging
import os
import re
import subprocess
from dataclasses import dataclass, field
from typing import Optional, Sequence

from audit_models import CandidateFrame
from config import DEFAULT_HASHER_CONFIG, HasherConfig
from pixel_hasher import fingerprint_bytes

logger = logging.getLogger(__name__)


# =============================================================================
# CONFIGURATION - Tune these values as needed
# =============================================================================

@dataclass
class FrameExtractionConfig:
    """Configuration for frame extraction. All values are easily tunable."""

    # Minute sampling: first frame at offset, then one every interval
    sample_offset_sec: float = 7.0
    sample_interval_sec: float = 60.0

    # Frame quality
    jpeg_quality: int = 95               # JPEG quality (1-100)

    # Performance
    max_concurrent_extractions: int = 4  # Parallel ffmpeg processes
    extraction_timeout_sec: float = 30.0 # Timeout per frame

    # ffmpeg settings
    ffmpeg_path: str = "ffmpeg"          # Path to ffmpeg binary

    @classmethod
    def from_env(cls) -> "FrameExtractionConfig":
        return cls(
            sample_offset_sec=float(os.environ.get("SAMPLE_OFFSET_SEC", "7.0")),
            sample_interval_sec=float(os.environ.get("SAMPLE_INTERVAL_SEC", "60.0")),
            ffmpeg_path=os.environ.get("FFMPEG_PATH", "ffmpeg"),
        )


# Default config instance
DEFAULT_CONFIG = FrameExtractionConfig()


@dataclass
class ExtractionResult:
    """Result of frame extraction operation."""
    frames: list[CandidateFrame]
    errors: list[str] = field(default_factory=list)

    @property
    def fingerprinted(self) -> list[CandidateFrame]:
        return [f for f in self.frames if f.fingerprint is not None]


# =============================================================================
# TIMESTAMPS
# =============================================================================

_ISO_DURATION_RE = re.compile(r"^PT(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?$")


def parse_iso8601_duration(duration: str) -> int:
    """Parse an ISO-8601 time duration like "PT1H2M3S" into seconds.

    Only the time part (hours, minutes, whole seconds) is supported, as
    returned by video platform APIs. Anything else parses as 0.
    """
    if not duration or not duration.startswith("PT"):
        return 0
    match = _ISO_DURATION_RE.match(duration)
    if not match:
        return 0
    hours, minutes, seconds = (int(g or 0) for g in match.groups())
    return hours * 3600 + minutes * 60 + seconds


def build_minute_sampling_timestamps(
    duration_sec: float,
    offset_sec: float = 7.0,
    interval_sec: float = 60.0,
) -> list[float]:
    """
    Timestamps at offset, offset + interval, ... up to one second before the end.

    Args:
        duration_sec: Video duration in seconds
        offset_sec: First sample point (skips intro frames/black frames)
        interval_sec: Spacing between samples

    Returns:
        At least one timestamp. An unknown duration samples just the offset.
    """
    if interval_sec <= 0:
        raise ValueError(f"interval_sec must be positive, got {interval_sec}")
    if duration_sec <= 0:
        return [offset_sec]

    max_ts = max(0.0, duration_sec - 1)
    timestamps = []
    t = offset_sec
    while t <= max_ts:
        timestamps.append(t)
        t += interval_sec
    return timestamps or [min(offset_sec, max_ts)]


# =============================================================================
# FRAME EXTRACTION
# =============================================================================

def extract_frame_sync(
    stream_url: str,
    timestamp_sec: float,
    config: FrameExtractionConfig = DEFAULT_CONFIG,
) -> Optional[bytes]:
    """
    Extract a single frame from video using ffmpeg (synchronous).

    Args:
        stream_url: Local path or HTTP URL to the video
        timestamp_sec: Timestamp to extract (in seconds)
        config: Extraction configuration

    Returns:
        JPEG bytes, or None on failure
    """
    # -ss before -i enables fast seeking without decoding everything
    cmd = [
        config.ffmpeg_path,
        "-ss", str(timestamp_sec),
        "-i", stream_url,
        "-frames:v", "1",
        "-f", "image2pipe",
        "-vcodec", "mjpeg",
        "-q:v", str(max(1, min(31, 32 - config.jpeg_quality // 3))),  # 1=best, 31=worst
        "-",
    ]

    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            timeout=config.extraction_timeout_sec,
        )
    except subprocess.TimeoutExpired:
        logger.warning(f"ffmpeg timed out at {timestamp_sec:.1f}s of {stream_url}")
        return None
    except OSError as e:
        logger.warning(f"Could not run ffmpeg: {e}")
        return None

    if result.returncode != 0:
        # ffmpeg failed - this can happen for seeks past end, etc.
        logger.debug(f"ffmpeg exited {result.returncode} at {timestamp_sec:.1f}s: {result.stderr[-200:]!r}")
        return None

    return result.stdout or None


async def extract_candidate_frame(
    stream_url: str,
    timestamp_sec: float,
    config: FrameExtractionConfig = DEFAULT_CONFIG,
    hasher_config: HasherConfig = DEFAULT_HASHER_CONFIG,
) -> CandidateFrame:
    """
    Extract and fingerprint one frame.

    Runs ffmpeg and hashing in a worker thread to avoid blocking the event loop.
    """
    data = await asyncio.to_thread(extract_frame_sync, stream_url, timestamp_sec, config)
    fingerprint = None
    if data is not None:
        fingerprint = await asyncio.to_thread(fingerprint_bytes, data, hasher_config)

    return CandidateFrame(
        id=f"frame_{timestamp_sec:g}",
        fingerprint=fingerprint,
        timestamp=timestamp_sec,
        metadata={"timestamp": timestamp_sec, "source": stream_url},
    )


async def extract_candidate_frames(
    stream_url: str,
    timestamps: Sequence[float],
    config: FrameExtractionConfig = DEFAULT_CONFIG,
    hasher_config: HasherConfig = DEFAULT_HASHER_CONFIG,
) -> ExtractionResult:
    """
    Extract and fingerprint frames at the given timestamps.

    Timestamps are de-duplicated and sorted. Every timestamp yields a
    CandidateFrame; failed ones carry fingerprint=None and an error entry.
    """
    ordered = sorted(set(timestamps))
    semaphore = asyncio.Semaphore(config.max_concurrent_extractions)

    async def extract_with_semaphore(ts: float) -> CandidateFrame:
        async with semaphore:
            return await extract_candidate_frame(stream_url, ts, config, hasher_config)

    frames = list(await asyncio.gather(*[extract_with_semaphore(ts) for ts in ordered]))
    errors = [
        f"Failed to extract frame at {f.timestamp:.1f}s"
        for f in frames
        if f.fingerprint is None
    ]
    if errors:
        logger.warning(f"{len(errors)}/{len(frames)} frames failed for {stream_url}")

    return ExtractionResult(frames=frames, errors=errors)


def check_ffmpeg_available(ffmpeg_path: str = "ffmpeg") -> bool:
    """Check if ffmpeg is available."""
    try:
        result = subprocess.run(
            [ffmpeg_path, "-version"],
            capture_output=True,
            timeout=5,
        )
        return result.returncode == 0
    except (OSError, subprocess.TimeoutExpired):
        return False
