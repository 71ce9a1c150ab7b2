"""
Audio Duration Estimation.

Providers return compressed MPEG audio (MP3) without a duration, so the
duration reported to callers and analytics is estimated here by walking
the frame headers.

Frame Header (32 bits, big-endian):
    bits 31-21  frame sync (all ones)
    bits 20-19  version (1 = reserved)
    bits 18-17  layer (1 = Layer III)
    bits 15-12  bitrate index (0 = free, 15 = bad)
    bits 11-10  sample-rate index (3 = reserved)

Each recognized frame contributes 1152 / sample_rate seconds and the scan
jumps floor(1152 * bitrate / (sample_rate * 8)) bytes ahead; anything else
advances the scan by one byte. The padding bit is ignored, so the estimate
is approximate (typically within a few percent of a real decoder).

Fallback:
    max(0.1, len(audio) * 8 / 128000), i.e. assume 128 kbps CBR. Used when
    no frame is found, the sum is not a positive finite number, the mime
    type is not MPEG, or the scan fails for any reason.

Example:
    >>> estimate_duration(b"\\x00" * 16000)
    1.0
"""
from __future__ import annotations

import math
from typing import Optional, Tuple

from narration_ms.core.logging import debug, get_logger

_LOG = get_logger("narration-ms.audio")

MPEG_MIME_TYPES = frozenset({"audio/mpeg", "audio/mp3", "audio/mpeg3", "audio/x-mpeg"})

SAMPLES_PER_FRAME = 1152
FALLBACK_BITRATE = 128_000
MIN_DURATION_SECONDS = 0.1

# MPEG-1 Layer III, kbps, indexed by bitrate index - 1
_BITRATES_KBPS = (32, 40, 48, 56, 64, 80, 96, 112, 128, 160, 192, 224, 256, 320)
_SAMPLE_RATES = (44100, 48000, 32000)


class EstimationFailure(Exception):
    """Frame scan produced no usable duration. Never leaves this module."""
    pass


def fallback_duration(size_bytes: int) -> float:
    """Duration assuming constant 128 kbps, floored at 0.1s."""
    return max(MIN_DURATION_SECONDS, size_bytes * 8 / FALLBACK_BITRATE)


def parse_frame_header(header: int) -> Optional[Tuple[float, int]]:
    """
    Decode one 32-bit frame header.

    Returns:
        (seconds, frame_size_bytes), or None if the header is not a usable
        Layer III frame.
    """
    version = (header >> 19) & 0x3
    layer = (header >> 17) & 0x3
    bitrate_index = (header >> 12) & 0xF
    sample_rate_index = (header >> 10) & 0x3

    if version == 1 or layer != 1:
        return None
    if bitrate_index == 0 or bitrate_index == 15:
        return None
    if sample_rate_index >= len(_SAMPLE_RATES):
        return None

    sample_rate = _SAMPLE_RATES[sample_rate_index]
    bitrate = _BITRATES_KBPS[bitrate_index - 1] * 1000
    frame_size = (SAMPLES_PER_FRAME * bitrate) // (sample_rate * 8)
    return SAMPLES_PER_FRAME / sample_rate, frame_size


def scan_mpeg_duration(audio: bytes) -> float:
    """
    Sum frame durations across the buffer.

    Raises:
        EstimationFailure: No frames found or the sum is unusable.
    """
    duration = 0.0
    frames = 0
    offset = 0
    end = len(audio) - 4

    while offset < end:
        if audio[offset] == 0xFF and (audio[offset + 1] & 0xE0) == 0xE0:
            header = int.from_bytes(audio[offset:offset + 4], "big")
            frame = parse_frame_header(header)
            if frame is not None:
                seconds, frame_size = frame
                duration += seconds
                frames += 1
                offset += max(1, frame_size)
                continue
        offset += 1

    if frames == 0:
        raise EstimationFailure("no MPEG frames found")
    if not math.isfinite(duration) or duration <= 0:
        raise EstimationFailure(f"unusable duration {duration!r}")

    debug(_LOG, "frames_scanned", frames=frames, duration_s=round(duration, 3))
    return duration


def estimate_duration(audio: bytes, mime_type: Optional[str] = "audio/mpeg") -> float:
    """
    Best-effort playback duration of ``audio`` in seconds. Never raises.

    Args:
        audio: Encoded audio bytes
        mime_type: Content type hint; non-MPEG types use the fallback
    """
    size = len(audio) if audio else 0

    if mime_type and mime_type.split(";")[0].strip().lower() not in MPEG_MIME_TYPES:
        return fallback_duration(size)

    try:
        return scan_mpeg_duration(audio)
    except EstimationFailure as e:
        debug(_LOG, "duration_fallback", reason=str(e), bytes=size)
    except Exception as e:
        # Malformed input of any kind degrades to the size heuristic
        debug(_LOG, "duration_fallback", reason=f"{e.__class__.__name__}: {e}", bytes=size)
    return fallback_duration(size)
