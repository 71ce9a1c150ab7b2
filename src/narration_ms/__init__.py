"""
narration-ms: Text-to-Speech Narration Backend.

Accepts text, synthesizes narration audio through an external
text-to-speech provider (ElevenLabs-compatible HTTP API), and reports
usage analytics for every synthesis.

Key Features:
    - Length policy with sentence-aware truncation before any billed call
    - Outbound client with per-attempt timeout, retry and exponential backoff
    - MP3 duration estimation from frame headers
    - Per-user daily and monthly usage accounting
    - Prometheus metrics and structured JSONL logs

Example Usage:
    >>> from narration_ms.services import NarrationService, SynthesisRequest
    >>> audio = await service.synthesize(SynthesisRequest(text="Hello world", user_id="u1"))
    >>> with open("narration.mp3", "wb") as f:
    ...     f.write(audio.audio_bytes)
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
