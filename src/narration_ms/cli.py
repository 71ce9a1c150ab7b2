"""
Command-Line Interface for narration-ms.

Synthesizes narration without running the HTTP server, through the same
NarrationService (validation, retries, analytics logging) the API uses.

Usage Examples:
    # Single text
    narration-ms --text "Hello world" --out hello.mp3

    # Positional text (same as above)
    narration-ms "Hello world" --out hello.mp3

    # Batch processing from file (1 line = 1 item)
    narration-ms --file inputs.txt --out output_dir/

    # Dry run: apply the length policy only, no provider call, no API key needed
    narration-ms --text "Test" --dry-run --json

    # Voice and model overrides
    narration-ms --text "Test" --voice 21m00Tcm4TlvDq8ikWAM --model eleven_multilingual_v2

    # List provider voices
    narration-ms --voices --limit 20

Environment Variables:
    ELEVENLABS_API_KEY: Provider API key (required unless --dry-run)
    NARRATION_MS_SETTINGS: Settings file path
    NARRATION_MS_LOG_LEVEL: Log level (1-4)
"""

from __future__ import annotations

import argparse
import asyncio
import json
from pathlib import Path
from typing import Any, Dict, List, Optional
from uuid import uuid4

import httpx

from narration_ms.core.config import (
    ConfigValidationError,
    NarrationServiceConfig,
    Settings,
    load_settings,
    load_settings_or_defaults,
)
from narration_ms.core.logging import configure_logging, get_logger, info, set_request_id
from narration_ms.net.http_client import ResilientHttpClient
from narration_ms.services.analytics import LoggingAnalyticsSink
from narration_ms.services.synthesis import NarrationError, NarrationService, SynthesisRequest
from narration_ms.services.validators import validate_text
from narration_ms.services.voices import VoiceCatalog


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="narration-ms CLI (serverless synth)")

    parser.add_argument("text_pos", nargs="?", help="Text to synthesize (positional)")
    parser.add_argument("--text", help="Text to synthesize")
    parser.add_argument("--file", help="Batch input file (1 line = 1 item)")

    parser.add_argument("--out", help="Output path (file, or dir in batch mode)")

    parser.add_argument("--voice", help="Provider voice ID override")
    parser.add_argument("--model", help="Provider model ID override")
    parser.add_argument("--user", default="cli", help="User ID recorded in analytics")
    parser.add_argument("--settings", help="Settings file (default: NARRATION_MS_SETTINGS or config/settings.yaml)")

    parser.add_argument("--dry-run", action="store_true",
                        help="Validate and summarize without calling the provider")
    parser.add_argument("--json", action="store_true",
                        help="Print JSON summary")

    parser.add_argument("--voices", action="store_true",
                        help="List provider voices and exit")
    parser.add_argument("--limit", type=int, default=10,
                        help="Maximum voices for --voices")

    return parser.parse_args(argv)


def _load_texts(args: argparse.Namespace) -> List[str]:
    """
    Raises:
        SystemExit: If no input is provided or options conflict.
    """
    text = args.text or args.text_pos

    if args.file:
        if text:
            raise SystemExit("Use --file without --text or positional text.")
        lines = Path(args.file).read_text(encoding="utf-8").splitlines()
        items = [line.strip() for line in lines if line.strip()]
        if not items:
            raise SystemExit("Input file is empty.")
        return items

    if not text:
        raise SystemExit("Provide --text or a positional text.")
    return [text]


def _resolve_output_paths(args: argparse.Namespace, count: int) -> List[Path]:
    if args.file:
        out_dir = Path(args.out or "out")
        out_dir.mkdir(parents=True, exist_ok=True)
        return [out_dir / f"item_{i + 1:03d}.mp3" for i in range(count)]

    out_path = Path(args.out or "out.mp3")
    out_path.parent.mkdir(parents=True, exist_ok=True)
    return [out_path]


def _load_settings(args: argparse.Namespace) -> Settings:
    # An explicit --settings path must exist; the default may be absent
    if args.settings:
        return load_settings(args.settings)
    return load_settings_or_defaults()


def _emit(payload: Dict[str, Any], as_json: bool) -> None:
    if as_json:
        print(json.dumps(payload, ensure_ascii=False))
    else:
        print(payload)


def _dry_run(args: argparse.Namespace, settings: Settings, texts: List[str]) -> int:
    limits = NarrationServiceConfig.text_limits_from_settings(settings)
    items = []
    for text in texts:
        outcome = validate_text(text, limits.max_length, limits.warning_length)
        items.append({
            "text_len": len(text),
            "valid": outcome.valid,
            "processed_len": len(outcome.text) if outcome.text else 0,
            "truncated": outcome.truncated,
            "warning": outcome.warning,
            "reason": outcome.reason,
            "voice_id": args.voice or settings.default_voice_id,
            "model_id": args.model or settings.default_model_id,
        })

    ok = all(item["valid"] for item in items)
    _emit({"ok": ok, "dry_run": True, "items": items}, args.json)
    if not ok:
        print("DRY_RUN_INVALID")
        return 2
    print("DRY_RUN_OK")
    return 0


async def _synthesize_all(
    args: argparse.Namespace,
    config: NarrationServiceConfig,
    texts: List[str],
    out_paths: List[Path],
    transport: Optional[httpx.AsyncBaseTransport],
) -> List[Dict[str, Any]]:
    log = get_logger("narration-ms.cli")
    results = []
    async with httpx.AsyncClient(transport=transport, timeout=config.timeout_ms / 1000.0) as raw:
        service = NarrationService(config, ResilientHttpClient(raw), analytics=LoggingAnalyticsSink())
        for text, out_path in zip(texts, out_paths):
            info(log, "synth_start", chars=len(text), out=str(out_path))
            audio = await service.synthesize(
                SynthesisRequest(text=text, user_id=args.user, voice_id=args.voice, model_id=args.model)
            )
            out_path.write_bytes(audio.audio_bytes)
            results.append({
                "out": str(out_path),
                "bytes": audio.size_bytes,
                "duration_s": round(audio.estimated_duration_seconds, 3),
                "characters_processed": audio.characters_processed,
                "warning": audio.warning,
            })
    return results


async def _list_voices(
    config: NarrationServiceConfig,
    limit: int,
    transport: Optional[httpx.AsyncBaseTransport],
) -> List[Dict[str, Any]]:
    async with httpx.AsyncClient(transport=transport, timeout=config.timeout_ms / 1000.0) as raw:
        catalog = VoiceCatalog(config, ResilientHttpClient(raw))
        return [v.to_dict() for v in await catalog.list_voices(limit)]


def main(argv: Optional[List[str]] = None, transport: Optional[httpx.AsyncBaseTransport] = None) -> int:
    """
    Main CLI entry point.

    Args:
        argv: Command-line arguments (defaults to sys.argv).
        transport: httpx transport for provider calls (tests pass a MockTransport).

    Returns:
        0 on success, 1 on a synthesis failure, 2 on invalid input or configuration.
    """
    args = _parse_args(argv)

    configure_logging()
    log = get_logger("narration-ms.cli")
    set_request_id(str(uuid4())[:12])

    try:
        settings = _load_settings(args)
    except FileNotFoundError as e:
        print(f"[CONFIG] {e}")
        return 2

    if not args.voices:
        texts = _load_texts(args)
        if args.dry_run:
            info(log, "dry_run", items=len(texts))
            return _dry_run(args, settings, texts)

    try:
        config = NarrationServiceConfig.from_settings(settings)
    except ConfigValidationError as e:
        print(f"[CONFIG] {e}")
        return 2

    try:
        if args.voices:
            voices = asyncio.run(_list_voices(config, args.limit, transport))
            _emit({"ok": True, "voices": voices}, args.json)
            return 0

        out_paths = _resolve_output_paths(args, len(texts))
        results = asyncio.run(_synthesize_all(args, config, texts, out_paths, transport))
    except NarrationError as e:
        _emit(e.to_dict(), args.json)
        return 1

    _emit({"ok": True, "dry_run": False, "items": results}, args.json)
    print("CLI_OK")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
