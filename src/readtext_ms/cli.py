"""
Command-Line Interface for readtext-ms.

Operator tooling that talks to the same counter store and providers as
the HTTP service, without running the server.

Usage Examples:
    # Show character usage for the active strategy
    readtext-ms usage
    readtext-ms usage --json

    # Reset a counter to 0 (manual intervention, needs --yes)
    readtext-ms reset totalCharsUsed --yes

    # Synthesize one text through the full pipeline (quota included)
    readtext-ms synth "Olá, tudo bem?" --out ola.mp3

    # Show which providers/voices would be used, touching nothing
    readtext-ms synth "Teste" --voice female --dry-run --json

Environment Variables:
    READTEXT_MS_SETTINGS: Settings file (default config/settings.yaml)
    REDIS_URL, REDIS_PASSWORD: Counter store connection
    GOOGLE_API_KEY / GOOGLE_ACCESS_TOKEN / GOOGLE_APPLICATION_CREDENTIALS
    AWS_REGION and the standard AWS credential chain
"""

from __future__ import annotations

import argparse
import base64
import json
import os
from pathlib import Path
from typing import List, Optional
from uuid import uuid4

from readtext_ms.core.config import ConfigValidationError, load_settings
from readtext_ms.core.errors import ReadTextError
from readtext_ms.core.logging import configure_logging, get_logger, info, set_request_id
from readtext_ms.services.speech_service import SynthesisRequest, build_coordinator

CLI_CLIENT_ID = "cli"


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="readtext-ms", description="readtext-ms operator CLI")
    parser.add_argument("--settings", help="Settings file (overrides READTEXT_MS_SETTINGS)")

    sub = parser.add_subparsers(dest="command", required=True)

    p_usage = sub.add_parser("usage", help="Show character counters")
    p_usage.add_argument("--json", action="store_true", help="Print JSON")

    p_reset = sub.add_parser("reset", help="Reset a counter to 0")
    p_reset.add_argument("counter", help="Counter name, e.g. totalCharsUsed")
    p_reset.add_argument("--yes", action="store_true", help="Confirm the reset")

    p_synth = sub.add_parser("synth", help="Synthesize one text")
    p_synth.add_argument("text", help="Text to synthesize")
    p_synth.add_argument("--voice", help="Voice override")
    p_synth.add_argument("--language", help="Language override")
    p_synth.add_argument("--out", help="Output audio file (default out.mp3)")
    p_synth.add_argument("--dry-run", action="store_true",
                         help="Show the provider plan without calling anything")
    p_synth.add_argument("--json", action="store_true", help="Print JSON summary")

    return parser.parse_args(argv)


def _print(payload: dict, as_json: bool) -> None:
    if as_json:
        print(json.dumps(payload, ensure_ascii=False))
    else:
        for key, value in payload.items():
            print(f"{key}: {value}")


def _cmd_usage(coordinator, args: argparse.Namespace) -> int:
    counters = [c.to_dict() for c in coordinator.usage()]
    if args.json:
        print(json.dumps({"strategy": coordinator.strategy, "counters": counters}, ensure_ascii=False))
        return 0
    print(f"strategy: {coordinator.strategy}")
    for c in counters:
        print(f"  {c['counter']:<18} {c['used']:>10} / {c['limit']:<10} remaining {c['remaining']}")
    return 0


def _cmd_reset(coordinator, args: argparse.Namespace) -> int:
    if not args.yes:
        print(f"Refusing to reset {args.counter} without --yes")
        return 2
    try:
        coordinator.reset_counter(args.counter)
    except ValueError as e:
        print(str(e))
        return 2
    print(f"{args.counter} reset to 0")
    return 0


def _cmd_synth(coordinator, args: argparse.Namespace, log) -> int:
    if args.dry_run:
        steps = coordinator.plan(args.voice)
        payload = {
            "ok": True,
            "dry_run": True,
            "strategy": coordinator.strategy,
            "chars": len(args.text),
            "language": args.language or coordinator.config.app.default_language,
            "plan": [vars(s) for s in steps],
        }
        if args.json:
            print(json.dumps(payload, ensure_ascii=False))
        else:
            info(log, "dry_run", chars=len(args.text), providers=len(steps))
            print(payload)
        print("DRY_RUN_OK")
        return 0

    rid = str(uuid4())[:12]
    set_request_id(rid)
    request = SynthesisRequest(
        text=args.text,
        language=args.language,
        voice=args.voice,
        client_identifier=CLI_CLIENT_ID,
    )
    result = coordinator.synthesize(request, rid)

    out_path = Path(args.out or "out.mp3")
    out_path.parent.mkdir(parents=True, exist_ok=True)
    audio = base64.b64decode(result.audio_content)
    out_path.write_bytes(audio)

    payload = {
        "ok": True,
        "out": str(out_path),
        "bytes": len(audio),
        "service": result.service,
        "chars_used": result.chars_used,
        "total_used": result.total_used,
    }
    _print(payload, args.json)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Returns:
        Exit code: 0 on success, 1 on service errors, 2 on usage or
        configuration errors.
    """
    args = _parse_args(argv)

    configure_logging()
    log = get_logger("readtext-ms.cli")

    settings_path = args.settings or os.getenv("READTEXT_MS_SETTINGS", "config/settings.yaml")
    try:
        config = load_settings(settings_path).get_config()
    except ConfigValidationError as e:
        print(f"Invalid configuration: {e}")
        return 2

    try:
        coordinator = build_coordinator(config)
        try:
            if args.command == "usage":
                return _cmd_usage(coordinator, args)
            if args.command == "reset":
                return _cmd_reset(coordinator, args)
            return _cmd_synth(coordinator, args, log)
        finally:
            coordinator.close()
    except ReadTextError as e:
        payload = {"ok": False, **e.to_dict(include_details=config.app.debug)}
        _print(payload, getattr(args, "json", False))
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
