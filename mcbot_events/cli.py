"""
Command line entry point.

    mcbot-events replay session.jsonl --kind chat
    mcbot-events serve --config pipeline.yaml --port 8000
"""
from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

from .config import ConfigError, load_config
from .logging_config import configure_logging
from .pipeline import EventPipeline
from .replay import RecordedSource, load_recording

logger = logging.getLogger(__name__)


def _replay_into(pipeline: EventPipeline, path: str, username: str, realtime: bool = False) -> int:
    """Play a recording through a pipeline; returns the number of records played."""
    records = load_recording(path)
    source = RecordedSource(username=username)
    pipeline.attach_source(source, clock=source.clock)
    played = source.play(records, realtime=realtime)
    logger.info(f"Replayed {played} signals from {path}")
    return played


def cmd_replay(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    configure_logging(args.log_level or config.log_level, config.log_dir)

    pipeline = EventPipeline(config)
    try:
        _replay_into(pipeline, args.recording, args.username, realtime=args.realtime)
        events = pipeline.hub.get_history(args.kind, args.limit or config.history_query_limit)
        for event in events:
            print(pipeline.notifier.format_event(event))
        print(f"[{len(events)} events shown, {len(pipeline.hub)} in history]")
    finally:
        pipeline.shutdown()
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    from .api import create_app

    config = load_config(args.config)
    configure_logging(args.log_level or config.log_level, config.log_dir)

    pipeline = EventPipeline(config)
    if args.replay:
        _replay_into(pipeline, args.replay, args.username)

    app = create_app(pipeline)
    try:
        uvicorn.run(app, host=args.host, port=args.port)
    finally:
        pipeline.shutdown()
    return 0


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="mcbot-events",
        description="Bot world event pipeline - replay recordings or serve the query API",
    )
    ap.add_argument("--config", help="Pipeline config file (JSON or YAML)")
    ap.add_argument("--log-level", help="Override the configured log level")
    ap.add_argument("--username", default="bot", help="Bot username for recorded sources")

    sub = ap.add_subparsers(dest="command", required=True)

    replay = sub.add_parser("replay", help="Play a JSONL signal recording and print the history")
    replay.add_argument("recording", help="Path to the JSONL recording")
    replay.add_argument("--kind", help="Only print events of this kind")
    replay.add_argument("--limit", type=int, help="Max events to print")
    replay.add_argument("--realtime", action="store_true",
                        help="Keep the recorded spacing between signals")
    replay.set_defaults(func=cmd_replay)

    serve = sub.add_parser("serve", help="Serve the HTTP query API")
    serve.add_argument("--host", default="127.0.0.1", help="Bind address")
    serve.add_argument("--port", type=int, default=8000, help="Bind port")
    serve.add_argument("--replay", help="Recording to load into history before serving")
    serve.set_defaults(func=cmd_serve)

    return ap


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        return args.func(args)
    except (ConfigError, ValueError, OSError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
