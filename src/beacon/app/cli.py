from __future__ import annotations

import argparse
import sys

from beacon.app.runner import replay


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="beacon")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_replay = sub.add_parser("replay", help="Replay a JSONL event file through the pipeline")
    p_replay.add_argument("--config", default="config/beacon.yaml")
    p_replay.add_argument("--events", required=True)
    p_replay.add_argument("--drain-seconds", type=float, default=5.0)

    args = parser.parse_args(argv)

    if args.cmd == "replay":
        stats = replay(args.config, args.events, drain_seconds=args.drain_seconds)
        # minimal stdout signal
        print(f"sent={stats.sent} dropped={stats.dropped} queued={stats.queued}")
        return 0

    return 1


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
