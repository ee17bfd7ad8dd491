"""CLI entry point: python main.py signals.jsonl --advance-minutes 30

Replays a JSON-lines file of candidate signals through the alert engine
on a virtual clock, then prints the resulting alerts and statistics.

Each line is an object with ``source``, ``severity`` and ``title`` and
optionally ``description``, ``symbol``, ``metadata`` and
``delay_seconds`` (virtual time to let pass before submitting it).
"""

import argparse
import json
import sys
from dataclasses import asdict

from src.alert_engine import AlertConfig, AlertEngineError, AlertManager, VirtualClock
from src.logging_config import LoggingConfig, LogLevel, configure_logging
from src.settings import get_settings


def load_signals(path: str) -> list[dict]:
    signals = []
    with open(path, encoding="utf-8") as fh:
        for lineno, line in enumerate(fh, start=1):
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            try:
                signals.append(json.loads(line))
            except json.JSONDecodeError as exc:
                raise SystemExit(f"{path}:{lineno}: invalid JSON ({exc.msg})")
    return signals


def replay(manager: AlertManager, clock: VirtualClock, signals: list[dict]) -> dict:
    """Feed signals to the manager, advancing virtual time between them."""
    summary = {"submitted": 0, "created": 0, "dropped": 0, "rejected": 0}
    for signal in signals:
        clock.advance(seconds=float(signal.get("delay_seconds", 0)))
        summary["submitted"] += 1
        try:
            alert = manager.create_alert(
                source=signal.get("source", ""),
                severity=signal.get("severity", ""),
                title=signal.get("title", ""),
                description=signal.get("description", ""),
                symbol=signal.get("symbol"),
                metadata=signal.get("metadata"),
            )
        except AlertEngineError as exc:
            summary["rejected"] += 1
            print(f"  rejected: {exc.message}", file=sys.stderr)
            continue
        summary["created" if alert else "dropped"] += 1
    return summary


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description="Replay oracle monitor signals through the alert engine"
    )
    parser.add_argument("signals", help="Path to a JSON-lines file of signals")
    parser.add_argument(
        "--advance-minutes", type=float, default=0.0,
        help="Virtual minutes to run after the last signal (default: 0)"
    )
    parser.add_argument(
        "--json", action="store_true",
        help="Print alerts and stats as JSON"
    )
    parser.add_argument(
        "--verbose", action="store_true",
        help="Log engine activity to stderr"
    )
    args = parser.parse_args(argv)

    settings = get_settings()
    # Logs go to stderr so --json output stays parseable
    configure_logging(
        LoggingConfig.from_settings(
            settings, level=LogLevel.DEBUG if args.verbose else LogLevel.WARNING
        ),
        stream=sys.stderr,
    )

    clock = VirtualClock()
    config = AlertConfig.from_settings(settings)
    manager = AlertManager(config=config, clock=clock)

    summary = replay(manager, clock, load_signals(args.signals))
    if args.advance_minutes > 0:
        clock.advance(minutes=args.advance_minutes)

    alerts = manager.get_alerts()
    stats = manager.get_stats()
    manager.stop()

    if args.json:
        print(json.dumps({
            "summary": summary,
            "alerts": [a.to_dict() for a in alerts],
            "stats": asdict(stats),
        }, indent=2))
        return 0

    print("=" * 60)
    print("ORACLE ALERT REPLAY")
    print(
        f"Signals: {summary['submitted']}  created: {summary['created']}  "
        f"dropped: {summary['dropped']}  rejected: {summary['rejected']}"
    )
    print("=" * 60)
    for alert in alerts:
        print(
            f"{alert.created_at:%H:%M:%S}  {alert.severity.value:8s} {alert.status.value:12s} "
            f"L{alert.escalation_level}  {alert.source}/{alert.symbol or '-'}  {alert.title}"
        )
    print("-" * 60)
    print(f"Total: {stats.total_alerts}  active: {stats.active_alerts}  "
          f"escalation rate: {stats.escalation_rate:.1%}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
