# === scripts/run_adaptation_cycle.py ===
"""Runs adaptation cycles against live psutil metrics and prints the results as JSON."""

import argparse
import asyncio
import dataclasses
import json
import logging
import sys
from enum import Enum
from pathlib import Path
from typing import Any, Dict

from alex_adaptation.adaptation_controller import AdaptationController
from alex_adaptation.models.exceptions import ConfigurationError
from alex_adaptation.utils.metrics_providers import PsutilMetricsProvider


def _json_default(obj: Any) -> Any:
    if isinstance(obj, Enum):
        return obj.value
    if dataclasses.is_dataclass(obj):
        return dataclasses.asdict(obj)
    if isinstance(obj, (set, frozenset)):
        return sorted(obj)
    return str(obj)


def summarize_cycle(result: Dict[str, Any]) -> Dict[str, Any]:
    report = result["performance_report"]
    decision = result["decision"]
    optimization = result["optimization"]
    conflict_report = result["conflict_report"]
    return {
        "cycle": result["cycle"],
        "overall_score": report.overall_score,
        "bottlenecks": [b.type.value for b in report.bottlenecks],
        "decision": {"id": decision.id, "type": decision.type, "confidence": decision.confidence, "status": decision.status},
        "optimization": {
            "status": optimization.get("status"),
            "adjustments": [
                {"parameter": a.parameter, "old_value": a.old_value, "new_value": a.new_value}
                for a in optimization.get("adjustments", [])
            ],
        },
        "conflicts": conflict_report.summary,
        "actions": {
            "decisions": [getattr(d, "id", d) for d in result["actions"]["decisions"]],
            "deferred_decisions": result["actions"]["deferred_decisions"],
            "system_changes": result["actions"]["system_changes"],
            "requires_review": result["actions"]["requires_review"],
        },
    }


async def run(args: argparse.Namespace) -> int:
    application_metrics: Dict[str, Any] = {}
    if args.app_metrics:
        with open(args.app_metrics, "r", encoding="utf-8") as fp:
            application_metrics = json.load(fp)

    provider = PsutilMetricsProvider(application_metrics)
    try:
        controller = AdaptationController(args.config, metrics_provider=provider)
    except ConfigurationError as e:
        print(f"❌ ERROR: {e}", file=sys.stderr)
        return 2

    if not await controller.initialize():
        print("❌ ERROR: Adaptation controller failed to initialize.", file=sys.stderr)
        return 1
    try:
        for i in range(args.cycles):
            result = await controller.run_cycle()
            output = result if args.full else summarize_cycle(result)
            print(json.dumps(output, default=_json_default, indent=2 if args.pretty else None))
            if i + 1 < args.cycles and args.interval > 0:
                await asyncio.sleep(args.interval)
    finally:
        await controller.shutdown()
    return 0


def main():
    default_config = Path(__file__).resolve().parent.parent / "config.toml"
    parser = argparse.ArgumentParser(description="Run Alex adaptation cycles")
    parser.add_argument("--config", default=str(default_config), help="Path to config.toml")
    parser.add_argument("--cycles", type=int, default=1, help="Number of cycles to run")
    parser.add_argument("--interval", type=float, default=0.0, help="Seconds to wait between cycles")
    parser.add_argument("--app-metrics", help="JSON file with application counters (performance, throughput, quality, errors)")
    parser.add_argument("--full", action="store_true", help="Print complete cycle results instead of a summary")
    parser.add_argument("--pretty", action="store_true", help="Indent JSON output")
    parser.add_argument("--log-level", default="WARNING", help="Logging level")
    args = parser.parse_args()

    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.WARNING),
                        format='%(asctime)s %(levelname)s %(name)s: %(message)s')
    sys.exit(asyncio.run(run(args)))

if __name__ == "__main__":
    main()
