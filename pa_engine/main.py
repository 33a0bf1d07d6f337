"""Command-line entry point - evaluate a patient chart against a plan's PA criteria.

Usage:
    python -m pa_engine.main chart.json --plan "CVS Health (Aetna)" --drug Wegovy --dose "2.4 mg"
"""
import argparse
import asyncio
import json
import sys
from datetime import date
from pathlib import Path
from typing import List, Optional

from pa_engine.config.settings import get_settings
from pa_engine.config.logging_config import setup_logging, get_logger
from pa_engine.evaluation import ApprovalEngine, ConfigurationError, EvaluationRequest
from pa_engine.models import EvaluationMode, snapshot_from_chart
from pa_engine.storage import DurableCacheStore, TieredMetadataCache

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Estimate prior-authorization approval likelihood")
    parser.add_argument("chart", help="Patient chart JSON file")
    parser.add_argument("--plan", required=True, help="Insurance plan name")
    parser.add_argument("--drug", required=True, help="Drug display name")
    parser.add_argument("--dose", help="Selected dose, e.g. '1.7 mg'")
    parser.add_argument("--indication", help="Prescribed indication, e.g. 'weight management'")
    parser.add_argument("--documents", help="JSON file mapping document keys to true/false")
    parser.add_argument("--as-of", help="Evaluation date (YYYY-MM-DD), defaults to today")
    parser.add_argument("--mode", choices=[m.value for m in EvaluationMode], default=EvaluationMode.STANDARD.value)
    parser.add_argument("--enhanced", action="store_true", help="Use external drug metadata")
    parser.add_argument("--durable-cache", action="store_true", help="Persist metadata lookups to the cache database")
    return parser


def _load_json(path: str):
    with open(Path(path), "r", encoding="utf-8") as f:
        return json.load(f)


async def _evaluate_enhanced(engine: ApprovalEngine, request: EvaluationRequest, durable: bool):
    store = None
    if durable:
        store = DurableCacheStore.from_settings(engine.settings)
        await store.init()
    engine.cache = TieredMetadataCache.from_settings(engine.settings, store=store)
    try:
        return await engine.evaluate_enhanced(request)
    finally:
        if store is not None:
            await store.dispose()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    # stdout carries the report
    setup_logging(log_level=settings.log_level, stream=sys.stderr)

    try:
        engine = ApprovalEngine.from_settings(settings)
        request = EvaluationRequest(
            patient=snapshot_from_chart(_load_json(args.chart)),
            insurance_plan=args.plan,
            drug_name=args.drug,
            dose=args.dose,
            indication=args.indication,
            documentation=_load_json(args.documents) if args.documents else None,
            as_of=date.fromisoformat(args.as_of) if args.as_of else None,
            mode=EvaluationMode(args.mode),
        )
        if args.enhanced:
            report = asyncio.run(_evaluate_enhanced(engine, request, args.durable_cache))
        else:
            report = engine.evaluate(request)
    except ConfigurationError as e:
        logger.error("Evaluation failed", error=str(e))
        return 2
    except (OSError, json.JSONDecodeError) as e:
        logger.error("Could not read input", error=str(e))
        return 2
    except ValueError as e:
        # Bad --as-of date or chart/documents content that fails validation
        logger.error("Invalid input", error=str(e))
        return 2

    print(report.model_dump_json(indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
