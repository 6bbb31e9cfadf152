"""Commission reporting CLI (aggregate/validate/recalc-preview)."""

from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Any, Sequence

from lottery_commission.commission.config import (
    DEFAULT_SETTINGS_PATH,
    CommissionSettings,
    load_commission_settings,
)
from lottery_commission.commission.resolver import CommissionResolver
from lottery_commission.logging_utils import configure_logging

from .aggregation import CommissionAggregationEngine
from .contracts import DIMENSION_TOTAL, GROUPED_DIMENSIONS, AggregationFilter
from .recalculation import preview_recalculation
from .snapshots import CommissionSnapshotReader, CommissionSnapshotValidator
from .storage import CommissionStore


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Commission snapshot reporting")
    parser.add_argument("--settings", default=None, help="Commission settings YAML")
    parser.add_argument("--locator", default=None, help="sqlite path or postgres DSN (overrides settings)")
    sub = parser.add_subparsers(dest="command", required=True)

    aggregate = sub.add_parser("aggregate", help="Grouped commission totals for a period")
    aggregate.add_argument("--dimension", choices=[*GROUPED_DIMENSIONS, DIMENSION_TOTAL], default=DIMENSION_TOTAL)
    aggregate.add_argument("--window-id", default=None)
    aggregate.add_argument("--seller-id", default=None)
    aggregate.add_argument("--bank-id", default=None)
    aggregate.add_argument("--draw-id", default=None)
    aggregate.add_argument("--lottery-id", default=None)
    aggregate.add_argument("--date-from", default=None, help="Business date lower bound (inclusive)")
    aggregate.add_argument("--date-to", default=None, help="Business date upper bound (inclusive)")
    aggregate.add_argument("--ticket-id", action="append", default=None)

    validate = sub.add_parser("validate", help="Check stored snapshots for tickets")
    validate.add_argument("--ticket-id", action="append", required=True)

    recalc = sub.add_parser("recalc-preview", help="Dry-run comparison against current seller policies")
    recalc.add_argument("--ticket-id", action="append", required=True)
    return parser


def _load_settings(path: str | None) -> CommissionSettings | None:
    if path:
        return load_commission_settings(Path(path))
    if Path(DEFAULT_SETTINGS_PATH).exists():
        return load_commission_settings(Path(DEFAULT_SETTINGS_PATH))
    return None


def _emit(payload: Any) -> None:
    print(json.dumps(payload, sort_keys=True, ensure_ascii=True))


def _cmd_aggregate(args: argparse.Namespace, store: CommissionStore, reader: CommissionSnapshotReader) -> int:
    filters = AggregationFilter(
        window_id=args.window_id,
        seller_id=args.seller_id,
        bank_id=args.bank_id,
        draw_id=args.draw_id,
        lottery_id=args.lottery_id,
        date_from=args.date_from,
        date_to=args.date_to,
        ticket_ids=tuple(args.ticket_id) if args.ticket_id else None,
    )
    engine = CommissionAggregationEngine(store=store, reader=reader)
    results = engine.aggregate(args.dimension, filters)
    _emit(
        {
            "dimension": args.dimension,
            "filters": filters.as_dict(),
            "results": {key: value.as_dict() for key, value in results.items()},
        }
    )
    return 0


def _cmd_validate(args: argparse.Namespace, reader: CommissionSnapshotReader, settings: CommissionSettings | None) -> int:
    if settings is not None:
        validator = CommissionSnapshotValidator(reader=reader, tolerance=settings.amount_tolerance)
    else:
        validator = CommissionSnapshotValidator(reader=reader)
    report = validator.validate(args.ticket_id)
    _emit(report.as_dict())
    return 0 if report.valid else 1


def _cmd_recalc_preview(
    args: argparse.Namespace,
    store: CommissionStore,
    reader: CommissionSnapshotReader,
    settings: CommissionSettings | None,
) -> int:
    if settings is not None:
        resolver = CommissionResolver.from_settings(settings, policy_lookup=store)
    else:
        resolver = CommissionResolver(policy_lookup=store)
    drifts = preview_recalculation(reader, resolver, args.ticket_id)
    _emit({"dry_run": True, "jugadas": [item.as_dict() for item in drifts]})
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    configure_logging()
    parser = _build_parser()
    args = parser.parse_args(argv)
    settings = _load_settings(args.settings)
    locator = args.locator or (settings.store_locator if settings else None)
    if not locator:
        raise SystemExit("STORE_LOCATOR_REQUIRED")
    store = CommissionStore(locator=locator)
    if settings is not None:
        reader = CommissionSnapshotReader(store=store, period_statuses=settings.period_statuses)
    else:
        reader = CommissionSnapshotReader(store=store)
    if args.command == "aggregate":
        return _cmd_aggregate(args, store, reader)
    if args.command == "validate":
        return _cmd_validate(args, reader, settings)
    if args.command == "recalc-preview":
        return _cmd_recalc_preview(args, store, reader, settings)
    raise SystemExit("UNKNOWN_COMMAND")


if __name__ == "__main__":
    raise SystemExit(main())
