#!/usr/bin/env python3
"""
Worked calculation examples using the real engine, service and store.

Loads the YAML engine configuration, wires CampaignService over the
SQLAlchemy store and walks through:
  - spend percentage at storage and display precision
  - unit cost display for a YouTube CPV buy
  - net revenue and media budget from price, referral and markup
  - a bulk upsert run twice (second run updates only)

Usage:
    python3 scripts/demo_calculations.py
    python3 scripts/demo_calculations.py --db-url sqlite:///demo.db
    python3 scripts/demo_calculations.py --config path/to/engine.yaml --log
"""

import argparse
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

# ---------------------------------------------------------------------------
# Project root on sys.path
# ---------------------------------------------------------------------------
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

AS_OF = datetime(2025, 2, 15, 12, 0, 0, tzinfo=timezone.utc)


def _sample_campaigns(count: int) -> list[dict]:
    return [
        {
            "name": f"Spring Awareness {n}",
            "campaign_number": f"CN-{n:04d}",
            "dates": {"start": "2025-01-01", "end": "2025-03-31"},
            "price": {"target_amount": "10000.00", "actual_amount": f"{3000 + n * 100}.00"},
            "media_budget": {"target_amount": "7500.00", "actual_spend": "2500.00"},
            "referral_rate": "10",
            "agency_markup_rate": "20",
            "metrics": {"units": "1250000", "clicks": "3100"},
        }
        for n in range(1, count + 1)
    ]


def _section(title: str) -> None:
    print()
    print(title)
    print("-" * len(title))


def main() -> int:
    parser = argparse.ArgumentParser(description="Campaign calculation demo")
    parser.add_argument("--db-url", default="sqlite:///:memory:", help="SQLAlchemy URL")
    parser.add_argument("--config", default=None, help="Engine YAML (default: built-in)")
    parser.add_argument("--campaigns", type=int, default=5, help="Campaigns to upsert")
    parser.add_argument("--log", action="store_true", help="Emit structured JSON logs")
    args = parser.parse_args()

    from campaign_batch.storage import SqlAlchemyRecordStore
    from campaign_config import get_active_config
    from campaign_config.bridges import build_engine
    from campaign_engines import CalculationPresenter, PrecisionContext
    from campaign_kernel.db.engine import (
        create_session_factory,
        create_tables,
        init_engine_from_url,
    )
    from campaign_kernel.domain.clock import DeterministicClock
    from campaign_kernel.logging_config import configure_logging
    from campaign_services import CampaignService

    if args.log:
        configure_logging(level=logging.INFO)

    config = get_active_config(args.config)
    clock = DeterministicClock(AS_OF)
    engine = build_engine(config, clock)
    print(f"Engine configuration {config.config_id} (version {engine.version})")
    print(f"  checksum {config.checksum[:16]}")

    _section("Spend percentage: 4000.00 of 10000.00")
    result = engine.calculate("spend_percentage", "4000.00", "10000.00")
    for context in (PrecisionContext.STORAGE, PrecisionContext.DISPLAY):
        narrowed = engine.with_precision(result, context)
        print(f"  {context.value:<8} {narrowed.as_string():>12}  ({narrowed.applied_rule})")

    _section("Unit cost: 1234.56 spend over 250000 YouTube views")
    presenter = CalculationPresenter(engine)
    display = presenter.format_unit_cost("1234.56", "250000", "youtube", "views")
    print(f"  {display.display_text}  (precision {display.precision})")

    _section("Net revenue and media budget: price 10000.00, referral 10%, markup 20%")
    net = engine.calculate("net_revenue", "10000.00", "10")
    budget = engine.calculate("media_budget", net.value, "20")
    print(f"  net revenue   {engine.with_precision(net, 'display').as_string()}")
    print(f"  media budget  {engine.with_precision(budget, 'display').as_string()}")

    _section(f"Bulk upsert of {args.campaigns} campaigns, twice")
    db = init_engine_from_url(args.db_url)
    create_tables(db)
    session = create_session_factory(db)()
    try:
        store = SqlAlchemyRecordStore(
            session, entity_type="campaign", natural_key_field="campaign_number", clock=clock,
        )
        service = CampaignService.from_config(store, config, clock)
        campaigns = _sample_campaigns(args.campaigns)
        for run in (1, 2):
            outcome = service.bulk_upsert(campaigns)
            session.commit()
            print(
                f"  run {run}: inserted={outcome.inserted} updated={outcome.updated} "
                f"failed={outcome.failed_count} version={outcome.calculation_version}"
            )

        stored = store.find_by_natural_key("CN-0001")
        price = stored["price"]
        print(
            f"  CN-0001 spend {price['spend_percentage']}%  pacing "
            f"{price.get('pacing_percentage')}% ({price.get('pacing_status')})"
        )
        print(f"  history entries: {len(store.history_for(stored['id']))}")
    finally:
        session.close()
        db.dispose()
    return 0


if __name__ == "__main__":
    sys.exit(main())
