#!/usr/bin/env python3
"""Re-query Digiflazz for purchases left debited without a final verdict, then settle or reverse them."""

from __future__ import annotations

import argparse
import json

from app.core.config import get_provider_config, get_settings
from app.core.database import session_scope
from app.core.logging import configure_logging
from app.services.catalog import ProductCatalog
from app.services.digiflazz import DigiflazzClient
from app.services.ledger import SqlLedgerGateway
from app.services.ppob import PaymentOrchestrator
from app.services.ppob_records import TransactionStore


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Reconcile PPOB transactions stuck in DEBITED/SUBMITTED.")
    parser.add_argument(
        "--older-than",
        type=int,
        default=300,
        help="Only rows untouched for at least this many seconds (default: 300)",
    )
    parser.add_argument("--limit", type=int, default=100, help="Maximum rows per run (default: 100)")
    return parser


def main() -> None:
    args = build_parser().parse_args()
    configure_logging()
    settings = get_settings()
    config = get_provider_config()
    with session_scope() as db:
        orchestrator = PaymentOrchestrator(
            ledger=SqlLedgerGateway(db),
            provider=DigiflazzClient(config),
            catalog=ProductCatalog(db),
            store=TransactionStore(db),
            config=config,
            status_delay_seconds=settings.digiflazz_status_delay_seconds,
        )
        summary = orchestrator.reconcile_pending(older_than_seconds=args.older_than, limit=args.limit)
    print(json.dumps(summary))


if __name__ == "__main__":
    main()
