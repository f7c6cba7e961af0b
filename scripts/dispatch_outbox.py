#!/usr/bin/env python3
from __future__ import annotations

import argparse
import sys
import time
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.append(str(ROOT))

from app.core.database import SessionLocal  # noqa: E402
from app.core.logging_setup import configure_logging  # noqa: E402
import app.services.event_handlers  # noqa: E402,F401  registra handlers do event bus
from app.services.outbox import dispatch_pending  # noqa: E402


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Reprocessa eventos pendentes da outbox.")
    parser.add_argument("--limit", type=int, default=100, help="Máximo de eventos por rodada")
    parser.add_argument(
        "--loop",
        action="store_true",
        help="Continua rodando, aguardando --interval segundos entre rodadas",
    )
    parser.add_argument("--interval", type=float, default=5.0, help="Segundos entre rodadas")
    return parser.parse_args()


def run_once(limit: int) -> dict[str, int]:
    db = SessionLocal()
    try:
        return dispatch_pending(db, limit=limit)
    finally:
        db.close()


def main() -> int:
    args = parse_args()
    configure_logging()

    while True:
        summary = run_once(args.limit)
        print(
            f"Processados: {summary['processed']} | "
            f"enviados: {summary['sent']} | em retentativa: {summary['retrying']}"
        )
        if not args.loop:
            return 0
        time.sleep(args.interval)


if __name__ == "__main__":
    raise SystemExit(main())
