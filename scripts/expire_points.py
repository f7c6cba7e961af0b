#!/usr/bin/env python3
from __future__ import annotations

import argparse
import sys
from datetime import datetime, timezone
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.append(str(ROOT))

from app.core.database import SessionLocal  # noqa: E402
from app.core.logging_setup import configure_logging  # noqa: E402
from app.services.points import expire_inactive_points  # noqa: E402


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Expira pontos de clientes inativos.")
    parser.add_argument(
        "--now",
        help="Data de referência ISO-8601 (padrão: agora, UTC)",
    )
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    configure_logging()

    now = None
    if args.now:
        try:
            now = datetime.fromisoformat(args.now)
        except ValueError:
            print(f"Data inválida: {args.now}")
            return 1
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)

    db = SessionLocal()
    try:
        summary = expire_inactive_points(db, now=now)
    finally:
        db.close()

    print(
        f"Clientes afetados: {summary['customers']} | "
        f"pontos expirados: {summary['points']} | falhas: {summary['failures']}"
    )
    return 1 if summary["failures"] else 0


if __name__ == "__main__":
    raise SystemExit(main())
