#!/usr/bin/env python3
# sgglaw/db/run_migrations.py
"""
Runner de migrations SQL sequenciais.

Uso:
    python -m sgglaw.db.run_migrations          # roda todas pendentes
    python -m sgglaw.db.run_migrations --status  # mostra historico

Requer: POSTGRES_CONNSTR env var.
"""
from __future__ import annotations

import os
import sys
import glob
import hashlib
import logging
import argparse
from typing import List, Set

from sgglaw.config import POSTGRES_CONNSTR
from sgglaw.db.connection import ConnectionPool

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = os.path.join(os.path.dirname(__file__), "migrations")

HISTORY_DDL = """
CREATE TABLE IF NOT EXISTS _migration_history (
    id          SERIAL PRIMARY KEY,
    filename    VARCHAR(200) NOT NULL UNIQUE,
    checksum    VARCHAR(64)  NOT NULL,
    applied_at  TIMESTAMPTZ  NOT NULL DEFAULT now()
);
"""


def _sha256_file(path: str) -> str:
    with open(path, "r", encoding="utf-8") as f:
        return hashlib.sha256(f.read().encode("utf-8")).hexdigest()


def list_migrations(migrations_dir: str = MIGRATIONS_DIR) -> List[str]:
    return sorted(glob.glob(os.path.join(migrations_dir, "*.sql")))


def pending_migrations(applied: Set[str], migrations_dir: str = MIGRATIONS_DIR) -> List[str]:
    return [m for m in list_migrations(migrations_dir) if os.path.basename(m) not in applied]


def _ensure_history_table(conn) -> None:
    with conn.cursor() as cur:
        cur.execute(HISTORY_DDL)
    conn.commit()


def _get_applied(conn) -> Set[str]:
    with conn.cursor() as cur:
        cur.execute("SELECT filename FROM _migration_history ORDER BY id")
        return {row[0] for row in cur.fetchall()}


def run_migrations(pool: ConnectionPool) -> int:
    conn = pool.get_conn()
    try:
        _ensure_history_table(conn)
        pending = pending_migrations(_get_applied(conn))

        if not pending:
            logger.info("Nenhuma migration pendente.")
            return 0

        for mpath in pending:
            fname = os.path.basename(mpath)
            checksum = _sha256_file(mpath)
            with open(mpath, "r", encoding="utf-8") as f:
                sql = f.read()

            logger.info("Aplicando migration: %s", fname)
            try:
                with conn.cursor() as cur:
                    cur.execute(sql)
                    cur.execute(
                        "INSERT INTO _migration_history (filename, checksum) VALUES (%s, %s)",
                        (fname, checksum),
                    )
                conn.commit()
            except Exception as e:
                conn.rollback()
                logger.error("FALHA em %s: %s", fname, e)
                return 1

        logger.info("%d migration(s) aplicada(s) com sucesso.", len(pending))
        return 0
    finally:
        pool.release_conn(conn)


def show_status(pool: ConnectionPool) -> int:
    conn = pool.get_conn()
    try:
        _ensure_history_table(conn)
        with conn.cursor() as cur:
            cur.execute("SELECT filename, applied_at FROM _migration_history ORDER BY id")
            rows = cur.fetchall()

        for fname, applied_at in rows:
            print(f"  [OK] {fname}  ({applied_at:%Y-%m-%d %H:%M:%S})")
        pending = pending_migrations({r[0] for r in rows})
        for mpath in pending:
            print(f"  [--] {os.path.basename(mpath)}  (pendente)")

        print(f"\nTotal: {len(rows)} aplicada(s), {len(pending)} pendente(s)")
        return 0
    finally:
        pool.release_conn(conn)


def main() -> int:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")

    parser = argparse.ArgumentParser(description="SGG DB Migrations")
    parser.add_argument("--status", action="store_true", help="Mostra historico")
    args = parser.parse_args()

    pool = ConnectionPool(POSTGRES_CONNSTR)
    try:
        if args.status:
            return show_status(pool)
        return run_migrations(pool)
    finally:
        pool.close()


if __name__ == "__main__":
    sys.exit(main())
