# sgglaw/db/connection.py
"""
Pool de conexoes Postgres: instancia explicita, sem singleton global.

Uso:
    from sgglaw.db.connection import ConnectionPool

    pool = ConnectionPool(cfg.postgres_connstr)
    conn = pool.get_conn()
    try:
        with conn.cursor() as cur:
            cur.execute("SELECT 1")
    finally:
        pool.release_conn(conn)

Config:
    POSTGRES_CONNSTR (env var): connection string completa
    Formato: "host=... port=5432 dbname=sgg user=... password=... sslmode=require"

Lazy init; ThreadedConnectionPool porque os estagios rodam em ThreadPoolExecutor.
"""
from __future__ import annotations

import logging
import threading
from contextlib import contextmanager

from psycopg2 import pool as pg_pool

from sgglaw.errors import ConfigurationError

logger = logging.getLogger(__name__)

MIN_CONN = 1
MAX_CONN = 10


class ConnectionPool:
    def __init__(self, connstr: str, min_conn: int = MIN_CONN, max_conn: int = MAX_CONN):
        if not connstr:
            raise ConfigurationError(
                "POSTGRES_CONNSTR nao configurada. "
                "Defina como env var ou use --in-memory."
            )
        self._connstr = connstr
        self._min_conn = min_conn
        self._max_conn = max_conn
        self._pool: pg_pool.ThreadedConnectionPool | None = None
        self._lock = threading.Lock()

    def _init_pool(self) -> pg_pool.ThreadedConnectionPool:
        if self._pool is None:
            with self._lock:
                if self._pool is None:
                    self._pool = pg_pool.ThreadedConnectionPool(
                        self._min_conn, self._max_conn, self._connstr
                    )
                    logger.info("Postgres pool inicializado (max=%d)", self._max_conn)
        return self._pool

    def get_conn(self):
        """Retorna uma conexao do pool."""
        conn = self._init_pool().getconn()
        conn.autocommit = False
        return conn

    def release_conn(self, conn, close: bool = False) -> None:
        """Devolve conexao ao pool."""
        if self._pool is not None and conn is not None:
            self._pool.putconn(conn, close=close)

    @contextmanager
    def transaction(self):
        """conn com commit no sucesso, rollback + re-raise na falha."""
        conn = self.get_conn()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            self.release_conn(conn)

    def close(self) -> None:
        """Fecha todas as conexoes (shutdown)."""
        if self._pool is not None:
            self._pool.closeall()
            self._pool = None
            logger.info("Postgres pool fechado")
