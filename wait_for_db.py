"""Block until Postgres accepts connections. Imported by start_api.py before migrating."""
import os
import time
from urllib.parse import urlparse

import psycopg2

DEFAULTS = {"host": "db", "port": 5432, "user": "motorent", "password": "motorent", "dbname": "motorent"}


def connection_params(database_url: str) -> dict:
    # SQLAlchemy URLs carry a driver suffix psycopg2 does not understand
    _, _, rest = database_url.partition("://")
    p = urlparse("postgresql://" + rest)
    return {
        "host": p.hostname or DEFAULTS["host"],
        "port": p.port or DEFAULTS["port"],
        "user": p.username or DEFAULTS["user"],
        "password": p.password or DEFAULTS["password"],
        "dbname": (p.path or "").lstrip("/") or DEFAULTS["dbname"],
    }


def wait(database_url: str, timeout_s: int) -> None:
    params = connection_params(database_url)
    print(f"[wait_for_db] Waiting for Postgres at {params['host']}:{params['port']} db={params['dbname']} (timeout={timeout_s}s)")
    deadline = time.time() + timeout_s
    while True:
        try:
            psycopg2.connect(connect_timeout=5, **params).close()
            print("[wait_for_db] Postgres is ready.")
            return
        except psycopg2.OperationalError as e:
            if time.time() > deadline:
                print(f"[wait_for_db] Timed out waiting for DB. Last error: {e}")
                raise
            time.sleep(1)


DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL:
    raise SystemExit("DATABASE_URL is not set")
wait(DATABASE_URL, int(os.getenv("DB_WAIT_TIMEOUT", "60")))
