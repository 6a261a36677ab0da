#!/usr/bin/env python3
"""
Container entrypoint for the MotoRent API: wait for Postgres, apply migrations,
seed the admin account and the demo fleet, then exec uvicorn.
"""
import os
import sys

from app.core.config import settings

if settings.DATABASE_URL.startswith("postgresql"):
    import wait_for_db  # noqa: F401

from alembic.config import Config
from alembic import command

alembic_cfg = Config(os.path.join(os.path.dirname(os.path.abspath(__file__)), "alembic.ini"))
alembic_cfg.set_main_option("sqlalchemy.url", settings.DATABASE_URL)
command.upgrade(alembic_cfg, "head")

# fresh engine: the app engine may have been created while env.py loaded
from app.db.session import make_engine
from sqlalchemy.orm import sessionmaker
seed_engine = make_engine(settings.DATABASE_URL)
from app.seed import run as run_seed
run_seed(sessionmaker(autocommit=False, autoflush=False, bind=seed_engine)())
seed_engine.dispose()

port = os.getenv("PORT", "8000")
os.execv(
    sys.executable,
    [sys.executable, "-m", "uvicorn", "app.main:app", "--host", "0.0.0.0", "--port", port],
)
