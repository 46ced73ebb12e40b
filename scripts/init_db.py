from __future__ import annotations

import sys
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import inspect

from rafflepool.db.engine import make_engine
from rafflepool.models import Base

PROJECT_ROOT = Path(__file__).resolve().parents[1]


def alembic_config() -> Config:
    cfg = Config(str(PROJECT_ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(PROJECT_ROOT / "alembic"))
    return cfg


def missing_tables() -> list[str]:
    """Return raffle tables declared in the models but absent from the database."""
    existing = set(inspect(make_engine()).get_table_names())
    return sorted(set(Base.metadata.tables) - existing)


def main(argv: list[str]) -> int:
    """Migrate the configured database to ``argv[0]`` (default ``head``)."""
    revision = argv[0] if argv else "head"
    command.upgrade(alembic_config(), revision)

    missing = missing_tables()
    if missing:
        print("Migrated to", revision, "but tables are missing:", ", ".join(missing))
        return 1
    print("Migrated to", revision, "- raffle tables:", ", ".join(sorted(Base.metadata.tables)))
    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
