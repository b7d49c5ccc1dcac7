from __future__ import annotations

import sys
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import inspect

from raffledraw.db.engine import make_engine
from raffledraw.models import Base

PROJECT_ROOT = Path(__file__).resolve().parents[1]


def alembic_config() -> Config:
    cfg = Config(str(PROJECT_ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(PROJECT_ROOT / "alembic"))
    return cfg


def missing_tables() -> list[str]:
    """Return raffle tables declared on the models but absent from the database."""
    existing = set(inspect(make_engine()).get_table_names())
    return sorted(set(Base.metadata.tables) - existing)


def main(target_revision: str = "head") -> int:
    """Migrate the configured database and confirm every raffle table exists."""
    command.upgrade(alembic_config(), target_revision)
    missing = missing_tables()
    if missing:
        print("Missing tables after upgrade:", ", ".join(missing), file=sys.stderr)
        return 1
    print("Raffle tables ready:", ", ".join(sorted(Base.metadata.tables)))
    return 0


if __name__ == "__main__":
    raise SystemExit(main(*sys.argv[1:2]))
