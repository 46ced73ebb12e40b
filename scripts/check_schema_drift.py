"""Compare the live database schema with the raffle models.

Exit status: 0 when they match, 1 on drift, 2 when the check itself fails.
"""

from __future__ import annotations

import sys

from alembic.autogenerate import api as ag_api
from alembic.runtime.migration import MigrationContext

from rafflepool.db.engine import make_engine
from rafflepool.models import Base


def _describe(ops, depth: int = 0) -> list[str]:
    lines = []
    for op in ops:
        lines.append("  " * depth + f"- {op}")
        lines.extend(_describe(getattr(op, "ops", None) or [], depth + 1))
    return lines


def main() -> int:
    engine = make_engine()
    target = engine.url.render_as_string(hide_password=True)
    try:
        with engine.connect() as connection:
            context = MigrationContext.configure(
                connection=connection,
                opts={
                    "compare_type": True,
                    "render_as_batch": connection.dialect.name == "sqlite",
                },
            )
            upgrade_ops = ag_api.produce_migrations(context, Base.metadata).upgrade_ops
    except Exception as exc:
        print(f"[{target}] schema check failed: {exc}", file=sys.stderr)
        return 2

    if upgrade_ops is None or upgrade_ops.is_empty():
        print(f"[{target}] raffle schema is up to date")
        return 0
    print(f"[{target}] raffle schema drift detected:")
    print("\n".join(_describe(upgrade_ops.ops or [])))
    return 1


if __name__ == "__main__":
    sys.exit(main())
