"""Versioned schema migrations.

Migrations are Python modules named ``NNN_description.py`` in the
top-level ``migrations/`` directory. Each one defines::

    version = "001"
    description = "initial_schema"

    def up(conn): ...      # receives a psycopg2 connection
    def down(conn): ...

Applied versions are recorded, with a checksum of the file, in the
``_migrations`` table. A file edited after it was applied shows up as
``checksum_mismatch`` in ``MigrationRunner.status()``.
"""

from __future__ import annotations

import hashlib
import importlib.util
import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from pathlib import Path
from types import ModuleType
from typing import Any

from psycopg2.extras import RealDictCursor

logger = logging.getLogger(__name__)

MIGRATIONS_TABLE = "_migrations"
REQUIRED_ATTRIBUTES = ("version", "description", "up", "down")

DEFAULT_MIGRATIONS_DIR = Path(__file__).resolve().parents[3] / "migrations"


class MigrationState(StrEnum):
    APPLIED = "applied"
    PENDING = "pending"
    CHECKSUM_MISMATCH = "checksum_mismatch"


@dataclass(order=True)
class Migration:
    """A migration file found on disk."""

    version: str
    description: str
    checksum: str
    path: Path
    module: ModuleType


@dataclass
class MigrationStatus:
    version: str
    description: str
    state: MigrationState
    applied_at: datetime | None = None


def _load(path: Path) -> Migration:
    module_spec = importlib.util.spec_from_file_location(f"govoracle_migration_{path.stem}", path)
    if module_spec is None or module_spec.loader is None:
        raise ValueError(f"Cannot load migration: {path}")
    module = importlib.util.module_from_spec(module_spec)
    module_spec.loader.exec_module(module)

    missing = [attr for attr in REQUIRED_ATTRIBUTES if not hasattr(module, attr)]
    if missing:
        raise ValueError(f"Migration {path.name} missing required attribute: {', '.join(missing)}")
    return Migration(
        version=module.version,
        description=module.description,
        checksum=hashlib.sha256(path.read_bytes()).hexdigest()[:16],
        path=path,
        module=module,
    )


class MigrationRunner:
    """Applies and rolls back migrations against the oracle database.

    Args:
        migrations_dir: Directory of ``NNN_description.py`` files.
        connection_factory: Returns a fresh psycopg2 connection, closed by
            the runner afterwards. Defaults to borrowing from the shared pool.
    """

    def __init__(
        self,
        migrations_dir: str | Path | None = None,
        connection_factory: Callable[[], Any] | None = None,
    ):
        self.migrations_dir = Path(migrations_dir) if migrations_dir is not None else DEFAULT_MIGRATIONS_DIR
        self._connection_factory = connection_factory
        self._migrations: list[Migration] | None = None

    @contextmanager
    def _connection(self) -> Iterator[Any]:
        if self._connection_factory is not None:
            conn = self._connection_factory()
            try:
                yield conn
            finally:
                conn.close()
            return

        from .db import get_connection, put_connection

        conn = get_connection()
        try:
            yield conn
        finally:
            put_connection(conn)

    def discover(self) -> list[Migration]:
        """Migration files in version order (cached after the first call)."""
        if self._migrations is None:
            if not self.migrations_dir.is_dir():
                logger.warning("Migrations directory not found: %s", self.migrations_dir)
                self._migrations = []
            else:
                paths = [
                    p for p in self.migrations_dir.glob("*.py") if "_" in p.stem and p.stem.split("_", 1)[0].isdigit()
                ]
                self._migrations = sorted(_load(p) for p in paths)
        return self._migrations

    def _applied(self, conn: Any) -> dict[str, dict[str, Any]]:
        with conn.cursor() as cur:
            cur.execute(f"""
                CREATE TABLE IF NOT EXISTS {MIGRATIONS_TABLE} (
                    version TEXT PRIMARY KEY,
                    description TEXT NOT NULL,
                    checksum TEXT NOT NULL,
                    applied_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
                )
            """)
        conn.commit()
        with conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(f"SELECT version, checksum, applied_at FROM {MIGRATIONS_TABLE} ORDER BY version")
            return {row["version"]: row for row in cur.fetchall()}

    def status(self) -> list[MigrationStatus]:
        with self._connection() as conn:
            applied = self._applied(conn)

        result = []
        for m in self.discover():
            row = applied.get(m.version)
            if row is None:
                state = MigrationState.PENDING
            elif row["checksum"] == m.checksum:
                state = MigrationState.APPLIED
            else:
                state = MigrationState.CHECKSUM_MISMATCH
            result.append(MigrationStatus(m.version, m.description, state, row["applied_at"] if row else None))
        return result

    def _run(self, conn: Any, migration: Migration, direction: str) -> None:
        """Run one step and its bookkeeping row in a single transaction."""
        try:
            getattr(migration.module, direction)(conn)
            with conn.cursor() as cur:
                if direction == "up":
                    cur.execute(
                        f"INSERT INTO {MIGRATIONS_TABLE} (version, description, checksum) VALUES (%s, %s, %s)",
                        (migration.version, migration.description, migration.checksum),
                    )
                else:
                    cur.execute(f"DELETE FROM {MIGRATIONS_TABLE} WHERE version = %s", (migration.version,))
            conn.commit()
        except Exception:
            conn.rollback()
            logger.exception("Migration %s (%s) failed", migration.version, direction)
            raise

    def up(self, *, target: str | None = None, dry_run: bool = False) -> list[str]:
        """Apply pending migrations up to `target` (inclusive); returns their versions."""
        with self._connection() as conn:
            applied = self._applied(conn)
            pending = [
                m for m in self.discover() if m.version not in applied and (target is None or m.version <= target)
            ]
            if not pending:
                logger.info("No pending migrations")
            for migration in pending:
                if dry_run:
                    logger.info("[DRY RUN] Would apply %s %s", migration.version, migration.description)
                    continue
                logger.info("Applying migration %s %s", migration.version, migration.description)
                self._run(conn, migration, "up")
        return [m.version for m in pending]

    def down(self, *, target: str | None = None, dry_run: bool = False) -> list[str]:
        """Roll back every migration above `target`, or only the latest when no target is given."""
        by_version = {m.version: m for m in self.discover()}
        rolled_back: list[str] = []
        with self._connection() as conn:
            versions = sorted(self._applied(conn), reverse=True)
            versions = [v for v in versions if v > target] if target is not None else versions[:1]
            for version in versions:
                migration = by_version.get(version)
                if migration is None:
                    logger.warning("No file for applied migration %s, leaving it in place", version)
                    continue
                if dry_run:
                    logger.info("[DRY RUN] Would roll back %s %s", version, migration.description)
                else:
                    logger.info("Rolling back migration %s %s", version, migration.description)
                    self._run(conn, migration, "down")
                rolled_back.append(version)
        return rolled_back
