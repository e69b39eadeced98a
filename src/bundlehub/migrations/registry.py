"""
Migration bookkeeping.

Each migration is a named entry in the durable state store with a
pending/completed/skipped status. Entries are never deleted, so a migration
that finished once is provably skipped on every later startup.
"""

from typing import Any, Awaitable, Callable, Dict, Optional

from bundlehub.constants import MIGRATION_STATE_KEY
from bundlehub.exceptions import BundleHubError, MigrationError
from bundlehub.log_utils import logger
from bundlehub.models import MigrationRecord, MigrationStatus, utc_now_iso
from bundlehub.storage import Storage


class MigrationRegistry:
    """
    Tracks which persisted-state migrations have run.

    Construct one per process and pass it to whatever runs migrations.
    """

    def __init__(self, state_store: Storage) -> None:
        self.state_store = state_store

    def get_migration_state(self) -> Dict[str, MigrationRecord]:
        raw = self.state_store.get_state(MIGRATION_STATE_KEY, {}) or {}
        state: Dict[str, MigrationRecord] = {}
        for name, entry in raw.items():
            if isinstance(entry, dict):
                state[name] = MigrationRecord.from_dict(entry)
        return state

    def _save(self, name: str, record: MigrationRecord) -> None:
        raw: Dict[str, Any] = dict(
            self.state_store.get_state(MIGRATION_STATE_KEY, {}) or {}
        )
        raw[name] = record.to_dict()
        self.state_store.update_state(MIGRATION_STATE_KEY, raw)

    def is_migration_complete(self, name: str) -> bool:
        record = self.get_migration_state().get(name)
        return record is not None and record.status is MigrationStatus.COMPLETED

    def mark_migration_complete(
        self, name: str, details: Optional[Dict[str, Any]] = None
    ) -> None:
        self._save(
            name,
            MigrationRecord(
                status=MigrationStatus.COMPLETED,
                completed_at=utc_now_iso(),
                details=details,
            ),
        )
        logger.info(f"Migration '{name}' marked as completed")

    def mark_migration_skipped(self, name: str, reason: Optional[str] = None) -> None:
        self._save(
            name,
            MigrationRecord(
                status=MigrationStatus.SKIPPED,
                completed_at=utc_now_iso(),
                details={"reason": reason} if reason else None,
            ),
        )
        logger.info(f"Migration '{name}' skipped: {reason or 'no reason'}")

    async def run_migration(
        self,
        name: str,
        fn: Callable[[], Awaitable[Optional[Dict[str, Any]]]],
    ) -> bool:
        """
        Run ``fn`` once under ``name``.

        Parameters:
            name (str): Migration name used as the state key.
            fn: Coroutine function performing the migration. Whatever mapping it
                returns is stored as the record's details.

        Returns:
            bool: ``True`` if the migration ran now, ``False`` if it was already
                completed or skipped.

        Raises:
            BundleHubError: Raised by ``fn``; propagates unchanged.
            MigrationError: Wraps any other exception raised by ``fn``.

        Either way the migration is left unmarked so it runs again on next
        startup.
        """
        record = self.get_migration_state().get(name)
        if record is not None and record.status in (
            MigrationStatus.COMPLETED,
            MigrationStatus.SKIPPED,
        ):
            logger.debug(f"Migration '{name}' already {record.status.value}, skipping")
            return False

        logger.info(f"Running migration '{name}'...")
        try:
            details = await fn()
        except BundleHubError as e:
            logger.error(f"Migration '{name}' failed: {e}")
            raise
        except Exception as e:
            logger.error(f"Migration '{name}' failed: {e}")
            raise MigrationError(f"Migration '{name}' failed", details=str(e)) from e
        self.mark_migration_complete(name, details)
        return True
