"""Reconciler: directional syncs, consistency audit, repair and backup.

Directions:
    seed -> durable      merge engine (gaps filled, durable wins)
    durable -> reactive  direct overwrite of the in-memory copy
    reactive -> durable  direct overwrite of the durable document

The durable copy is what survives a restart, so repair always pulls from it
and never pushes the in-memory copy over it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import structlog

from finodash.data.merge import MergeEngine
from finodash.data.schemas import LIST_FIELDS
from finodash.data.store import ReactiveStore
from finodash.storage.adapter import BACKUP_KEY, DATA_KEY, DurableStore

logger = structlog.get_logger()

BACKUP_METADATA = ("backupDate", "version")
AUDITED_FIELDS = ("users", "merchants", "purchases")


@dataclass
class ConsistencyReport:
    consistent: bool
    issues: list[str] = field(default_factory=list)

    @property
    def message(self) -> str:
        return "; ".join(self.issues) if self.issues else "Data is consistent"


@dataclass
class DataStats:
    users: int
    merchants: int
    purchases: int
    notifications: int
    has_durable_data: bool
    last_sync: str


class Reconciler:
    """Keeps the seed, durable and reactive copies in step."""

    def __init__(
        self,
        storage: DurableStore,
        store: ReactiveStore,
        merge: MergeEngine,
        *,
        backup_version: str = "1.0",
    ) -> None:
        self.storage = storage
        self.store = store
        self.merge = merge
        self.backup_version = backup_version
        self.last_sync: datetime | None = None

    def _mark_synced(self) -> None:
        self.last_sync = datetime.now(timezone.utc)

    # ------------------------------------------------------------------
    # Syncs
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Startup path: seed or merge the durable copy, then pull it into memory."""
        if not await self.merge.initialize_if_empty():
            await self.merge.merge_seed_into_durable()
        await self.store.load_from_durable()
        self._mark_synced()
        logger.info("data_initialized")

    async def sync_seed_to_durable(self) -> dict[str, Any]:
        merged = await self.merge.merge_seed_into_durable()
        self._mark_synced()
        return merged

    async def sync_durable_to_store(self) -> None:
        await self.store.force_sync_from_durable()
        self._mark_synced()

    async def sync_store_to_durable(self) -> None:
        await self.store.force_sync_to_durable()
        self._mark_synced()

    async def full_sync(self) -> None:
        """seed -> durable -> reactive."""
        logger.info("full_sync_started")
        await self.sync_seed_to_durable()
        await self.sync_durable_to_store()
        logger.info("full_sync_completed")

    # ------------------------------------------------------------------
    # Audit and repair
    # ------------------------------------------------------------------

    async def check_consistency(self) -> ConsistencyReport:
        """Compare record counts between the in-memory and durable copies."""
        document = await self.storage.read_blob()
        if document is None:
            return ConsistencyReport(consistent=False, issues=["No durable data found"])

        issues = []
        for name in AUDITED_FIELDS:
            in_memory = len(getattr(self.store.state, name))
            durable_records = document.get(name)
            durable = len(durable_records) if isinstance(durable_records, list) else 0
            if in_memory != durable:
                issues.append(f"{name.capitalize()} count mismatch: memory={in_memory}, durable={durable}")

        report = ConsistencyReport(consistent=not issues, issues=issues)
        if issues:
            logger.warning("consistency_check_failed", issues=issues)
        return report

    async def repair(self) -> None:
        """Make the in-memory copy match the durable copy."""
        logger.info("repair_started")
        await self.sync_durable_to_store()

    def points_drift(self) -> dict[str, tuple[int, int]]:
        """Users whose stored ``points`` differ from the ledger.

        Maps user id to ``(user_points, ledger_points)``. The ledger is
        authoritative; this is reported, never corrected here.
        """
        ledger = self.store.state.points
        return {
            user.id: (user.points, ledger[user.id])
            for user in self.store.state.users
            if user.id in ledger and ledger[user.id] != user.points
        }

    # ------------------------------------------------------------------
    # Backup
    # ------------------------------------------------------------------

    async def backup(self) -> dict[str, Any] | None:
        """Copy the durable document to the backup key. None if there is nothing to copy."""
        document = await self.storage.read_blob()
        if document is None:
            return None
        backup = {
            **document,
            "backupDate": datetime.now(timezone.utc).isoformat(),
            "version": self.backup_version,
        }
        await self.storage.write_json(BACKUP_KEY, backup)
        logger.info("backup_created", version=self.backup_version)
        return backup

    async def restore(self) -> bool:
        """Put the backup back under ``app-data`` and pull it into memory."""
        backup = await self.storage.read_json(BACKUP_KEY)
        if backup is None:
            logger.warning("restore_skipped", reason="no valid backup")
            return False
        document = {key: value for key, value in backup.items() if key not in BACKUP_METADATA}
        await self.storage.write_json(DATA_KEY, document)
        await self.sync_durable_to_store()
        logger.info("backup_restored", backup_date=backup.get("backupDate"))
        return True

    # ------------------------------------------------------------------
    # Durable-primary reads
    # ------------------------------------------------------------------

    async def stats(self) -> DataStats:
        document = await self.storage.read_blob() or {}
        counts = {
            name: len(document[name]) if isinstance(document.get(name), list) else 0
            for name in LIST_FIELDS
        }
        return DataStats(
            **counts,
            has_durable_data=await self.storage.has_blob(),
            last_sync=self.last_sync.isoformat() if self.last_sync else "Never",
        )

    async def _collection(self, name: str) -> Any:
        document = await self.storage.read_blob()
        if document is not None and document.get(name) is not None:
            return document[name]
        return self.merge.seed()[name]

    async def get_users(self) -> list[dict[str, Any]]:
        return await self._collection("users")

    async def get_merchants(self) -> list[dict[str, Any]]:
        return await self._collection("merchants")

    async def get_purchases(self) -> list[dict[str, Any]]:
        return await self._collection("purchases")

    async def get_notifications(self) -> list[dict[str, Any]]:
        return await self._collection("notifications")

    async def get_user_points(self, user_id: str) -> int:
        document = await self.storage.read_blob() or {}
        durable_points = document.get("points")
        if isinstance(durable_points, dict) and isinstance(durable_points.get(user_id), int):
            return durable_points[user_id]
        return self.merge.seed()["points"].get(user_id, 0)

    async def get_contribution_rate(self) -> float:
        document = await self.storage.read_blob() or {}
        rate = document.get("contributionRate")
        return rate if isinstance(rate, (int, float)) else self.merge.default_rate
