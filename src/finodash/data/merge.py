"""Merge engine: combines the durable document with the seed dataset.

Policy is "durable wins on conflict, seed fills gaps", keyed by ``id``:

- list collections keep every durable record in its order, then append the
  seed records whose id is not already present, in seed order;
- the points ledger is a key union where durable values take precedence;
- the contribution rate keeps the durable value unless it is missing.

The merge never removes or duplicates a record, so applying it twice writes
exactly what applying it once wrote.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import structlog

from finodash.data.schemas import DEFAULT_CONTRIBUTION_RATE, LIST_FIELDS
from finodash.data.seed import seed_blob
from finodash.storage.adapter import DurableStore

logger = structlog.get_logger()


def merge_records(
    durable: list[dict[str, Any]],
    seed: list[dict[str, Any]],
    id_key: str = "id",
) -> list[dict[str, Any]]:
    merged = list(durable)
    durable_ids = {record.get(id_key) for record in durable}
    for record in seed:
        if record.get(id_key) not in durable_ids:
            merged.append(record)
    return merged


def merge_points(durable: dict[str, int], seed: dict[str, int]) -> dict[str, int]:
    return {**seed, **durable}


def merge_blob(
    durable: dict[str, Any] | None,
    seed: dict[str, Any],
    default_rate: float = DEFAULT_CONTRIBUTION_RATE,
) -> dict[str, Any]:
    """Merge a durable document (or None) with the seed document."""
    durable = durable or {}

    merged: dict[str, Any] = {}
    for field in LIST_FIELDS:
        current = durable.get(field)
        merged[field] = merge_records(
            current if isinstance(current, list) else [],
            seed.get(field, []),
        )

    points = durable.get("points")
    merged["points"] = merge_points(points if isinstance(points, dict) else {}, seed.get("points", {}))

    rate = durable.get("contributionRate")
    merged["contributionRate"] = rate if isinstance(rate, (int, float)) else default_rate
    return merged


class MergeEngine:
    """Seeds and merges the durable document."""

    def __init__(
        self,
        storage: DurableStore,
        *,
        seed: Callable[[], dict[str, Any]] = seed_blob,
        default_rate: float = DEFAULT_CONTRIBUTION_RATE,
    ) -> None:
        self.storage = storage
        self._seed = seed
        self.default_rate = default_rate

    def seed(self) -> dict[str, Any]:
        """A fresh copy of the seed document."""
        return self._seed()

    async def has_durable_data(self) -> bool:
        return await self.storage.has_blob()

    async def initialize_if_empty(self) -> bool:
        """Write the seed dataset if there is no durable document.

        Returns True when the seed was written.
        """
        if await self.has_durable_data():
            return False
        document = self._seed()
        document["contributionRate"] = self.default_rate
        await self.storage.write_blob(document)
        logger.info("durable_seeded", **{field: len(document[field]) for field in LIST_FIELDS})
        return True

    async def merge_seed_into_durable(self) -> dict[str, Any]:
        """Fill gaps in the durable document from the seed and write it back."""
        durable = await self.storage.read_blob()
        merged = merge_blob(durable, self._seed(), self.default_rate)
        await self.storage.write_blob(merged)
        logger.info(
            "seed_merged",
            had_durable=durable is not None,
            **{field: len(merged[field]) for field in LIST_FIELDS},
        )
        return merged
