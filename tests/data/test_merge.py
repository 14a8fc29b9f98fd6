"""Tests for the seed/durable merge engine."""

from __future__ import annotations

import pytest

from finodash.data.merge import MergeEngine, merge_blob, merge_points, merge_records
from finodash.data.seed import SEED_MERCHANTS, SEED_POINTS, SEED_USERS, seed_blob
from finodash.data.store import ReactiveStore
from finodash.storage.adapter import DATA_KEY, DurableStore
from finodash.storage.backend import MemoryBackend


class TestMergeRecords:
    def test_durable_first_then_missing_seed(self):
        durable = [{"id": "u9", "name": "New"}, {"id": "u1", "name": "Edited"}]
        seed = [{"id": "u1", "name": "Seed"}, {"id": "u2", "name": "Seed 2"}]

        merged = merge_records(durable, seed)

        assert [r["id"] for r in merged] == ["u9", "u1", "u2"]
        # Durable wins on conflict
        assert merged[1]["name"] == "Edited"

    def test_empty_durable_gives_seed(self):
        seed = [{"id": "a"}, {"id": "b"}]
        assert merge_records([], seed) == seed

    def test_no_duplicates_introduced(self):
        seed = [{"id": "a"}, {"id": "b"}]
        merged = merge_records(merge_records([{"id": "b"}], seed), seed)
        assert [r["id"] for r in merged] == ["b", "a"]


class TestMergePoints:
    def test_union_durable_precedence(self):
        assert merge_points({"u1": 5, "u9": 7}, {"u1": 100, "u2": 3}) == {"u1": 5, "u2": 3, "u9": 7}


class TestMergeBlob:
    def test_none_durable_gives_full_seed(self):
        merged = merge_blob(None, seed_blob(), 0.1)
        assert len(merged["users"]) == len(SEED_USERS)
        assert merged["points"] == SEED_POINTS
        assert merged["contributionRate"] == 0.1

    def test_durable_rate_kept(self):
        merged = merge_blob({"contributionRate": 0.25}, seed_blob(), 0.1)
        assert merged["contributionRate"] == 0.25

    def test_zero_rate_is_a_value(self):
        merged = merge_blob({"contributionRate": 0}, seed_blob(), 0.1)
        assert merged["contributionRate"] == 0

    @pytest.mark.parametrize("durable", [{}, {"contributionRate": None}])
    def test_missing_rate_uses_default(self, durable):
        assert merge_blob(durable, seed_blob(), 0.15)["contributionRate"] == 0.15

    def test_non_list_collection_treated_as_empty(self):
        merged = merge_blob({"users": "oops"}, seed_blob(), 0.1)
        assert [u["id"] for u in merged["users"]] == [u["id"] for u in SEED_USERS]

    def test_deleted_seed_record_reappears(self):
        durable = seed_blob()
        durable["merchants"] = [m for m in durable["merchants"] if m["id"] != "m2"]

        merged = merge_blob(durable, seed_blob(), 0.1)

        assert [m["id"] for m in merged["merchants"]] == ["m1", "m3", "m4", "m2"]
        assert len(merged["merchants"]) == len(SEED_MERCHANTS)


class TestMergeEngine:
    @pytest.mark.asyncio
    async def test_initialize_if_empty_writes_seed(self, merge: MergeEngine, storage: DurableStore):
        assert await merge.initialize_if_empty() is True
        document = await storage.read_blob()
        assert len(document["users"]) == 8
        assert document["contributionRate"] == 0.1

    @pytest.mark.asyncio
    async def test_initialize_if_empty_leaves_existing(self, merge: MergeEngine, storage: DurableStore):
        await storage.write_blob({"users": []})
        assert await merge.initialize_if_empty() is False
        assert await storage.read_blob() == {"users": []}

    @pytest.mark.asyncio
    async def test_merge_is_idempotent(self, merge: MergeEngine, backend: MemoryBackend):
        await merge.merge_seed_into_durable()
        first = await backend.get(DATA_KEY)
        await merge.merge_seed_into_durable()
        second = await backend.get(DATA_KEY)
        assert first == second

    @pytest.mark.asyncio
    async def test_added_user_survives_merge(
        self,
        merge: MergeEngine,
        store: ReactiveStore,
        storage: DurableStore,
    ):
        await merge.initialize_if_empty()
        await store.load_from_durable()
        user = await store.add_user(name="Nadia", password="pw", email="nadia@example.com")

        merged = await merge.merge_seed_into_durable()

        ids = [u["id"] for u in merged["users"]]
        assert ids.count(user.id) == 1
        assert len(ids) == 9
        assert (await storage.read_blob())["points"][user.id] == 0

    @pytest.mark.asyncio
    async def test_merge_with_custom_seed(self, storage: DurableStore):
        engine = MergeEngine(storage, seed=lambda: {"users": [{"id": "x1"}], "points": {"x1": 3}}, default_rate=0.2)

        merged = await engine.merge_seed_into_durable()

        assert merged["users"] == [{"id": "x1"}]
        assert merged["merchants"] == []
        assert merged["points"] == {"x1": 3}
        assert merged["contributionRate"] == 0.2
