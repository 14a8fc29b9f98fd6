"""Reactive store: the live in-memory copy of the application data.

The store is the single writer of the working copy and the only data source
the rendering layer reads from. Each handler applies its change to the
in-memory state without yielding to the event loop, notifies observers, and
then writes the whole document back to the durable store.

Unknown ids on approve/delete are silent no-ops. Email/phone uniqueness is not
checked here; that belongs to the registration flow.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Any

import structlog

from finodash.data.schemas import (
    DEFAULT_CONTRIBUTION_RATE,
    AppData,
    DataStatus,
    Merchant,
    Notification,
    NotificationType,
    User,
    parse_blob_fields,
)
from finodash.data.seed import seed_blob
from finodash.ids import new_id, repair_duplicate_ids
from finodash.storage.adapter import DurableStore

logger = structlog.get_logger()

StoreListener = Callable[[str, AppData], None]


class UnknownActionError(ValueError):
    """Raised when ``dispatch`` is called with an action the store does not handle."""


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class ReactiveStore:
    """Observable, single-writer container for users, merchants, purchases,
    notifications, the points ledger and the contribution rate."""

    def __init__(
        self,
        storage: DurableStore,
        *,
        seed: Callable[[], dict[str, Any]] = seed_blob,
        default_rate: float = DEFAULT_CONTRIBUTION_RATE,
    ) -> None:
        self.storage = storage
        self._seed = seed
        self._default_rate = default_rate
        self._state = self._seed_state()
        self.status = DataStatus.IDLE
        self._listeners: list[StoreListener] = []
        self._actions: dict[str, Callable[..., Awaitable[Any]]] = {
            "loadFromDurable": self.load_from_durable,
            "approvePurchase": self.approve_purchase,
            "setContributionRate": self.set_contribution_rate,
            "addNotification": self.add_notification,
            "cleanupDuplicateIds": self.cleanup_duplicate_ids,
            "addUser": self.add_user,
            "addMerchant": self.add_merchant,
            "deleteUser": self.delete_user,
            "deleteMerchant": self.delete_merchant,
            "forceSyncFromDurable": self.force_sync_from_durable,
            "forceSyncToDurable": self.force_sync_to_durable,
            "resetToSeed": self.reset_to_seed,
        }

    def _seed_state(self) -> AppData:
        document = self._seed()
        document["contributionRate"] = self._default_rate
        return AppData.model_validate(document)

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    @property
    def state(self) -> AppData:
        """The live state. Treat as read-only; mutate through the handlers."""
        return self._state

    def snapshot(self) -> dict[str, Any]:
        """Deep copy of the current state in persisted (camelCase) shape."""
        document = self._state.to_blob()
        document["status"] = self.status.value
        return document

    def subscribe(self, listener: StoreListener) -> Callable[[], None]:
        """Call ``listener(action, state)`` after every committed change."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def find_user(self, user_id: str) -> User | None:
        return next((u for u in self._state.users if u.id == user_id), None)

    def find_user_by_identifier(self, identifier: str) -> User | None:
        """Look a member up by email or phone."""
        if not identifier:
            return None
        return next(
            (u for u in self._state.users if identifier in (u.email, u.phone)),
            None,
        )

    def find_merchant_by_email(self, email: str) -> Merchant | None:
        if not email:
            return None
        return next((m for m in self._state.merchants if m.email == email), None)

    def user_balance(self, user_id: str) -> int:
        """Balance from the points ledger, falling back to ``User.points``."""
        if user_id in self._state.points:
            return self._state.points[user_id]
        user = self.find_user(user_id)
        return user.points if user else 0

    def projected_users(self) -> list[dict[str, Any]]:
        """Users as readers should see them, with ``points`` taken from the ledger."""
        projected = []
        for user in self._state.users:
            record = user.to_blob()
            if user.id in self._state.points:
                record["points"] = self._state.points[user.id]
            projected.append(record)
        return projected

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def dispatch(self, action: str, payload: Any = None) -> Any:
        """Route a mutation intent from the rendering layer to its handler.

        ``payload`` is passed as keyword arguments when it is a dict, as the
        single positional argument otherwise, and omitted when None.
        """
        handler = self._actions.get(action)
        if handler is None:
            raise UnknownActionError(f"Unknown action: {action}")
        if payload is None:
            return await handler()
        if isinstance(payload, dict):
            return await handler(**payload)
        return await handler(payload)

    def _commit(self, action: str) -> None:
        for listener in list(self._listeners):
            listener(action, self._state)

    async def _persist(self) -> None:
        await self.storage.write_blob(self._state.to_blob())

    def _append_notification(self, text: str, type_: NotificationType) -> Notification:
        notification = Notification(
            id=new_id("n"),
            text=text,
            type=type_,
            timestamp=_now_iso(),
        )
        self._state.notifications.append(notification)
        return notification

    async def _pull(self) -> bool:
        """Overwrite in-memory fields with those present in the durable document."""
        document = await self.storage.read_blob()
        if document is None:
            return False
        fields = parse_blob_fields(document)
        if fields:
            self._state = self._state.model_copy(update=fields)
        return True

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def load_from_durable(self) -> None:
        self.status = DataStatus.LOADING
        found = await self._pull()
        self.status = DataStatus.SUCCEEDED
        logger.info("store_loaded", from_durable=found, users=len(self._state.users))
        self._commit("loadFromDurable")

    async def approve_purchase(self, purchase_id: str) -> None:
        purchase = next((p for p in self._state.purchases if p.id == purchase_id), None)
        if purchase is None:
            return
        purchase.approved = True
        self._append_notification(f"Purchase {purchase_id} approved", NotificationType.SUCCESS)
        self._commit("approvePurchase")
        await self._persist()

    async def set_contribution_rate(self, rate: float) -> None:
        self._state.contribution_rate = float(rate)
        self._commit("setContributionRate")
        await self._persist()

    async def add_notification(self, text: str, type: str | NotificationType = NotificationType.INFO) -> Notification:  # noqa: A002
        notification = self._append_notification(text, NotificationType(type))
        self._commit("addNotification")
        await self._persist()
        return notification

    async def cleanup_duplicate_ids(self) -> int:
        """Re-id repeated notification ids. Returns how many were replaced."""
        before = [n.id for n in self._state.notifications]
        repaired = repair_duplicate_ids([n.to_blob() for n in self._state.notifications], prefix="n")
        self._state.notifications = [Notification.model_validate(item) for item in repaired]
        replaced = sum(1 for old, item in zip(before, repaired) if old != item["id"])
        if replaced:
            logger.warning("duplicate_ids_repaired", collection="notifications", replaced=replaced)
        self._commit("cleanupDuplicateIds")
        await self._persist()
        return replaced

    async def add_user(
        self,
        name: str,
        password: str,
        email: str | None = None,
        phone: str | None = None,
    ) -> User:
        user = User(
            id=new_id("u"),
            name=name,
            email=email or "",
            phone=phone or "",
            points=0,
            password=password,
            registration_date=_now_iso(),
        )
        self._state.users.append(user)
        self._state.points[user.id] = 0
        self._commit("addUser")
        await self._persist()
        logger.info("user_added", user_id=user.id)
        return user

    async def add_merchant(self, store_name: str, owner: str, email: str, password: str) -> Merchant:
        merchant = Merchant(
            id=new_id("m"),
            store_name=store_name,
            owner=owner,
            email=email,
            password=password,
            registration_date=_now_iso(),
            status="active",
        )
        self._state.merchants.append(merchant)
        self._append_notification(f"New merchant {store_name} registered", NotificationType.INFO)
        self._commit("addMerchant")
        await self._persist()
        logger.info("merchant_added", merchant_id=merchant.id)
        return merchant

    async def delete_user(self, user_id: str) -> None:
        if self.find_user(user_id) is None:
            return
        self._state.users = [u for u in self._state.users if u.id != user_id]
        self._state.purchases = [p for p in self._state.purchases if p.customer_id != user_id]
        self._state.points.pop(user_id, None)
        self._append_notification(f"User {user_id} deleted", NotificationType.WARNING)
        self._commit("deleteUser")
        await self._persist()
        logger.info("user_deleted", user_id=user_id)

    async def delete_merchant(self, merchant_id: str) -> None:
        if not any(m.id == merchant_id for m in self._state.merchants):
            return
        self._state.merchants = [m for m in self._state.merchants if m.id != merchant_id]
        self._state.purchases = [p for p in self._state.purchases if p.merchant_id != merchant_id]
        self._append_notification(f"Merchant {merchant_id} deleted", NotificationType.WARNING)
        self._commit("deleteMerchant")
        await self._persist()
        logger.info("merchant_deleted", merchant_id=merchant_id)

    async def force_sync_from_durable(self) -> None:
        if await self._pull():
            self._commit("forceSyncFromDurable")

    async def force_sync_to_durable(self) -> None:
        await self._persist()

    async def reset_to_seed(self) -> None:
        """Drop every customization: seed in memory, no durable document."""
        self._state = self._seed_state()
        self._commit("resetToSeed")
        await self.storage.remove_blob()
        logger.warning("store_reset_to_seed")
