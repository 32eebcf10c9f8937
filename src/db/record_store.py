"""
In-memory record store for users and orders.

Holds the process-local view of who has paid for what. Nothing is persisted:
records live for the lifetime of the process and are lost on restart.

Usage:
    from src.db.record_store import RecordStore

    store = RecordStore()
    user = store.upsert_user("u1", email="u1@example.com")
    store.assign_customer_id("u1", "cus_123")
    store.find_user_by_customer_id("cus_123")  # -> user
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from types import MappingProxyType
from typing import Any

from src.schemas.payments import PaymentProvider, SubscriptionStatus

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class CustomerIdConflictError(Exception):
    """Raised when a provider customer id would be shared by two users."""

    def __init__(self, customer_id: str, user_id: str, owner_id: str | None = None):
        self.customer_id = customer_id
        self.user_id = user_id
        self.owner_id = owner_id
        if owner_id is not None:
            message = (
                f"Customer {customer_id} already belongs to user {owner_id}; "
                f"refusing to assign it to user {user_id}"
            )
        else:
            message = f"User {user_id} already has a different customer id than {customer_id}"
        super().__init__(message)


class RecordNotFoundError(KeyError):
    """Raised when mutating a record that does not exist."""


@dataclass
class UserRecord:
    user_id: str
    email: str | None = None
    stripe_customer_id: str | None = None
    subscription_id: str | None = None
    subscription_status: str = SubscriptionStatus.NONE.value
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class OrderRecord:
    order_id: str
    provider: str
    user_id: str | None = None
    status: str = "created"
    amount: str | None = None
    currency: str | None = None
    capture: dict[str, Any] | None = None
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


_ORDER_MUTABLE_FIELDS = ("provider", "user_id", "status", "amount", "currency", "capture")


class RecordStore:
    """
    Keyed user and order records plus a customer id -> user id index.

    The store is not locked. Concurrent requests interleave at field
    granularity and the last write to a field wins.
    """

    def __init__(self) -> None:
        self._users: dict[str, UserRecord] = {}
        self._orders: dict[str, OrderRecord] = {}
        self._customer_index: dict[str, str] = {}

    # ==================== Users ====================

    @property
    def users(self) -> MappingProxyType:
        return MappingProxyType(self._users)

    def upsert_user(self, user_id: str, email: str | None = None) -> UserRecord:
        """
        Create the user if absent, otherwise return the existing record.

        Existing fields are never overwritten; ``email`` is only filled in when
        the record does not have one yet.
        """
        user = self._users.get(user_id)
        if user is None:
            user = UserRecord(user_id=user_id, email=email)
            self._users[user_id] = user
            logger.info("Created user record %s", user_id)
            return user

        if email and not user.email:
            user.email = email
            user.updated_at = _utcnow()
        return user

    def get_user(self, user_id: str) -> UserRecord | None:
        return self._users.get(user_id)

    def find_user_by_customer_id(self, customer_id: str | None) -> UserRecord | None:
        if not customer_id:
            return None
        user_id = self._customer_index.get(customer_id)
        if user_id is None:
            return None
        return self._users.get(user_id)

    def assign_customer_id(self, user_id: str, customer_id: str) -> UserRecord:
        """
        Attach a provider customer id to a user and index it.

        Raises:
            RecordNotFoundError: if the user does not exist
            CustomerIdConflictError: if the customer id belongs to another user,
                or the user already carries a different customer id
        """
        user = self._users.get(user_id)
        if user is None:
            raise RecordNotFoundError(user_id)

        owner_id = self._customer_index.get(customer_id)
        if owner_id is not None and owner_id != user_id:
            raise CustomerIdConflictError(customer_id, user_id, owner_id)
        if user.stripe_customer_id and user.stripe_customer_id != customer_id:
            raise CustomerIdConflictError(customer_id, user_id)

        if user.stripe_customer_id != customer_id:
            user.stripe_customer_id = customer_id
            user.updated_at = _utcnow()
            logger.info("Assigned customer %s to user %s", customer_id, user_id)
        self._customer_index[customer_id] = user_id
        return user

    def set_subscription(
        self, user_id: str, subscription_id: str | None, status: str
    ) -> UserRecord:
        user = self._users.get(user_id)
        if user is None:
            raise RecordNotFoundError(user_id)

        user.subscription_id = subscription_id
        user.subscription_status = status
        user.updated_at = _utcnow()
        return user

    # ==================== Orders ====================

    @property
    def orders(self) -> MappingProxyType:
        return MappingProxyType(self._orders)

    def upsert_order(self, order_id: str, **fields: Any) -> OrderRecord:
        """
        Create or merge an order record.

        Fields passed as ``None`` leave the existing value in place. A new
        order requires ``provider``.
        """
        unknown = set(fields) - set(_ORDER_MUTABLE_FIELDS)
        if unknown:
            raise TypeError(f"Unknown order fields: {', '.join(sorted(unknown))}")

        updates = {key: value for key, value in fields.items() if value is not None}
        if isinstance(updates.get("provider"), PaymentProvider):
            updates["provider"] = updates["provider"].value

        order = self._orders.get(order_id)
        if order is None:
            if "provider" not in updates:
                raise ValueError(f"Cannot create order {order_id} without a provider")
            order = OrderRecord(order_id=order_id, **updates)
            self._orders[order_id] = order
            logger.info("Created %s order record %s", order.provider, order_id)
            return order

        for key, value in updates.items():
            setattr(order, key, value)
        order.updated_at = _utcnow()
        return order

    def get_order(self, order_id: str) -> OrderRecord | None:
        return self._orders.get(order_id)

    def stats(self) -> dict[str, int]:
        return {"users": len(self._users), "orders": len(self._orders)}
