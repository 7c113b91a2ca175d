"""Document store access used by the payment projector and the search API.

Only the handful of operations the backend needs are exposed. Writes are
plain read-then-write sequences with no transaction or precondition, so
two concurrent deliveries of the same webhook both land.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol, runtime_checkable

from google.cloud.firestore_v1.base_query import FieldFilter

from family_market.firebase import FirebaseClients

logger = logging.getLogger(__name__)

# Collection names shared with the web front end
USERS = "users"
PRODUCTS = "productos"
SERVICES = "servicios"
JOBS = "empleos"
FEATURED_PAYMENTS = "featured_payments"
SUBSCRIPTION_PAYMENTS = "subscription_payments"


@runtime_checkable
class DocumentStore(Protocol):
    """Minimal async document-store contract."""

    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None: ...

    async def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        """Merge ``fields`` into an existing document.

        Keys may be dotted paths (``subscription.isActive``) addressing
        nested map fields.
        """
        ...

    async def add(self, collection: str, data: dict[str, Any]) -> str:
        """Append a new document with a generated id and return the id."""
        ...

    async def where(
        self, collection: str, field: str, value: Any, limit: int | None = None
    ) -> list[dict[str, Any]]: ...

    async def scan(self, collection: str, limit: int) -> list[dict[str, Any]]: ...


def _with_id(snapshot: Any) -> dict[str, Any]:
    data = snapshot.to_dict() or {}
    return {"id": snapshot.id, **data}


class FirestoreStore:
    """DocumentStore backed by Cloud Firestore through firebase-admin."""

    def __init__(self, firebase: FirebaseClients) -> None:
        self._firebase = firebase

    @property
    def _db(self) -> Any:
        return self._firebase.firestore

    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        snapshot = await self._db.collection(collection).document(doc_id).get()
        if not snapshot.exists:
            return None
        return _with_id(snapshot)

    async def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        await self._db.collection(collection).document(doc_id).update(fields)
        logger.debug("Updated %s/%s (%d fields)", collection, doc_id, len(fields))

    async def add(self, collection: str, data: dict[str, Any]) -> str:
        _, ref = await self._db.collection(collection).add(data)
        logger.debug("Appended %s/%s", collection, ref.id)
        return ref.id

    async def where(
        self, collection: str, field: str, value: Any, limit: int | None = None
    ) -> list[dict[str, Any]]:
        query = self._db.collection(collection).where(filter=FieldFilter(field, "==", value))
        if limit is not None:
            query = query.limit(limit)
        return [_with_id(snap) async for snap in query.stream()]

    async def scan(self, collection: str, limit: int) -> list[dict[str, Any]]:
        query = self._db.collection(collection).limit(limit)
        return [_with_id(snap) async for snap in query.stream()]
