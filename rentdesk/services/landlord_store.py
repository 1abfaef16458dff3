import asyncio
import logging
from abc import ABC, abstractmethod
from typing import List, Type, TypeVar

from motor.motor_asyncio import AsyncIOMotorDatabase

from rentdesk.models.documents import (
    InventoryUnit, LandlordDocument, LandlordSnapshot, Lease, Payment,
)

logger = logging.getLogger(__name__)

LEASES_COLL = "leases"
PAYMENTS_COLL = "rent_collection"
INVENTORY_COLL = "rental_inventory"
EMAILS_COLL = "emails"

T = TypeVar("T", bound=LandlordDocument)


class LandlordStore(ABC):
    """Read port over the landlord's documents."""

    @abstractmethod
    async def fetch_leases(self, landlord_id: str) -> List[Lease]:
        pass

    @abstractmethod
    async def fetch_payments(self, landlord_id: str) -> List[Payment]:
        pass

    @abstractmethod
    async def fetch_inventory(self, landlord_id: str) -> List[InventoryUnit]:
        pass


async def load_snapshot(store: LandlordStore, landlord_id: str) -> LandlordSnapshot:
    """Issue the three reads concurrently; any failure propagates."""
    leases, payments, inventory = await asyncio.gather(
        store.fetch_leases(landlord_id),
        store.fetch_payments(landlord_id),
        store.fetch_inventory(landlord_id),
    )
    return LandlordSnapshot(leases=leases, payments=payments, inventory=inventory)


class MongoLandlordStore(LandlordStore):
    """Documents are scoped to a landlord by their ``landlordId`` field."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db

    async def _fetch(self, collection: str, landlord_id: str, model: Type[T]) -> List[T]:
        cursor = self.db[collection].find({"landlordId": landlord_id})
        docs = await cursor.to_list(length=None)
        logger.debug(f"Fetched {len(docs)} documents from {collection} for landlord {landlord_id}")
        return [model.model_validate(doc) for doc in docs]

    async def fetch_leases(self, landlord_id: str) -> List[Lease]:
        return await self._fetch(LEASES_COLL, landlord_id, Lease)

    async def fetch_payments(self, landlord_id: str) -> List[Payment]:
        return await self._fetch(PAYMENTS_COLL, landlord_id, Payment)

    async def fetch_inventory(self, landlord_id: str) -> List[InventoryUnit]:
        return await self._fetch(INVENTORY_COLL, landlord_id, InventoryUnit)
