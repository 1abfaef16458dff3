from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo import DESCENDING

from rentdesk.models.documents import EmailLogEntry
from rentdesk.services.landlord_store import EMAILS_COLL

EMAIL_LOG_INDEXES = {
    EMAILS_COLL: [
        {"keys": [("landlordId", 1), ("sentAt", -1)]},
        {"keys": [("landlordId", 1), ("status", 1), ("sentAt", -1)]},
    ]
}


class EmailLogService:
    """
    Append-only audit trail of report deliveries.

    Entries are inserted, never updated or deleted. Every run appends its own
    entries, including re-runs for a period that was already reported.
    """

    def __init__(self, collection: AsyncIOMotorCollection):
        self.collection = collection

    @classmethod
    def from_database(cls, db: AsyncIOMotorDatabase) -> "EmailLogService":
        return cls(db[EMAILS_COLL])

    async def log_email(self, landlord_id: str, entry: EmailLogEntry) -> Optional[str]:
        document = entry.model_copy(update={"landlord_id": landlord_id}).to_document()
        result = await self.collection.insert_one(document)
        return str(result.inserted_id) if result.inserted_id is not None else None

    async def get_history(
        self,
        landlord_id: str,
        status: Optional[str] = None,
        template_id: Optional[str] = None,
        limit: int = 50,
    ) -> List[Dict[str, Any]]:
        """Newest entries first"""
        query: Dict[str, Any] = {"landlordId": landlord_id}
        if status:
            query["status"] = status
        if template_id:
            query["templateId"] = template_id

        cursor = self.collection.find(query).sort("sentAt", DESCENDING).limit(limit)
        entries = await cursor.to_list(length=limit)
        for entry in entries:
            entry["_id"] = str(entry["_id"])
        return entries
