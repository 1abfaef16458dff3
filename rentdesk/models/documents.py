from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from rentdesk.utils.date_helper import to_date

DEFAULT_GROUP = "Default"
RENT_PAYMENT = "Rent Payment"

# ============================================
# Enums
# ============================================

class EmailStatus(str, Enum):
    """Delivery outcome recorded in the audit trail"""
    SENT = "sent"
    FAILED = "failed"
    PENDING = "pending"


# ============================================
# Source documents (read-only snapshots)
# ============================================

def _optional_label(value) -> Optional[str]:
    """Free-text labels: empty or falsy means absent, anything else is text."""
    if not value:
        return None
    return str(value)


class LandlordDocument(BaseModel):
    """
    Base for documents owned by the landlord dashboard.

    Stored field names are camelCase; fields that are missing or of an
    unexpected type are kept as-is so one bad row never drops the report.
    """
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: Optional[str] = Field(default=None, alias="_id")

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value):
        return str(value) if value is not None else None


class Lease(LandlordDocument):
    unit_id: Optional[str] = Field(default=None, alias="unitId")
    tenant_name: Optional[str] = Field(default=None, alias="tenantName")
    rent_amount: Any = Field(default=None, alias="rentAmount")
    is_active: Any = Field(default=None, alias="isActive")
    created_at: Any = Field(default=None, alias="createdAt")
    lease_end_date: Any = Field(default=None, alias="leaseEndDate")

    @field_validator("unit_id", "tenant_name", mode="before")
    @classmethod
    def _stringify(cls, value):
        return str(value) if value is not None else None

    @property
    def end_date(self) -> Optional[datetime]:
        return to_date(self.lease_end_date)

    @property
    def is_marked_active(self) -> bool:
        """Only an explicit ``isActive: false`` deactivates a lease."""
        return self.is_active is not False

    def is_active_at(self, when: datetime) -> bool:
        """Marked active and either open-ended or ending after ``when``."""
        if not self.is_marked_active:
            return False
        if not self.lease_end_date:
            return True
        end = self.end_date
        return end is not None and end > when


class Payment(LandlordDocument):
    unit_id: Optional[str] = Field(default=None, alias="unitId")
    actual_rent_paid: Any = Field(default=None, alias="actualRentPaid")
    payment_date: Any = Field(default=None, alias="paymentDate")
    payment_type: Optional[str] = Field(default=None, alias="paymentType")
    rental_period: Optional[str] = Field(default=None, alias="rentalPeriod")
    comments: Any = None

    @field_validator("unit_id", "rental_period", mode="before")
    @classmethod
    def _stringify(cls, value):
        return str(value) if value is not None else None

    @field_validator("payment_type", mode="before")
    @classmethod
    def _label(cls, value):
        return _optional_label(value)

    @property
    def is_rent_payment(self) -> bool:
        return (self.payment_type or RENT_PAYMENT) == RENT_PAYMENT


class InventoryUnit(LandlordDocument):
    unit_number: Optional[str] = Field(default=None, alias="unitNumber")
    group_name: Optional[str] = Field(default=None, alias="groupName")
    property_type: Optional[str] = Field(default=None, alias="propertyType")

    @field_validator("unit_number", mode="before")
    @classmethod
    def _stringify(cls, value):
        return str(value) if value is not None else None

    @field_validator("group_name", "property_type", mode="before")
    @classmethod
    def _label(cls, value):
        return _optional_label(value)

    @property
    def group(self) -> str:
        return self.group_name or DEFAULT_GROUP


@dataclass
class LandlordSnapshot:
    """Everything one report run reads for a landlord."""
    leases: List[Lease] = field(default_factory=list)
    payments: List[Payment] = field(default_factory=list)
    inventory: List[InventoryUnit] = field(default_factory=list)


# ============================================
# Audit trail
# ============================================

class EmailLogEntry(BaseModel):
    """One delivery attempt. Written once, never updated."""
    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

    landlord_id: Optional[str] = Field(default=None, alias="landlordId")
    recipients: List[str]
    subject: str
    content: str
    sent_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), alias="sentAt")
    status: EmailStatus
    template_id: Optional[str] = Field(default=None, alias="templateId")
    error: Optional[str] = None

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)
