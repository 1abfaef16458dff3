# rentdesk/test/conftest.py
import os

# broker is chosen when rentdesk.workers is first imported
os.environ["DRAMATIQ_BROKER"] = "stub"

from datetime import datetime, timezone
from typing import List
from unittest.mock import AsyncMock, MagicMock

import pytest
from prometheus_client import CollectorRegistry

from rentdesk.core.config import ReportSettings
from rentdesk.metrics.metrics import MetricsCollector
from rentdesk.models.documents import InventoryUnit, LandlordSnapshot, Lease, Payment
from rentdesk.services.landlord_store import LandlordStore

LANDLORD_ID = "landlord-1"
# reference point for a run on 1 March 2024; the report covers February
RUN_AT = datetime(2024, 3, 1, 8, 0, tzinfo=timezone.utc)


class InMemoryStore(LandlordStore):
    """LandlordStore over plain document dicts, as they come out of Mongo"""

    def __init__(self, leases=None, payments=None, inventory=None):
        self.leases = leases or []
        self.payments = payments or []
        self.inventory = inventory or []

    async def fetch_leases(self, landlord_id: str) -> List[Lease]:
        return [Lease.model_validate(d) for d in self.leases]

    async def fetch_payments(self, landlord_id: str) -> List[Payment]:
        return [Payment.model_validate(d) for d in self.payments]

    async def fetch_inventory(self, landlord_id: str) -> List[InventoryUnit]:
        return [InventoryUnit.model_validate(d) for d in self.inventory]


@pytest.fixture
def inventory_docs():
    return [
        {"_id": "u1", "unitNumber": "101", "groupName": "Maple Court", "propertyType": "Apartment"},
        {"_id": "u2", "unitNumber": "102", "groupName": "Maple Court", "propertyType": "Apartment"},
        {"_id": "u3", "unitNumber": 7, "propertyType": "House"},
        {"_id": "u4", "unitNumber": "B-2", "groupName": "Oak Villas"},
    ]


@pytest.fixture
def lease_docs():
    return [
        # active, paid for February
        {"_id": "l1", "unitId": "u1", "tenantName": "Asha", "rentAmount": 15000,
         "isActive": True, "createdAt": "2024-02-10T00:00:00Z"},
        # active, no February rent
        {"_id": "l2", "unitId": "u2", "tenantName": "Ravi", "rentAmount": "12000",
         "createdAt": "2023-06-01T00:00:00Z", "leaseEndDate": "2024-12-31T00:00:00Z"},
        # ended inside February, unit u3 now vacant
        {"_id": "l3", "unitId": "u3", "tenantName": "Meera", "rentAmount": 9000,
         "isActive": False, "createdAt": "2022-01-01T00:00:00Z", "leaseEndDate": "2024-02-29T00:00:00Z"},
    ]


@pytest.fixture
def payment_docs():
    return [
        {"_id": "p1", "unitId": "u1", "actualRentPaid": 10000, "paymentDate": "2024-02-05T10:00:00Z",
         "paymentType": "Rent Payment", "rentalPeriod": "2024-02", "comments": "first half"},
        {"_id": "p2", "unitId": "u1", "actualRentPaid": "5000", "paymentDate": "2024-02-20T10:00:00Z",
         "rentalPeriod": "2024-02", "comments": "second\nhalf"},
        {"_id": "p3", "unitId": "u1", "actualRentPaid": 2000, "paymentDate": "2024-02-21T10:00:00Z",
         "paymentType": "Deposit", "rentalPeriod": "2024-02"},
        {"_id": "p4", "unitId": "u3", "actualRentPaid": 9000, "paymentDate": "2024-01-03T10:00:00Z",
         "paymentType": "Rent Payment", "rentalPeriod": "2024-01"},
        {"_id": "p5", "unitId": "u3", "actualRentPaid": 8500, "paymentDate": "2023-12-03T10:00:00Z",
         "paymentType": "Rent Payment", "rentalPeriod": "2023-12"},
    ]


@pytest.fixture
def store(lease_docs, payment_docs, inventory_docs):
    return InMemoryStore(lease_docs, payment_docs, inventory_docs)


@pytest.fixture
def snapshot(lease_docs, payment_docs, inventory_docs):
    return LandlordSnapshot(
        leases=[Lease.model_validate(d) for d in lease_docs],
        payments=[Payment.model_validate(d) for d in payment_docs],
        inventory=[InventoryUnit.model_validate(d) for d in inventory_docs],
    )


@pytest.fixture
def metrics():
    return MetricsCollector(registry=CollectorRegistry())


@pytest.fixture
def report_settings():
    return ReportSettings(recipients="owner@example.com", landlord_id=LANDLORD_ID)


@pytest.fixture
def email_service():
    service = MagicMock()
    service.send_email = AsyncMock()
    return service


@pytest.fixture
def email_log():
    service = MagicMock()
    service.log_email = AsyncMock(return_value="log-id")
    return service
