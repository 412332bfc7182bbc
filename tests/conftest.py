"""
Shared fixtures: a fresh in-process store per test.
"""
from decimal import Decimal

import pytest

from repairdesk.domain import Asset, Customer, RepairTicket
from repairdesk.repositories import memory_repositories
from repairdesk.repositories.memory import MemoryStore
from repairdesk.services.repair_service import RepairService


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def repos(store):
    return memory_repositories(store)


@pytest.fixture
def service(repos):
    return RepairService(customers=repos.customers, assets=repos.assets, tickets=repos.tickets)


def make_customer(**overrides):
    fields = dict(
        first_name="Jane",
        last_name="Doe",
        email="jane.doe@example.com",
        phone_number="+1 555 0100",
    )
    fields.update(overrides)
    return Customer(**fields)


def make_asset(customer_id, **overrides):
    fields = dict(customer_id=customer_id, device_type="phone", manufacturer="Apple", model="iPhone 13",
                  serial_number="ABC123")
    fields.update(overrides)
    return Asset(**fields)


def make_ticket(asset_id, **overrides):
    fields = dict(asset_id=asset_id, title="Cracked screen", description="Front glass shattered",
                  estimated_cost=Decimal("150.00"))
    fields.update(overrides)
    return RepairTicket(**fields)


async def seed_asset(repos):
    """Register Jane Doe and her phone, return (customer, asset)."""
    customer = await repos.customers.create(make_customer())
    asset = await repos.assets.create(make_asset(customer.id))
    return customer, asset
