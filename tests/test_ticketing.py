import asyncio
import uuid
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from repairdesk.domain import ReferentialError, RepairStatus, ValidationError
from repairdesk.repositories import memory_repositories
from repairdesk.repositories.memory import MemoryStore

from conftest import make_ticket, seed_asset


def test_create_then_get_round_trip(repos):
    async def scenario():
        customer, asset = await seed_asset(repos)
        draft = make_ticket(asset.id, technician_notes="Customer dropped it")
        created = await repos.tickets.create(draft)
        fetched = await repos.tickets.get_by_id(created.id)
        return customer, asset, draft, created, fetched

    customer, asset, draft, created, fetched = asyncio.run(scenario())

    assert created.id is not None
    assert created.created_at is not None
    assert created.status is RepairStatus.CREATED
    assert fetched == created
    assert replace(fetched, id=None, created_at=None) == draft


def test_get_by_id_includes_asset_and_owner(repos):
    async def scenario():
        customer, asset = await seed_asset(repos)
        created = await repos.tickets.create(make_ticket(asset.id))
        return customer, asset, await repos.tickets.get_by_id(created.id)

    customer, asset, fetched = asyncio.run(scenario())
    assert fetched.asset == asset
    assert fetched.asset.customer == customer
    assert fetched.asset.customer.full_name == "Jane Doe"


def test_get_by_id_missing_returns_none(repos):
    assert asyncio.run(repos.tickets.get_by_id(uuid.uuid4())) is None


def test_get_by_asset_newest_first(repos):
    async def scenario():
        _, asset = await seed_asset(repos)
        _, other = await seed_asset(repos)
        first = await repos.tickets.create(make_ticket(asset.id, title="Battery swap"))
        second = await repos.tickets.create(make_ticket(asset.id, title="Cracked screen"))
        await repos.tickets.create(make_ticket(other.id, title="Water damage"))
        return first, second, await repos.tickets.get_by_asset(asset.id)

    first, second, history = asyncio.run(scenario())
    assert [t.id for t in history] == [second.id, first.id]


def test_create_against_unknown_asset_is_rejected(repos):
    with pytest.raises(ReferentialError):
        asyncio.run(repos.tickets.create(make_ticket(uuid.uuid4())))


def test_create_rejects_invalid_fields_before_storage(repos, store):
    async def scenario():
        _, asset = await seed_asset(repos)
        with pytest.raises(ValidationError) as exc:
            await repos.tickets.create(make_ticket(asset.id, title=""))
        assert exc.value.field == "title"
        with pytest.raises(ValidationError) as exc:
            await repos.tickets.create(make_ticket(asset.id, status=RepairStatus.IN_PROGRESS))
        assert exc.value.field == "status"
        return await repos.tickets.get_by_asset(asset.id)

    assert asyncio.run(scenario()) == []
    assert store.committed.tickets == {}


def test_update_unknown_ticket_returns_false(repos):
    async def scenario():
        _, asset = await seed_asset(repos)
        ghost = make_ticket(asset.id, id=uuid.uuid4())
        return await repos.tickets.update(ghost)

    assert asyncio.run(scenario()) is False


def test_update_replaces_mutable_fields(repos):
    async def scenario():
        _, asset = await seed_asset(repos)
        created = await repos.tickets.create(make_ticket(asset.id))
        edited = replace(created, title="Cracked screen and bent frame", estimated_cost=Decimal("180.00"))
        ok = await repos.tickets.update(edited)
        return created, ok, await repos.tickets.get_by_id(created.id)

    created, ok, fetched = asyncio.run(scenario())
    assert ok is True
    assert fetched.title == "Cracked screen and bent frame"
    assert fetched.estimated_cost == Decimal("180.00")
    assert fetched.created_at == created.created_at
    assert fetched.updated_at > created.created_at


def test_update_with_illegal_transition_leaves_status(repos):
    async def scenario():
        _, asset = await seed_asset(repos)
        created = await repos.tickets.create(make_ticket(asset.id, actual_cost=Decimal("10.00")))
        ok = await repos.tickets.update(replace(created, status=RepairStatus.COMPLETED, title="changed"))
        return ok, await repos.tickets.get_by_id(created.id)

    ok, fetched = asyncio.run(scenario())
    assert ok is False
    assert fetched.status is RepairStatus.CREATED
    assert fetched.title == "Cracked screen"
    assert fetched.updated_at is None


def test_completed_at_is_set_once(repos):
    async def scenario():
        _, asset = await seed_asset(repos)
        t = await repos.tickets.create(make_ticket(asset.id))
        assert await repos.tickets.update(replace(t, status=RepairStatus.IN_PROGRESS))
        t = await repos.tickets.get_by_id(t.id)
        assert await repos.tickets.update(replace(t, status=RepairStatus.COMPLETED, actual_cost=Decimal("145.00")))
        done = await repos.tickets.get_by_id(t.id)

        later = replace(
            done,
            technician_notes="Follow-up call made",
            completed_at=done.completed_at + timedelta(days=3),
        )
        assert await repos.tickets.update(later)
        assert not await repos.tickets.update(replace(done, status=RepairStatus.IN_PROGRESS))
        return done, await repos.tickets.get_by_id(t.id)

    done, final = asyncio.run(scenario())
    assert done.completed_at is not None
    assert final.completed_at == done.completed_at
    assert final.status is RepairStatus.COMPLETED
    assert final.technician_notes == "Follow-up call made"


def test_completion_without_actual_cost_is_refused(repos):
    async def scenario():
        _, asset = await seed_asset(repos)
        t = await repos.tickets.create(make_ticket(asset.id))
        await repos.tickets.update(replace(t, status=RepairStatus.IN_PROGRESS))
        t = await repos.tickets.get_by_id(t.id)
        ok = await repos.tickets.update(replace(t, status=RepairStatus.COMPLETED))
        return ok, await repos.tickets.get_by_id(t.id)

    ok, fetched = asyncio.run(scenario())
    assert ok is False
    assert fetched.status is RepairStatus.IN_PROGRESS
    assert fetched.completed_at is None


def test_completed_ticket_keeps_its_actual_cost(repos):
    async def scenario():
        _, asset = await seed_asset(repos)
        t = await repos.tickets.create(make_ticket(asset.id))
        await repos.tickets.update(replace(t, status=RepairStatus.IN_PROGRESS))
        t = await repos.tickets.get_by_id(t.id)
        await repos.tickets.update(replace(t, status=RepairStatus.COMPLETED, actual_cost=Decimal("145.00")))
        done = await repos.tickets.get_by_id(t.id)
        ok = await repos.tickets.update(replace(done, actual_cost=None))
        return ok, done, await repos.tickets.get_by_id(t.id)

    ok, done, fetched = asyncio.run(scenario())
    assert ok is False
    assert fetched.actual_cost == Decimal("145.00")
    assert fetched.updated_at == done.updated_at


def test_completion_policy_can_be_relaxed():
    repos = memory_repositories(require_actual_cost=False)

    async def scenario():
        _, asset = await seed_asset(repos)
        t = await repos.tickets.create(make_ticket(asset.id))
        await repos.tickets.update(replace(t, status=RepairStatus.IN_PROGRESS))
        t = await repos.tickets.get_by_id(t.id)
        return await repos.tickets.update(replace(t, status=RepairStatus.COMPLETED))

    assert asyncio.run(scenario()) is True


def test_successive_updates_strictly_increase_updated_at():
    frozen = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
    repos = memory_repositories(MemoryStore(clock=lambda: frozen))

    async def scenario():
        _, asset = await seed_asset(repos)
        t = await repos.tickets.create(make_ticket(asset.id))
        stamps = []
        for title in ("one", "two", "three"):
            assert await repos.tickets.update(replace(t, title=title))
            stamps.append((await repos.tickets.get_by_id(t.id)).updated_at)
        return t, stamps

    created, stamps = asyncio.run(scenario())
    assert created.created_at < stamps[0] < stamps[1] < stamps[2]


def test_concurrent_updates_are_serialized(repos):
    async def scenario():
        _, asset = await seed_asset(repos)
        t = await repos.tickets.create(make_ticket(asset.id))
        results = await asyncio.gather(
            repos.tickets.update(replace(t, status=RepairStatus.IN_PROGRESS)),
            repos.tickets.update(replace(t, status=RepairStatus.CANCELLED)),
        )
        return results, await repos.tickets.get_by_id(t.id)

    results, fetched = asyncio.run(scenario())
    # the second writer sees the first writer's committed in_progress status
    assert results == [True, True]
    assert fetched.status is RepairStatus.CANCELLED


def test_cancellation_before_commit_leaves_no_ticket(repos, store):
    async def scenario():
        _, asset = await seed_asset(repos)
        task = asyncio.create_task(repos.tickets.create(make_ticket(asset.id)))
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        return asset, await repos.tickets.get_by_asset(asset.id)

    asset, history = asyncio.run(scenario())
    assert history == []
    assert store.committed.tickets == {}
