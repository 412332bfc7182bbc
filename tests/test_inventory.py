import asyncio
import uuid

import pytest

from repairdesk.domain import ValidationError


def test_unknown_product_has_no_stock(repos):
    product = uuid.uuid4()

    async def scenario():
        level = await repos.inventory.get_stock_level(product)
        reserved = await repos.inventory.reserve_stock(product, 1)
        released = await repos.inventory.release_stock(product, 1)
        return level, reserved, released

    assert asyncio.run(scenario()) == (0, False, False)


def test_reserve_more_than_available_fails_and_keeps_level(repos):
    product_x = uuid.uuid4()

    async def scenario():
        await repos.inventory.receive_stock(product_x, 3)
        assert await repos.inventory.get_stock_level(product_x) == 3
        ok = await repos.inventory.reserve_stock(product_x, 5)
        return ok, await repos.inventory.get_stock_level(product_x)

    assert asyncio.run(scenario()) == (False, 3)


def test_reserve_and_release_round_trip(repos):
    product = uuid.uuid4()

    async def scenario():
        assert await repos.inventory.receive_stock(product, 10) == 10
        assert await repos.inventory.reserve_stock(product, 4)
        assert await repos.inventory.get_stock_level(product) == 6
        assert await repos.inventory.reserve_stock(product, 6)
        assert await repos.inventory.get_stock_level(product) == 0
        assert await repos.inventory.release_stock(product, 11) is False
        assert await repos.inventory.release_stock(product, 10)
        return await repos.inventory.get_stock_level(product)

    assert asyncio.run(scenario()) == 10


def test_receive_adds_to_existing_stock(repos):
    product = uuid.uuid4()

    async def scenario():
        await repos.inventory.receive_stock(product, 2)
        await repos.inventory.reserve_stock(product, 2)
        return await repos.inventory.receive_stock(product, 5)

    assert asyncio.run(scenario()) == 5


def test_concurrent_reservations_never_oversell(repos):
    product = uuid.uuid4()

    async def scenario():
        await repos.inventory.receive_stock(product, 5)
        results = await asyncio.gather(
            repos.inventory.reserve_stock(product, 3),
            repos.inventory.reserve_stock(product, 4),
        )
        return results, await repos.inventory.get_stock_level(product)

    results, level = asyncio.run(scenario())
    assert sorted(results) == [False, True]
    assert level in (1, 2)


def test_many_concurrent_reservations_match_stock(repos):
    product = uuid.uuid4()

    async def scenario():
        await repos.inventory.receive_stock(product, 7)
        results = await asyncio.gather(*(repos.inventory.reserve_stock(product, 1) for _ in range(12)))
        return results, await repos.inventory.get_stock_level(product)

    results, level = asyncio.run(scenario())
    assert results.count(True) == 7
    assert level == 0


@pytest.mark.parametrize("quantity", [0, -3, 1.5, True])
def test_quantity_must_be_positive_integer(repos, quantity):
    with pytest.raises(ValidationError) as exc:
        asyncio.run(repos.inventory.reserve_stock(uuid.uuid4(), quantity))
    assert exc.value.field == "quantity"


def test_cancelled_reservation_changes_nothing(repos):
    product = uuid.uuid4()

    async def scenario():
        await repos.inventory.receive_stock(product, 3)
        task = asyncio.create_task(repos.inventory.reserve_stock(product, 2))
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        return await repos.inventory.get_stock_level(product)

    assert asyncio.run(scenario()) == 3
