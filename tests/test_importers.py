import asyncio
import json
import uuid

import pytest

from repairdesk.domain import ValidationError
from repairdesk.importers import ImporterError, import_customers_csv, import_stock_json


def test_import_customers_csv(tmp_path, repos):
    path = tmp_path / "customers.csv"
    path.write_text(
        "first_name,last_name,email,phone_number,address\n"
        "Jane,Doe,jane@example.com,+1 555 0100,1 Main St\n"
        ",,skipped@example.com,000,\n"
        "Bob,Smith,bob@example.com,+1 555 0111,\n",
        encoding="utf-8",
    )

    count = asyncio.run(import_customers_csv(path, repos.customers))
    customers = asyncio.run(repos.customers.list())

    assert count == 2
    assert sorted(c.full_name for c in customers) == ["Bob Smith", "Jane Doe"]
    bob = next(c for c in customers if c.first_name == "Bob")
    assert bob.address is None


def test_import_customers_csv_requires_columns(tmp_path, repos):
    path = tmp_path / "customers.csv"
    path.write_text("name,email\nJane,jane@example.com\n", encoding="utf-8")
    with pytest.raises(ImporterError, match="columns"):
        asyncio.run(import_customers_csv(path, repos.customers))


def test_import_customers_csv_invalid_row(tmp_path, repos):
    path = tmp_path / "customers.csv"
    path.write_text("first_name,last_name,email,phone_number\nJane,Doe,no-at-sign,123\n", encoding="utf-8")
    with pytest.raises(ValidationError):
        asyncio.run(import_customers_csv(path, repos.customers))


def test_import_stock_json(tmp_path, repos):
    screen, battery = uuid.uuid4(), uuid.uuid4()
    path = tmp_path / "stock.json"
    path.write_text(
        json.dumps(
            [
                {"product_id": str(screen), "quantity": 4},
                {"product_id": str(battery), "quantity": 0},
                "junk",
                {"product_id": str(screen), "quantity": 2},
            ]
        ),
        encoding="utf-8",
    )

    count = asyncio.run(import_stock_json(path, repos.inventory))

    assert count == 2
    assert asyncio.run(repos.inventory.get_stock_level(screen)) == 6
    assert asyncio.run(repos.inventory.get_stock_level(battery)) == 0


@pytest.mark.parametrize(
    "content, message",
    [
        ("{not json", "Invalid JSON"),
        ('{"product_id": "x"}', "must be a list"),
        ('[{"product_id": "not-a-uuid", "quantity": 1}]', "Invalid stock entry"),
        ('[{"product_id": "3f2b9c1e-8d4a-4e6b-9a7c-1d2e3f4a5b6c", "quantity": 2.7}]', "whole number"),
        ('[{"product_id": "3f2b9c1e-8d4a-4e6b-9a7c-1d2e3f4a5b6c", "quantity": true}]', "whole number"),
    ],
)
def test_import_stock_json_errors(tmp_path, repos, content, message):
    path = tmp_path / "stock.json"
    path.write_text(content, encoding="utf-8")
    with pytest.raises(ImporterError, match=message):
        asyncio.run(import_stock_json(path, repos.inventory))


def test_import_missing_file(tmp_path, repos):
    with pytest.raises(ImporterError, match="not found"):
        asyncio.run(import_stock_json(tmp_path / "missing.json", repos.inventory))
