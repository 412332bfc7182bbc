from __future__ import annotations

import csv
import json
import uuid
from pathlib import Path

import structlog

from .boundaries import CustomerRepository, InventoryRepository
from .domain import Customer

log = structlog.get_logger(__name__)


class ImporterError(Exception):
    pass


async def import_customers_csv(path: str | Path, customers: CustomerRepository) -> int:
    p = Path(path)
    if not p.exists():
        raise ImporterError(f"File not found: {p}")

    count = 0
    with p.open("r", encoding="utf-8", newline="") as f:
        reader = csv.DictReader(f)
        required = {"first_name", "last_name", "email", "phone_number"}
        if not required.issubset(set(reader.fieldnames or [])):
            raise ImporterError(f"CSV must contain columns: {sorted(required)}")

        for row in reader:
            first_name = (row.get("first_name") or "").strip()
            last_name = (row.get("last_name") or "").strip()
            if not first_name or not last_name:
                continue
            await customers.create(
                Customer(
                    first_name=first_name,
                    last_name=last_name,
                    email=(row.get("email") or "").strip(),
                    phone_number=(row.get("phone_number") or "").strip(),
                    address=(row.get("address") or "").strip() or None,
                )
            )
            count += 1

    log.info("customers_imported", path=str(p), count=count)
    return count


async def import_stock_json(path: str | Path, inventory: InventoryRepository) -> int:
    p = Path(path)
    if not p.exists():
        raise ImporterError(f"File not found: {p}")

    try:
        data = json.loads(p.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ImporterError(f"Invalid JSON: {e}") from e

    if not isinstance(data, list):
        raise ImporterError("JSON must be a list of objects")

    count = 0
    for obj in data:
        if not isinstance(obj, dict):
            continue
        try:
            product_id = uuid.UUID(str(obj.get("product_id", "")))
        except (TypeError, ValueError) as e:
            raise ImporterError(f"Invalid stock entry {obj!r}: {e}") from e
        quantity = obj.get("quantity", 0)
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            raise ImporterError(f"Invalid stock entry {obj!r}: quantity must be a whole number")
        if quantity <= 0:
            continue

        await inventory.receive_stock(product_id, quantity)
        count += 1

    log.info("stock_imported", path=str(p), count=count)
    return count
