from __future__ import annotations

import asyncio
import uuid
from decimal import Decimal

from .domain import RepairStatus, RepairTicket, ReferentialError, ValidationError
from .importers import ImporterError, import_customers_csv, import_stock_json
from .repositories import Repositories
from .services.repair_service import RepairService


def _prompt(msg: str) -> str:
    return input(msg).strip()


def _prompt_id(msg: str) -> uuid.UUID:
    return uuid.UUID(_prompt(msg))


def _format_ticket(t: RepairTicket) -> str:
    line = (
        f"#{t.id} [{t.status.value}] {t.title} est={t.estimated_cost} "
        f"actual={t.actual_cost if t.actual_cost is not None else '-'} created={t.created_at:%Y-%m-%d %H:%M}"
    )
    if t.completed_at:
        line += f" completed={t.completed_at:%Y-%m-%d %H:%M}"
    return line


def run_cli(repos: Repositories, require_actual_cost: bool = True) -> None:
    service = RepairService(
        customers=repos.customers,
        assets=repos.assets,
        tickets=repos.tickets,
        require_actual_cost=require_actual_cost,
    )
    statuses = ", ".join(s.value for s in RepairStatus)

    while True:
        print("\n=== RepairDesk CLI ===")
        print("1) List customers")
        print("2) Register customer")
        print("3) Register asset (device)")
        print("4) List assets of a customer")
        print("5) Service history of an asset")
        print("6) Open repair ticket")
        print("7) Show ticket")
        print("8) Change ticket status")
        print("9) Record costs / technician notes")
        print("10) Stock: level / reserve / release / receive")
        print("11) Import customers CSV")
        print("12) Import stock JSON")
        print("0) Exit")

        choice = _prompt("> ")
        try:
            if choice == "0":
                return

            elif choice == "1":
                rows = asyncio.run(repos.customers.list(limit=50))
                for c in rows:
                    print(f"#{c.id} {c.full_name} email={c.email} phone={c.phone_number}")

            elif choice == "2":
                customer = asyncio.run(
                    service.register_customer(
                        first_name=_prompt("first_name: "),
                        last_name=_prompt("last_name: "),
                        email=_prompt("email: "),
                        phone_number=_prompt("phone_number: "),
                        address=_prompt("address (optional): ") or None,
                    )
                )
                print(f"Registered customer_id={customer.id}")

            elif choice == "3":
                asset = asyncio.run(
                    service.register_asset(
                        customer_id=_prompt_id("customer_id: "),
                        device_type=_prompt("device_type (phone/laptop/custom build): "),
                        manufacturer=_prompt("manufacturer (optional): ") or None,
                        model=_prompt("model (optional): ") or None,
                        serial_number=_prompt("serial_number (optional): ") or None,
                        notes=_prompt("notes (optional): ") or None,
                    )
                )
                print(f"Registered asset_id={asset.id}")

            elif choice == "4":
                rows = asyncio.run(repos.assets.list_by_customer(_prompt_id("customer_id: ")))
                for a in rows:
                    print(f"#{a.id} {a.device_type} {a.manufacturer or ''} {a.model or ''} serial={a.serial_number}")

            elif choice == "5":
                rows = asyncio.run(service.service_history(_prompt_id("asset_id: ")))
                if not rows:
                    print("No tickets for this asset.")
                for t in rows:
                    print(_format_ticket(t))

            elif choice == "6":
                ticket = asyncio.run(
                    service.open_ticket(
                        asset_id=_prompt_id("asset_id: "),
                        title=_prompt("title: "),
                        description=_prompt("description: "),
                        estimated_cost=Decimal(_prompt("estimated_cost: ") or "0"),
                    )
                )
                print(f"Opened ticket_id={ticket.id}")

            elif choice == "7":
                t = asyncio.run(service.ticket_details(_prompt_id("ticket_id: ")))
                if t is None:
                    print("Ticket not found.")
                else:
                    print(_format_ticket(t))
                    if t.asset is not None:
                        a = t.asset
                        print(f"  asset: {a.device_type} {a.manufacturer or ''} {a.model or ''} serial={a.serial_number}")
                        if a.customer is not None:
                            print(f"  owner: {a.customer.full_name} {a.customer.email} {a.customer.phone_number}")
                    if t.technician_notes:
                        print(f"  notes: {t.technician_notes}")

            elif choice == "8":
                ticket_id = _prompt_id("ticket_id: ")
                status = _prompt(f"new status ({statuses}): ")
                if asyncio.run(service.change_status(ticket_id, status)):
                    print(f"Ticket moved to {status}.")
                else:
                    print("Status change rejected (unknown ticket, illegal move or missing actual cost).")

            elif choice == "9":
                ticket_id = _prompt_id("ticket_id: ")
                actual = _prompt("actual_cost (blank to keep): ")
                notes = _prompt("technician note (blank to skip): ")
                t = None
                if actual:
                    t = asyncio.run(service.record_costs(ticket_id, actual_cost=Decimal(actual)))
                if notes:
                    t = asyncio.run(service.add_technician_notes(ticket_id, notes))
                if t is None:
                    print("Nothing recorded.")
                else:
                    print(_format_ticket(t))

            elif choice == "10":
                product_id = _prompt_id("product_id: ")
                action = _prompt("level/reserve/release/receive: ").lower()
                if action == "level":
                    print(f"Available: {asyncio.run(repos.inventory.get_stock_level(product_id))}")
                elif action in {"reserve", "release", "receive"}:
                    qty = int(_prompt("quantity: "))
                    if action == "receive":
                        level = asyncio.run(repos.inventory.receive_stock(product_id, qty))
                        print(f"Available: {level}")
                    else:
                        op = repos.inventory.reserve_stock if action == "reserve" else repos.inventory.release_stock
                        ok = asyncio.run(op(product_id, qty))
                        print("Done." if ok else f"{action.capitalize()} rejected.")
                        print(f"Available: {asyncio.run(repos.inventory.get_stock_level(product_id))}")
                else:
                    print("Unknown stock action.")

            elif choice == "11":
                path = _prompt("path to customers.csv: ")
                n = asyncio.run(import_customers_csv(path, repos.customers))
                print(f"Imported customers: {n}")

            elif choice == "12":
                path = _prompt("path to stock.json: ")
                n = asyncio.run(import_stock_json(path, repos.inventory))
                print(f"Imported stock entries: {n}")

            else:
                print("Unknown choice.")

        except ValidationError as e:
            print(f"[INPUT ERROR] {e}")
        except ReferentialError as e:
            print(f"[REFERENCE ERROR] {e}")
        except ImporterError as e:
            print(f"[IMPORT ERROR] {e}")
        except (ValueError, ArithmeticError) as e:
            print(f"[VALUE ERROR] {e}")
