from __future__ import annotations

import argparse
import asyncio
import sys

import structlog

from .cli import run_cli
from .config import ConfigError, load_config
from .db import Db, DbError
from .observability import setup_logging
from .repositories import memory_repositories, postgres_repositories

log = structlog.get_logger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="repairdesk", description="Repair shop ticketing and inventory desk")
    parser.add_argument("--config", help="path to config TOML (default: $REPAIRDESK_CONFIG or ./config.toml)")
    parser.add_argument(
        "--memory",
        action="store_true",
        help="use the in-process store instead of PostgreSQL (data is lost on exit)",
    )
    parser.add_argument("command", nargs="?", default="shell", choices=["shell", "init-db"])
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    try:
        if args.memory:
            setup_logging("WARNING")
            if args.command == "init-db":
                print("Nothing to initialise for the in-process store.")
                return 0
            run_cli(memory_repositories())
            return 0

        cfg = load_config(args.config)
        setup_logging(cfg.log_level, cfg.log_format)
        db = Db(cfg.db)
        require_cost = cfg.business.require_actual_cost_on_completion

        if args.command == "init-db":
            asyncio.run(db.apply_schema())
            print(f"Schema applied to database {cfg.db.name!r}.")
            return 0

        log.info("cli_started", app=cfg.name, database=cfg.db.name)
        run_cli(postgres_repositories(db, require_actual_cost=require_cost), require_actual_cost=require_cost)
        return 0
    except ConfigError as e:
        print(f"[CONFIG ERROR] {e}")
        return 2
    except DbError as e:
        print(f"[DB ERROR] {e}")
        return 3
    except (KeyboardInterrupt, EOFError):
        print("\nInterrupted.")
        return 130


if __name__ == "__main__":
    sys.exit(main())
