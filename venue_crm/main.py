"""Command-line entrypoint for the automation engine."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any

from venue_crm.auth.rbac import build_caller
from venue_crm.core.config import get_config
from venue_crm.core.startup import bootstrap
from venue_crm.database.db import verify_database_connection
from venue_crm.database.init_db import init_db
from venue_crm.database.store import SqlLeadStore
from venue_crm.orchestration.orchestrator import AutomationOrchestrator
from venue_crm.services.assistant import answer_query
from venue_crm.services.llm_client import OllamaOracle

logger = logging.getLogger(__name__)

COMMANDS = ("run", "stale-scan", "site-visit-scan", "quote-scan", "invoice-retry", "init-db", "health", "ask")


def _print(payload: dict[str, Any]) -> None:
    print(json.dumps(payload, default=str, indent=2))


def _health() -> dict[str, Any]:
    cfg = get_config()
    return {
        "service": cfg.APP_NAME,
        "version": cfg.APP_VERSION,
        "env": cfg.ENV,
        "database": "ok" if verify_database_connection() else "unreachable",
        "messaging_sandbox": cfg.MESSAGING_SANDBOX_MODE,
        "invoicing_configured": cfg.invoicing_configured,
    }


def _ask(query: str, name: str, role: str | None, language: str) -> dict[str, Any]:
    store = SqlLeadStore()
    caller = build_caller(name, store.list_roster(roles=None), role=role)
    answer = answer_query(
        query,
        caller,
        store,
        OllamaOracle(),
        language=language,
        venue_name=get_config().VENUE_NAME,
    )
    return {
        "answer": answer.text,
        "scope": answer.scope.value,
        "success": answer.success,
        "latency_ms": answer.latency_ms,
    }


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Venue CRM lead lifecycle automation.")
    parser.add_argument("command", choices=COMMANDS, help="What to run.")
    parser.add_argument("query", nargs="?", help="Question for the ask command.")
    parser.add_argument("--as", dest="caller", help="Employee name the ask command runs as.")
    parser.add_argument("--role", help="Ask with a lower role than the roster grants.")
    parser.add_argument("--language", choices=("en", "ur"), default="en")
    args = parser.parse_args(argv)
    if args.command == "ask" and not (args.query and args.caller):
        parser.error("ask needs a query and --as NAME")

    if args.command == "init-db":
        _print({"seeded": init_db()})
        return 0

    bootstrap()
    if args.command == "health":
        _print(_health())
        return 0

    if args.command == "ask":
        _print(_ask(args.query, args.caller, args.role, args.language))
        return 0

    orchestrator = AutomationOrchestrator(SqlLeadStore())
    if args.command == "stale-scan":
        _print(orchestrator.run_stale_scan_once().as_dict())
    elif args.command == "site-visit-scan":
        _print(orchestrator.run_site_visit_scan_once().as_dict())
    elif args.command == "quote-scan":
        _print(orchestrator.run_quote_scan_once().as_dict())
    elif args.command == "invoice-retry":
        _print(orchestrator.retry_invoice_pushes().as_dict())
    else:
        try:
            asyncio.run(orchestrator.run_forever())
        except KeyboardInterrupt:
            logger.info("orchestrator.interrupted", extra={"event": "orchestrator.interrupted"})
    return 0


if __name__ == "__main__":
    sys.exit(main())
