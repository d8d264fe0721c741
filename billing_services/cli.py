"""
billing-admin -- operator command line for the billing engine.

Usage:
    billing-admin --config billing.yaml init-db
    billing-admin issue 6f1c...-receipt-uuid
    billing-admin publish-cut <cashier>-<campus>-20240115
    billing-admin generate-charges --month 3 --year 2024
    billing-admin access-url receipt 6f1c...-receipt-uuid

Every command prints one JSON object on stdout.  Typed billing errors are
printed as ``{"ok": false, "code": ..., "category": ..., "error": ...}``
and exit with status 1.
"""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Sequence
from typing import Any
from uuid import UUID

from billing_config import load_config
from billing_kernel.exceptions import BillingKernelError, InvalidIdentifierError
from billing_kernel.logging_config import LogContext, configure_logging
from billing_services.bootstrap import BillingServices, build_billing_services


def _uuid(value: str) -> UUID:
    try:
        return UUID(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"not a UUID: {value!r}") from exc


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="billing-admin",
        description="Operate receipts, cash cuts and monthly charges.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config", help="YAML config file (default: $BILLING_CONFIG)")
    parser.add_argument("--correlation-id", help="Correlation id attached to every log line")
    parser.add_argument("--actor", help="Operator id attached to every log line")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create all tables")
    sub.add_parser("health", help="Check database connectivity")

    for name, text in (
        ("compute", "Recompute a Draft receipt"),
        ("issue", "Issue a Draft receipt"),
        ("cancel", "Cancel an Issued receipt with an approved request"),
        ("regenerate", "Re-render an Issued or Cancelled receipt"),
    ):
        cmd = sub.add_parser(name, help=text)
        cmd.add_argument("receipt_id", type=_uuid)

    cut = sub.add_parser("publish-cut", help="Recompute and publish a cash cut")
    cut.add_argument("cash_cut_id")

    charges = sub.add_parser("generate-charges", help="Generate monthly charges")
    charges.add_argument("--month", type=int)
    charges.add_argument("--year", type=int)

    sync = sub.add_parser("sync-products", help="Synchronize a student's enrollments")
    sync.add_argument("student_id", type=_uuid)

    access = sub.add_parser("access-url", help="Short-lived URL for a document")
    access.add_argument("kind", choices=("receipt", "cut"))
    access.add_argument("entity_id")

    return parser


def run_command(args: argparse.Namespace, services: BillingServices) -> dict[str, Any]:
    command = args.command
    if command == "init-db":
        services.db.create_tables()
        return {"ok": True, "command": command}
    if command == "health":
        return {"ok": services.db.ping(), "command": command}
    if command == "compute":
        return services.lifecycle.compute(args.receipt_id).to_dict()
    if command == "issue":
        return services.lifecycle.issue(args.receipt_id).to_dict()
    if command == "cancel":
        return services.lifecycle.cancel(args.receipt_id).to_dict()
    if command == "regenerate":
        return services.lifecycle.regenerate(args.receipt_id).to_dict()
    if command == "publish-cut":
        publication = services.documents.publish_cash_cut(args.cash_cut_id)
        return {
            "ok": True,
            "cash_cut_id": publication.cash_cut_id,
            "artifact_ref": publication.artifact_ref,
            "grand_total": publication.grand_total,
            "net_cash": publication.net_cash,
            "duration_ms": publication.duration_ms,
        }
    if command == "generate-charges":
        return services.monthly_charges.generate(args.month, args.year).to_dict()
    if command == "sync-products":
        return services.student_products.synchronize(args.student_id).to_dict()
    if command == "access-url":
        if args.kind == "receipt":
            return services.artifact_access.receipt_url(args.entity_id).to_dict()
        return services.artifact_access.cash_cut_url(args.entity_id).to_dict()
    raise InvalidIdentifierError("command", command)


def _error_payload(exc: BillingKernelError) -> dict[str, Any]:
    return {"ok": False, "code": exc.code, "category": exc.category, "error": str(exc)}


def main(argv: Sequence[str] | None = None, services: BillingServices | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        if services is None:
            config = load_config(args.config)
            configure_logging(level=config.logging.level, stream=sys.stderr)
            services = build_billing_services(config)
        with LogContext.bind(correlation_id=args.correlation_id, actor_id=args.actor):
            payload = run_command(args, services)
    except BillingKernelError as exc:
        print(json.dumps(_error_payload(exc)))
        return 1

    print(json.dumps(payload, default=str))
    return 0 if payload.get("ok", True) else 1


if __name__ == "__main__":
    sys.exit(main())
