"""
Command line entry point.

Results are printed to stdout as JSON; logs go to stderr.
"""

import argparse
import json
import signal
import sys
import threading
from dataclasses import fields, is_dataclass
from typing import Any

from pydantic import BaseModel

from rfp_service.config import settings
from rfp_service.core.database import Database
from rfp_service.core.exceptions import AIServiceError, NotFoundError
from rfp_service.core.logging import configure_logging, get_logger
from rfp_service.core.models import ProposalStatus, RFPStatus, TimelineUnit, Vendor

log = get_logger(__name__)


def _jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(by_alias=True)
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: _jsonable(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    return value


def _emit(data: Any) -> None:
    print(json.dumps(_jsonable(data), indent=2, default=str))


def _rfp_service():
    from rfp_service.services.rfp import RFPService

    return RFPService()


def cmd_init_db(args) -> int:
    Database().init_schema()
    _emit({"schema": "ready"})
    return 0


def cmd_seed_vendors(args) -> int:
    created = _rfp_service().seed_vendors()
    _emit({"created": created})
    return 0


def cmd_add_vendor(args) -> int:
    vendor = _rfp_service().add_vendor(Vendor(
        name=args.name,
        email=args.email,
        company=args.company or "",
        phone=args.phone or "",
        specialization=args.specialization or "",
        address=args.address or "",
    ))
    _emit(vendor)
    return 0


def cmd_list_vendors(args) -> int:
    _emit(Database().list_vendors())
    return 0


def cmd_create_rfp(args) -> int:
    text = sys.stdin.read() if args.text == "-" else args.text
    rfp = _rfp_service().create_rfp_from_text(text)
    _emit(rfp)
    return 0


def cmd_list_rfps(args) -> int:
    _emit(_rfp_service().list_rfps())
    return 0


def cmd_get_rfp(args) -> int:
    _emit(_rfp_service().get_rfp(args.rfp_id))
    return 0


def cmd_update_rfp(args) -> int:
    rfp = _rfp_service().update_rfp(
        args.rfp_id,
        title=args.title,
        description=args.description,
        budget_amount=args.budget,
        budget_currency=args.currency,
        delivery_value=args.delivery,
        delivery_unit=args.delivery_unit,
        payment_terms=args.payment_terms,
        warranty=args.warranty,
        additional_terms=args.additional_terms,
    )
    _emit(rfp)
    return 0


def cmd_delete_rfp(args) -> int:
    _rfp_service().delete_rfp(args.rfp_id)
    _emit({"deleted": args.rfp_id})
    return 0


def cmd_send_rfp(args) -> int:
    results = _rfp_service().send_rfp_to_vendors(args.rfp_id, args.vendor_ids)
    _emit({"rfp_id": args.rfp_id, "results": results})
    return 0 if any(r.status == "sent" for r in results) else 1


def cmd_check_emails(args) -> int:
    from rfp_service.processors.ingestion import ProposalIngestionProcessor

    if not settings.imap_configured:
        log.error("imap_not_configured", hint="set IMAP_USER and IMAP_PASSWORD")
        return 1

    stats = ProposalIngestionProcessor().process()
    _emit(stats)
    return 1 if stats.get("fetch_failed") else 0


def cmd_listen(args) -> int:
    from rfp_service import scheduler

    if not settings.imap_configured:
        log.error("imap_not_configured", hint="set IMAP_USER and IMAP_PASSWORD")
        return 1
    if not settings.listener_enabled:
        log.warning("listener_disabled")
        return 0

    stop = threading.Event()

    def _handle_signal(signum, frame):
        log.info("listener_signal_received", signal=signal.Signals(signum).name)
        stop.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    scheduler.run_now()
    scheduler.start_listener(args.interval)
    try:
        while not stop.wait(1):
            pass
    finally:
        scheduler.stop_listener()
    return 0


def cmd_proposals(args) -> int:
    _emit(Database().get_proposals_for_rfp(args.rfp_id))
    return 0


def cmd_compare(args) -> int:
    report = _rfp_service().compare_proposals(args.rfp_id)
    _emit({
        "rfp": {"id": report.rfp.id, "title": report.rfp.title, "budget": report.rfp.budget},
        "proposals": report.proposals,
        "ai_comparison": report.comparison,
        "unmatched_vendors": report.unmatched_vendors,
    })
    return 0


def cmd_proposal_status(args) -> int:
    proposal = _rfp_service().update_proposal_status(args.proposal_id, ProposalStatus(args.status))
    _emit(proposal)
    return 0


def cmd_rfp_status(args) -> int:
    rfp = _rfp_service().update_rfp_status(args.rfp_id, RFPStatus(args.status))
    _emit(rfp)
    return 0


def cmd_stats(args) -> int:
    _emit(Database().get_stats())
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rfp-service",
        description="Create RFPs, send them to vendors and ingest vendor proposals",
    )
    parser.add_argument(
        "--log-level",
        default=settings.log_level.upper(),
        type=str.upper,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create database tables").set_defaults(func=cmd_init_db)
    sub.add_parser("seed-vendors", help="Insert the sample vendors").set_defaults(func=cmd_seed_vendors)
    sub.add_parser("list-vendors", help="List vendors").set_defaults(func=cmd_list_vendors)

    p = sub.add_parser("add-vendor", help="Register a vendor")
    p.add_argument("name")
    p.add_argument("email", help="Address the vendor replies from")
    p.add_argument("--company")
    p.add_argument("--phone")
    p.add_argument("--specialization")
    p.add_argument("--address")
    p.set_defaults(func=cmd_add_vendor)

    p = sub.add_parser("create-rfp", help="Create an RFP from a free-text description")
    p.add_argument("text", help="Purchasing need in plain language ('-' reads stdin)")
    p.set_defaults(func=cmd_create_rfp)

    sub.add_parser("list-rfps", help="List RFPs, newest first").set_defaults(func=cmd_list_rfps)

    p = sub.add_parser("get-rfp", help="Show one RFP")
    p.add_argument("rfp_id", type=int)
    p.set_defaults(func=cmd_get_rfp)

    p = sub.add_parser("update-rfp", help="Edit an RFP's fields")
    p.add_argument("rfp_id", type=int)
    p.add_argument("--title")
    p.add_argument("--description")
    p.add_argument("--budget", type=float)
    p.add_argument("--currency")
    p.add_argument("--delivery", type=float, help="Delivery timeline value")
    p.add_argument("--delivery-unit", choices=[u.value for u in TimelineUnit])
    p.add_argument("--payment-terms")
    p.add_argument("--warranty")
    p.add_argument("--additional-terms")
    p.set_defaults(func=cmd_update_rfp)

    p = sub.add_parser("delete-rfp", help="Delete an RFP with its proposals")
    p.add_argument("rfp_id", type=int)
    p.set_defaults(func=cmd_delete_rfp)

    p = sub.add_parser("send-rfp", help="Email an RFP to vendors")
    p.add_argument("rfp_id", type=int)
    p.add_argument("vendor_ids", type=int, nargs="+")
    p.set_defaults(func=cmd_send_rfp)

    sub.add_parser(
        "check-emails", help="Fetch and process vendor replies once"
    ).set_defaults(func=cmd_check_emails)

    p = sub.add_parser("listen", help="Poll the inbox until interrupted")
    p.add_argument(
        "--interval",
        type=int,
        default=None,
        help="Seconds between inbox checks (default: LISTENER_INTERVAL_SECONDS)",
    )
    p.set_defaults(func=cmd_listen)

    p = sub.add_parser("proposals", help="List proposals received for an RFP")
    p.add_argument("rfp_id", type=int)
    p.set_defaults(func=cmd_proposals)

    p = sub.add_parser("compare", help="Score and rank the proposals for an RFP")
    p.add_argument("rfp_id", type=int)
    p.set_defaults(func=cmd_compare)

    p = sub.add_parser("proposal-status", help="Set a proposal's review status")
    p.add_argument("proposal_id", type=int)
    p.add_argument("status", choices=[s.value for s in ProposalStatus])
    p.set_defaults(func=cmd_proposal_status)

    p = sub.add_parser("rfp-status", help="Set an RFP's status")
    p.add_argument("rfp_id", type=int)
    p.add_argument("status", choices=[s.value for s in RFPStatus])
    p.set_defaults(func=cmd_rfp_status)

    sub.add_parser("stats", help="Show processing statistics").set_defaults(func=cmd_stats)

    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    args = build_parser().parse_args(argv)

    configure_logging(log_level=args.log_level, json_output=settings.json_logs)

    try:
        return args.func(args)
    except (ValueError, NotFoundError) as e:
        log.error("command_failed", command=args.command, error=str(e))
        _emit({"error": str(e)})
        return 2
    except AIServiceError as e:
        log.error("ai_service_failed", command=args.command, error=str(e))
        _emit({"error": str(e)})
        return 1


if __name__ == "__main__":
    sys.exit(main())
