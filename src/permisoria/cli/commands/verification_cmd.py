from __future__ import annotations

import argparse
import json
from pathlib import Path

from rich.panel import Panel
from rich.table import Table

from permisoria.application.services.audit_service import AuditService
from permisoria.application.services.certificate_service import CertificateService
from permisoria.application.services.project_service import ProjectService
from permisoria.application.services.verification_service import VerificationService
from permisoria.cli.context import CLIContext
from permisoria.core.errors import ValidationError
from permisoria.infrastructure.db.repos.activity_log_repo import ActivityLogRepo
from permisoria.infrastructure.db.repos.certificate_repo import CertificateRepo
from permisoria.infrastructure.db.repos.owner_repo import OwnerRepo
from permisoria.infrastructure.db.repos.verification_repo import VerificationRepo


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("verification", help="Inspect and drive owner verifications")
    verification_subparsers = parser.add_subparsers(dest="verification_command", required=True)

    status_parser = verification_subparsers.add_parser("status", help="Show an owner's verification status")
    status_parser.add_argument("--owner-id", required=True)
    status_parser.add_argument("--actor-id", required=True)
    status_parser.add_argument("--history", action="store_true", help="Include the current attempt's history")
    status_parser.set_defaults(handler=run_status)

    start_parser = verification_subparsers.add_parser("start", help="Start a new verification attempt")
    start_parser.add_argument("--owner-id", required=True)
    start_parser.add_argument("--actor-id", required=True)
    start_parser.set_defaults(handler=run_start)

    log_parser = verification_subparsers.add_parser("log", help="Show an owner's activity log")
    log_parser.add_argument("--owner-id", required=True)
    log_parser.add_argument("--actor-id", required=True)
    log_parser.add_argument("--entity-type")
    log_parser.add_argument("--action")
    log_parser.add_argument("--page", type=int, default=1)
    log_parser.add_argument("--limit", type=int, default=20)
    log_parser.set_defaults(handler=run_log)

    decide_parser = verification_subparsers.add_parser(
        "decide",
        help="Submit a decision from a JSON file shaped like the PUT request body",
    )
    decide_parser.add_argument("--owner-id", required=True)
    decide_parser.add_argument("--actor-id", required=True)
    decide_parser.add_argument("--file", type=Path, required=True)
    decide_parser.set_defaults(handler=run_decide)


def build_verification_service(ctx: CLIContext) -> VerificationService:
    ProjectService(ctx.paths).require_initialized()
    settings = ctx.settings
    db_path = ctx.paths.db_path
    owner_repo = OwnerRepo(db_path)
    verification_repo = VerificationRepo(db_path)
    certificate_repo = CertificateRepo(db_path)
    audit_service = AuditService(ActivityLogRepo(db_path))
    certificate_service = CertificateService(
        owner_repo=owner_repo,
        verification_repo=verification_repo,
        certificate_repo=certificate_repo,
        audit_service=audit_service,
        settings=settings,
    )
    return VerificationService(
        owner_repo=owner_repo,
        verification_repo=verification_repo,
        audit_service=audit_service,
        certificate_service=certificate_service,
        certificate_repo=certificate_repo,
        settings=settings,
    )


def run_status(args: argparse.Namespace, ctx: CLIContext) -> int:
    status = build_verification_service(ctx).get_verification_status(
        args.owner_id,
        args.actor_id,
        include_documents=True,
        include_history=args.history,
        include_draft=False,
    )
    owner = status["owner"]
    metrics = status["metrics"]
    current = status["currentAttempt"]

    lines = [
        f"Owner: {owner['name']} ({owner['id']})",
        f"Status: {owner['verificationStatus']}",
        f"Last verified: {metrics['lastVerifiedAt'] or '-'}",
        f"Expires: {metrics['verificationExpiresAt'] or '-'}",
        f"Days until expiry: {metrics['daysUntilExpiry'] if metrics['daysUntilExpiry'] is not None else '-'}",
        f"Attempts: {metrics['totalAttempts']}",
        f"Latest certificate: {metrics['latestCertificateId'] or '-'}",
    ]
    if current:
        lines.append(f"Current attempt: {current['id']} [{current['status']}]")
    totals = status["documents"]["totals"]
    lines.append(
        f"Documents: {totals['total']} total, {totals['verified']} verified, "
        f"{totals['pending']} pending, {totals['issues']} with issues"
    )
    ctx.console.print(Panel.fit("\n".join(lines), title="Verification Status"))

    if args.history and current:
        table = Table(title="History")
        table.add_column("When")
        table.add_column("Action")
        table.add_column("Step")
        table.add_column("By")
        for event in current.get("history", []):
            step = event["stepNumber"]
            table.add_row(event["performedAt"], event["action"], "" if step is None else str(step), event["performedBy"])
        ctx.console.print(table)
    return 0


def run_start(args: argparse.Namespace, ctx: CLIContext) -> int:
    attempt = build_verification_service(ctx).create_verification_attempt(args.owner_id, args.actor_id)
    ctx.console.print(f"[green]Verification started[/green] {attempt.id}")
    return 0


def run_decide(args: argparse.Namespace, ctx: CLIContext) -> int:
    try:
        payload = json.loads(args.file.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise ValidationError(f"Could not read decision file {args.file}: {exc}") from exc

    result = build_verification_service(ctx).submit_verification_decision(args.owner_id, args.actor_id, payload)
    lines = [
        f"Verification: {result['verificationId']}",
        f"Decision: {result['decision']}",
        f"Owner status: {result['ownerStatus']}",
        f"Finalized: {'yes' if result['isFinalized'] else 'no'}",
    ]
    if result["certificate"]:
        lines.append(f"Certificate: {result['certificate']['certificateNumber']}")
    ctx.console.print(Panel.fit("\n".join(lines), title="Decision Recorded"))
    return 0


def run_log(args: argparse.Namespace, ctx: CLIContext) -> int:
    result = build_verification_service(ctx).get_activity_logs(
        args.owner_id,
        args.actor_id,
        page=args.page,
        limit=args.limit,
        entity_type=args.entity_type,
        action=args.action,
    )
    pagination = result["pagination"]

    pages = max(1, pagination["pages"])
    table = Table(title=f"Activity (page {pagination['current']} of {pages}, {pagination['total']} total)")
    table.add_column("When")
    table.add_column("Entity")
    table.add_column("Action")
    table.add_column("Description")
    table.add_column("By")
    for entry in result["data"]:
        table.add_row(
            entry["performedAt"],
            entry["entityType"],
            entry["action"],
            entry["actionDescription"],
            entry["performedBy"],
        )
    ctx.console.print(table)
    return 0
