from __future__ import annotations

import argparse

from rich.panel import Panel

from permisoria.application.services.audit_service import AuditService
from permisoria.application.services.certificate_service import CertificateService
from permisoria.application.services.project_service import ProjectService
from permisoria.cli.context import CLIContext
from permisoria.domain.models.certificate import VerificationCertificate
from permisoria.infrastructure.db.repos.activity_log_repo import ActivityLogRepo
from permisoria.infrastructure.db.repos.certificate_repo import CertificateRepo
from permisoria.infrastructure.db.repos.owner_repo import OwnerRepo
from permisoria.infrastructure.db.repos.verification_repo import VerificationRepo


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("certificate", help="Issue, revoke and check verification certificates")
    cert_subparsers = parser.add_subparsers(dest="certificate_command", required=True)

    show_parser = cert_subparsers.add_parser("show", help="Show (issuing if needed) an owner's certificate")
    show_parser.add_argument("--owner-id", required=True)
    show_parser.add_argument("--actor-id", required=True)
    show_parser.add_argument("--verification-id")
    show_parser.set_defaults(handler=run_show)

    revoke_parser = cert_subparsers.add_parser("revoke", help="Revoke a certificate")
    revoke_parser.add_argument("--certificate-id", required=True)
    revoke_parser.add_argument("--actor-id", required=True)
    revoke_parser.add_argument("--reason", default="")
    revoke_parser.set_defaults(handler=run_revoke)

    check_parser = cert_subparsers.add_parser("check", help="Check a certificate by its verification hash")
    check_parser.add_argument("--hash", dest="verification_hash", required=True)
    check_parser.set_defaults(handler=run_check)


def _service(ctx: CLIContext) -> CertificateService:
    ProjectService(ctx.paths).require_initialized()
    db_path = ctx.paths.db_path
    return CertificateService(
        owner_repo=OwnerRepo(db_path),
        verification_repo=VerificationRepo(db_path),
        certificate_repo=CertificateRepo(db_path),
        audit_service=AuditService(ActivityLogRepo(db_path)),
        settings=ctx.settings,
    )


def _print_certificate(ctx: CLIContext, certificate: VerificationCertificate, title: str) -> None:
    lines = [
        f"Certificate ID: {certificate.id}",
        f"Number: {certificate.certificate_number}",
        f"Verification: {certificate.verification_id}",
        f"Issued: {certificate.issued_at}",
        f"Expires: {certificate.expires_at}",
        f"Validation URL: {certificate.validation_url}",
    ]
    if certificate.is_revoked:
        lines.append(f"[red]Revoked[/red] {certificate.revoked_at}: {certificate.revoked_reason}")
    ctx.console.print(Panel.fit("\n".join(lines), title=title))


def run_show(args: argparse.Namespace, ctx: CLIContext) -> int:
    certificate = _service(ctx).get_or_generate_certificate(
        args.owner_id,
        args.actor_id,
        verification_id=args.verification_id,
    )
    _print_certificate(ctx, certificate, "Verification Certificate")
    return 0


def run_revoke(args: argparse.Namespace, ctx: CLIContext) -> int:
    certificate = _service(ctx).revoke_certificate(args.certificate_id, args.actor_id, args.reason)
    _print_certificate(ctx, certificate, "Certificate Revoked")
    return 0


def run_check(args: argparse.Namespace, ctx: CLIContext) -> int:
    result = _service(ctx).verify_certificate_by_hash(args.verification_hash)
    color = "green" if result["valid"] else "red"
    ctx.console.print(f"[{color}]{result['status']}[/{color}]")
    if "certificateNumber" in result:
        ctx.console.print(f"{result['certificateNumber']} expires {result['expiresAt']}")
    return 0 if result["valid"] else 1
