from __future__ import annotations

import argparse

from rich.table import Table

from permisoria.application.services.owner_service import OwnerService
from permisoria.application.services.project_service import ProjectService
from permisoria.cli.context import CLIContext
from permisoria.domain.models.owner import OWNER_FIELD_NAMES
from permisoria.infrastructure.db.repos.actor_repo import ActorRepo
from permisoria.infrastructure.db.repos.owner_repo import OwnerRepo


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("owners", help="Manage business owners")
    owner_subparsers = parser.add_subparsers(dest="owners_command", required=True)

    add_parser = owner_subparsers.add_parser("add", help="Register a business owner for a manager")
    add_parser.add_argument("--manager-id", required=True)
    for name in OWNER_FIELD_NAMES:
        add_parser.add_argument(f"--{name.replace('_', '-')}", dest=name, required=name in {"first_name", "last_name"})
    add_parser.set_defaults(handler=run_add)

    list_parser = owner_subparsers.add_parser("list", help="List owners assigned to a manager")
    list_parser.add_argument("--manager-id", required=True)
    list_parser.add_argument("--limit", type=int, default=100)
    list_parser.set_defaults(handler=run_list)


def _service(ctx: CLIContext) -> OwnerService:
    ProjectService(ctx.paths).require_initialized()
    return OwnerService(OwnerRepo(ctx.paths.db_path), ActorRepo(ctx.paths.db_path))


def run_add(args: argparse.Namespace, ctx: CLIContext) -> int:
    fields = {name: getattr(args, name) for name in OWNER_FIELD_NAMES if getattr(args, name) is not None}
    owner = _service(ctx).add_owner(args.manager_id, **fields)
    ctx.console.print(f"[green]Owner created[/green] {owner.id} ({owner.display_name})")
    return 0


def run_list(args: argparse.Namespace, ctx: CLIContext) -> int:
    owners = _service(ctx).list_owners(args.manager_id, limit=args.limit)

    table = Table(title=f"Business owners ({len(owners)})")
    table.add_column("ID")
    table.add_column("Name")
    table.add_column("Email")
    table.add_column("Status")
    table.add_column("Verified until")

    for owner in owners:
        table.add_row(
            owner.id,
            owner.display_name,
            owner.email or "",
            owner.verification_status,
            owner.verification_expires_at or "",
        )

    ctx.console.print(table)
    return 0
