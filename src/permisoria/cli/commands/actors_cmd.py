from __future__ import annotations

import argparse

from rich.panel import Panel

from permisoria.application.services.actor_service import ACTOR_ROLES, ActorService
from permisoria.application.services.project_service import ProjectService
from permisoria.cli.context import CLIContext
from permisoria.infrastructure.db.repos.actor_repo import ActorRepo


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("actors", help="Manage permit managers allowed to verify owners")
    actor_subparsers = parser.add_subparsers(dest="actors_command", required=True)

    add_parser = actor_subparsers.add_parser("add", help="Create an actor and print its bearer token")
    add_parser.add_argument("--name", required=True)
    add_parser.add_argument("--role", default="permit_manager", choices=ACTOR_ROLES)
    add_parser.add_argument("--token", help="Use this token instead of generating one")
    add_parser.set_defaults(handler=run_add)


def run_add(args: argparse.Namespace, ctx: CLIContext) -> int:
    ProjectService(ctx.paths).require_initialized()
    created = ActorService(ActorRepo(ctx.paths.db_path)).add_actor(args.name, role=args.role, token=args.token)

    lines = [
        f"Actor ID: {created.actor.id}",
        f"Name: {created.actor.display_name}",
        f"Role: {created.actor.role}",
        f"Token: {created.token}",
        "",
        "[yellow]The token is shown only once.[/yellow]",
    ]
    ctx.console.print(Panel.fit("\n".join(lines), title="Actor Created"))
    return 0
