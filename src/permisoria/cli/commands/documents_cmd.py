from __future__ import annotations

import argparse

from rich.table import Table

from permisoria.application.services.owner_service import DOCUMENT_CATEGORIES, OwnerService
from permisoria.application.services.project_service import ProjectService
from permisoria.cli.context import CLIContext
from permisoria.infrastructure.db.repos.actor_repo import ActorRepo
from permisoria.infrastructure.db.repos.owner_repo import OwnerRepo


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("documents", help="Record documents submitted by an owner")
    doc_subparsers = parser.add_subparsers(dest="documents_command", required=True)

    add_parser = doc_subparsers.add_parser("add", help="Register a document for an owner")
    add_parser.add_argument("--owner-id", required=True)
    add_parser.add_argument("--filename", required=True)
    add_parser.add_argument("--category", required=True, choices=DOCUMENT_CATEGORIES)
    add_parser.add_argument("--storage-ref")
    add_parser.set_defaults(handler=run_add)

    list_parser = doc_subparsers.add_parser("list", help="List an owner's documents")
    list_parser.add_argument("--owner-id", required=True)
    list_parser.set_defaults(handler=run_list)


def run_add(args: argparse.Namespace, ctx: CLIContext) -> int:
    ProjectService(ctx.paths).require_initialized()
    service = OwnerService(OwnerRepo(ctx.paths.db_path), ActorRepo(ctx.paths.db_path))
    document = service.add_document(args.owner_id, args.filename, args.category, storage_ref=args.storage_ref)
    ctx.console.print(f"[green]Document recorded[/green] {document.id} ({document.filename})")
    return 0


def run_list(args: argparse.Namespace, ctx: CLIContext) -> int:
    ProjectService(ctx.paths).require_initialized()
    documents = OwnerRepo(ctx.paths.db_path).list_documents(args.owner_id)

    table = Table(title=f"Documents ({len(documents)})")
    table.add_column("ID")
    table.add_column("Filename")
    table.add_column("Category")
    table.add_column("Uploaded")
    for document in documents:
        table.add_row(document.id, document.filename, document.category, document.uploaded_at)

    ctx.console.print(table)
    return 0
