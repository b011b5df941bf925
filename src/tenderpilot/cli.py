"""Command-line interface for the TenderPilot workflow."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Sequence

from tenderpilot.config import Settings, get_settings
from tenderpilot.errors import TenderPilotError
from tenderpilot.export import build_answer_document, export_filename
from tenderpilot.models import Category, QAPair
from tenderpilot.services.generation import CompletionBackend
from tenderpilot.services.workflow import TenderWorkflow, create_workflow
from tenderpilot.storage import LocalStore


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="tenderpilot", description="Analyse tenders against a local knowledge vault.")
    commands = parser.add_subparsers(dest="command", required=True)

    vault = commands.add_parser("vault", help="Manage knowledge vault documents")
    vault_commands = vault.add_subparsers(dest="vault_command", required=True)
    add = vault_commands.add_parser("add", help="Extract and store one or more documents")
    add.add_argument("paths", type=Path, nargs="+")
    add.add_argument(
        "--category",
        choices=[category.value for category in Category],
        default=Category.POLICY.value,
        help="Vault category for the documents",
    )
    listing = vault_commands.add_parser("list", help="List vault documents")
    listing.add_argument("--category", choices=[category.value for category in Category], default=None)
    listing.add_argument("--query", default="", help="Case-insensitive name filter")
    remove = vault_commands.add_parser("remove", help="Remove a vault document")
    remove.add_argument("document_id")
    vault_commands.add_parser("clear", help="Remove every vault document")

    analyze = commands.add_parser("analyze", help="Extract questions from a tender and draft answers")
    analyze.add_argument("path", type=Path)
    analyze.add_argument("--export", type=Path, default=None, help="Optional .docx path for the answers")

    history = commands.add_parser("history", help="List past analyses, newest first")
    history.add_argument("--query", default="", help="Case-insensitive name filter")

    resume = commands.add_parser("resume", help="Print the results of a past analysis")
    resume.add_argument("record_id")
    resume.add_argument("--export", type=Path, default=None, help="Optional .docx path for the answers")

    reset = commands.add_parser("reset", help="Clear the open session")
    reset.add_argument("--factory", action="store_true", help="Also delete all vault documents and history")
    return parser.parse_args(argv)


def _print_json(payload: object) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False))


def _export(pairs: Sequence[QAPair], source_name: str, destination: Path) -> Path:
    if destination.is_dir():
        destination = destination / export_filename(source_name)
    destination.write_bytes(build_answer_document(pairs, source_name))
    return destination


def _run_vault(args: argparse.Namespace, workflow: TenderWorkflow) -> int:
    if args.vault_command == "add":
        added = []
        for path in args.paths:
            document = asyncio.run(workflow.upload_to_vault(path.name, path.read_bytes(), args.category))
            added.append({"id": document.id, "name": document.name, "category": document.category.value})
        _print_json(added)
    elif args.vault_command == "list":
        documents = workflow.search_vault(category=args.category, query=args.query)
        _print_json(
            [
                {
                    "id": doc.id,
                    "name": doc.name,
                    "category": doc.category.value,
                    "kind": doc.kind.value,
                    "size": doc.size,
                    "date": doc.date,
                }
                for doc in documents
            ]
        )
    elif args.vault_command == "remove":
        workflow.remove_document(args.document_id)
        print(workflow.notice)
    else:
        workflow.clear_vault()
        print(workflow.notice)
    return 0


def _run_analyze(args: argparse.Namespace, workflow: TenderWorkflow) -> int:
    path: Path = args.path
    if not workflow.select_file(path.name, path.read_bytes()):
        print(workflow.error, file=sys.stderr)
        return 2
    record = asyncio.run(workflow.analyze())
    if record is None:
        print(f"Analysis failed: {workflow.error}", file=sys.stderr)
        return 1
    _print_json({"id": record.id, "name": record.name, "results": [pair.to_dict() for pair in workflow.results]})
    if args.export:
        written = _export(workflow.results, record.name, args.export)
        print(f"Exported answers to {written}", file=sys.stderr)
    return 0


def _run_resume(args: argparse.Namespace, workflow: TenderWorkflow) -> int:
    if not workflow.resume_by_id(args.record_id):
        print(workflow.notice, file=sys.stderr)
        return 1
    selected = workflow.selected_file
    name = selected.descriptor.name if selected else args.record_id
    _print_json({"id": args.record_id, "name": name, "results": [pair.to_dict() for pair in workflow.results]})
    if args.export:
        written = _export(workflow.results, name, args.export)
        print(f"Exported answers to {written}", file=sys.stderr)
    return 0


def run(args: argparse.Namespace, workflow: TenderWorkflow) -> int:
    if args.command == "vault":
        return _run_vault(args, workflow)
    if args.command == "analyze":
        return _run_analyze(args, workflow)
    if args.command == "history":
        _print_json(
            [
                {
                    "id": record.id,
                    "name": record.name,
                    "date": record.date,
                    "status": record.status.value,
                    "questions": len(record.results or ()),
                }
                for record in workflow.search_activity(args.query)
            ]
        )
        return 0
    if args.command == "resume":
        return _run_resume(args, workflow)
    if args.factory:
        workflow.factory_reset()
    else:
        workflow.reset()
    print(workflow.notice or "Session cleared.")
    return 0


def main(
    argv: Sequence[str] | None = None,
    *,
    settings: Settings | None = None,
    backend: CompletionBackend | None = None,
) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    settings = settings or get_settings()
    store = LocalStore(settings.database_path)
    try:
        workflow = create_workflow(settings, store=store, backend=backend)
        workflow.load(restore_session=False)
        return run(args, workflow)
    except TenderPilotError as exc:
        print(f"{type(exc).__name__}: {exc}", file=sys.stderr)
        return 1
    except OSError as exc:
        print(f"Could not read or write file: {exc}", file=sys.stderr)
        return 1
    finally:
        store.close()


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    sys.exit(main())
