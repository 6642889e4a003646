"""Command-line interface for Handoff."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from . import __version__


def _add_json_flag(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--json",
        action="store_true",
        help="Emit machine-readable JSON output",
    )


def _add_db_flag(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--db",
        type=Path,
        required=True,
        help="Project metadata DB path",
    )


def _add_config_flag(parser: argparse.ArgumentParser) -> None:
    from .settings import default_config_path

    parser.add_argument(
        "--config",
        type=Path,
        default=default_config_path(),
        help="Settings path (default: ~/.config/handoff/settings.json)",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="handoff",
        description="Versioned media delivery from the source volume to Dropbox",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"handoff {__version__}",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log progress to stderr",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    deliver_parser = subparsers.add_parser(
        "deliver",
        help="Run one delivery attempt for a project",
    )
    deliver_parser.add_argument("project_id", help="Project identifier")
    deliver_parser.add_argument(
        "--editor",
        action="append",
        help="Editor initials (repeatable or comma separated)",
    )
    deliver_parser.add_argument(
        "--to",
        action="append",
        help="Recipient email (repeatable or comma separated)",
    )
    deliver_parser.add_argument("--reply-to", help="Reply-to address for the delivery email")
    deliver_parser.add_argument(
        "--test-mode",
        action="store_true",
        help="Deliver under 99_TestRuns and skip the share-link TTL",
    )
    deliver_parser.add_argument(
        "--allow-test-cleanup",
        action="store_true",
        help="Delete an existing test-mode container before delivering",
    )
    deliver_parser.add_argument(
        "--allow-non-real",
        action="store_true",
        help="Deliver projects not marked as real",
    )
    deliver_parser.add_argument(
        "--force",
        action="store_true",
        help="Bypass the project status guard",
    )
    deliver_parser.add_argument(
        "--refresh-share-link",
        action="store_true",
        help="Recreate the share link even when a valid one exists",
    )
    _add_db_flag(deliver_parser)
    _add_config_flag(deliver_parser)
    _add_json_flag(deliver_parser)

    status_parser = subparsers.add_parser(
        "status",
        help="Show the current delivery state for a project",
    )
    status_parser.add_argument("project_id", help="Project identifier")
    _add_db_flag(status_parser)
    _add_json_flag(status_parser)

    files_parser = subparsers.add_parser(
        "files",
        help="List deliverables found in a source folder",
    )
    files_parser.add_argument("source_dir", type=Path, help="Folder to scan")
    _add_config_flag(files_parser)
    _add_json_flag(files_parser)

    add_parser = subparsers.add_parser(
        "add-project",
        help="Register or update a project",
    )
    add_parser.add_argument("project_id", help="Project identifier")
    add_parser.add_argument("--code", required=True, help="Project code")
    add_parser.add_argument("--name", required=True, help="Project name")
    add_parser.add_argument("--client", help="Client folder name")
    add_parser.add_argument("--source-relpath", help="Storage path relative to the source root")
    add_parser.add_argument("--status", default="ready_to_deliver", help="Initial project status")
    add_parser.add_argument("--not-real", action="store_true", help="Mark as a non-real (test) project")
    _add_db_flag(add_parser)
    _add_json_flag(add_parser)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    if args.verbose:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    try:
        # Import here to avoid slow startup
        if args.command == "deliver":
            from .app import DeliveryApp
            from .commands.deliver import run_deliver
            from .infrastructure.metadata_store import ProjectMetadataStore
            from .settings import load_settings
            settings = load_settings(args.config)
            store = ProjectMetadataStore(args.db)
            try:
                return run_deliver(args, app=DeliveryApp(settings, store))
            finally:
                store.close()
        elif args.command == "status":
            from .commands.status import run_status
            from .infrastructure.metadata_store import ProjectMetadataStore
            store = ProjectMetadataStore(args.db)
            try:
                return run_status(args, store=store)
            finally:
                store.close()
        elif args.command == "files":
            from .commands.files import run_files
            from .infrastructure.scanner import DeliverableScanner
            from .settings import load_settings
            settings = load_settings(args.config)
            return run_files(args, scanner=DeliverableScanner(settings.allowed_extensions))
        elif args.command == "add-project":
            from .commands.add_project import run_add_project
            from .infrastructure.metadata_store import ProjectMetadataStore
            store = ProjectMetadataStore(args.db)
            try:
                return run_add_project(args, store=store)
            finally:
                store.close()
        else:
            parser.print_help()
            return 1
    except Exception as exc:  # pragma: no cover - exercised in CLI tests
        from .errors import exit_code_for_exception

        print(str(exc), file=sys.stderr)
        return exit_code_for_exception(exc)


if __name__ == "__main__":
    sys.exit(main())
