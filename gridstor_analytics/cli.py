from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Sequence

from .config import configure_logging
from .csv_export import (
    batch_filename,
    instance_filename,
    render_batch_csv,
    render_instance_csv,
)
from .csv_import import parse_curve_csv
from .db.session import Database
from .exceptions import GridStorError, NotFoundError
from .health import check_health
from .persistence import CurveRepository


def build_argument_parser() -> argparse.ArgumentParser:
    """
    Build the CLI argument parser used by entry points.

    Returns:
        Configured argparse.ArgumentParser instance.
    """
    parser = argparse.ArgumentParser(description="GridStor Analytics CLI")
    parser.add_argument(
        "--database-url",
        default=None,
        help="SQLAlchemy URL overriding POSTGRES_DSN / GRIDSTOR_DB_PATH",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level overriding GRIDSTOR_LOG_LEVEL",
    )
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("init-db", help="Create missing tables")
    sub.add_parser("verify", help="Check database health and print table counts")

    definitions = sub.add_parser("definitions", help="Browse curve definitions")
    definitions_sub = definitions.add_subparsers(dest="definitions_command")
    definitions_list = definitions_sub.add_parser("list", help="List curve definitions")
    definitions_list.add_argument("--market", help="Filter by market")
    definitions_list.add_argument("--location", help="Filter by location")
    definitions_list.add_argument(
        "--active-only",
        action="store_true",
        help="Hide inactive definitions",
    )

    upload = sub.add_parser("upload", help="Import a curve CSV file")
    upload.add_argument("--file", required=True, help="Path to the CSV file")

    export = sub.add_parser("export", help="Export curve instances as CSV")
    export.add_argument(
        "--instance-id",
        type=int,
        nargs="+",
        required=True,
        dest="instance_ids",
        help="One id exports a single instance; several ids export a batch",
    )
    export.add_argument(
        "--output",
        default=None,
        help="Output file or directory (default: stdout)",
    )

    serve = sub.add_parser("serve", help="Run the HTTP API with uvicorn")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)

    return parser


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str, ensure_ascii=False))


def _read_file(path: str | Path) -> bytes:
    file_path = Path(path)
    if not file_path.exists():
        raise SystemExit(f"File not found: {file_path}")
    return file_path.read_bytes()


def _export(repository: CurveRepository, instance_ids: list[int], output: str | None) -> None:
    if len(instance_ids) == 1:
        instance = repository.get_instance_with_data(instance_ids[0])
        content = render_instance_csv(instance)
        filename = instance_filename(instance)
    else:
        instances = repository.get_instances_with_data(instance_ids)
        if not instances:
            raise NotFoundError("No instances found")
        content = render_batch_csv(instances)
        filename = batch_filename(len(instances))

    if output is None:
        sys.stdout.write(content + "\n")
        return
    target = Path(output)
    if target.is_dir():
        target = target / filename
    target.write_text(content, encoding="utf-8")
    print(f"Wrote {target}")


def _run(args: argparse.Namespace, parser: argparse.ArgumentParser, database: Database) -> None:
    repository = CurveRepository(database.session_factory)

    if args.command == "init-db":
        print("Database tables are ready.")
        return

    if args.command == "verify":
        healthy, payload = check_health(repository)
        _print_json(payload)
        if not healthy:
            raise SystemExit(1)
        return

    if args.command == "definitions":
        if args.definitions_command != "list":
            parser.error("Specify a definitions subcommand (list).")
        rows = repository.list_definitions(
            market=args.market,
            location=args.location,
            active_only=args.active_only,
        )
        _print_json(
            [
                {
                    "id": definition.id,
                    "curve_name": definition.curve_name,
                    "market": definition.market,
                    "location": definition.location,
                    "units": definition.units,
                    "instance_count": count,
                }
                for definition, count in rows
            ]
        )
        return

    if args.command == "upload":
        rows = parse_curve_csv(_read_file(args.file))
        summary = repository.import_curve_rows(rows)
        _print_json(summary.to_dict())
        return

    if args.command == "export":
        _export(repository, args.instance_ids, args.output)
        return

    parser.error(f"Unknown command: {args.command}")


def main(argv: Sequence[str] | None = None) -> None:
    """
    CLI entry point for database maintenance, imports and exports.

    Args:
        argv: Optional sequence of CLI args (defaults to sys.argv).
    """
    parser = build_argument_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return

    configure_logging(args.log_level)

    if args.command == "serve":
        import uvicorn

        uvicorn.run("gridstor_analytics.api.app:app", host=args.host, port=args.port)
        return

    database = Database.from_url(args.database_url)
    try:
        # verify reports missing tables instead of creating them
        if args.command != "verify":
            database.create_all()
        _run(args, parser, database)
    except GridStorError as exc:
        raise SystemExit(f"Error: {exc}") from exc
    finally:
        database.dispose()


if __name__ == "__main__":
    main()
