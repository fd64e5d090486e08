from __future__ import annotations

import argparse
import logging
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from dotenv import load_dotenv

from jemaat_import.config.loader import ConfigError, load_config
from jemaat_import.directory.base import DirectoryError, DirectoryService
from jemaat_import.directory.memory import InMemoryDirectory
from jemaat_import.directory.postgres import PostgresDirectory, db_connection
from jemaat_import.excel.reader import ImportFileError
from jemaat_import.logging.init import log_summary, setup_logging
from jemaat_import.models.config_models import ImportConfig
from jemaat_import.models.enums import ExportMode
from jemaat_import.services.grouper import group_households
from jemaat_import.services.normalizer import FieldNormalizer
from jemaat_import.services.pipeline import ExportError, load_sheet, run_export, run_import, write_import_template
from jemaat_import.services.summary import render_summary_line

"""CLI entrypoint.

    python -m jemaat_import.cli [--config PATH] [--debug] COMMAND ...

Commands:
    import FILE [--dry-run] [--list-failures]
    export OUT [--mode roster|birthday] [--month N]
    template OUT
    inspect FILE
    init-db

Exit codes: 0 success, 2 at least one household failed, 1 fatal (config,
file or database connection problem).

Database: ``.env`` is loaded first (overriding the process environment),
then DATABASE_URL / PGDSN / PG* variables, then the YAML ``database``
section. DISABLE_DB_CONNECT=1 (or ``import --dry-run``) runs against an
in-memory directory instead.
"""

EXIT_SUCCESS_ALL = 0
EXIT_PARTIAL_FAILURE = 2
EXIT_FATAL = 1

DEFAULT_CONFIG_PATH = Path("config/import.yml")

logger = logging.getLogger("jemaat_import.cli")


@contextmanager
def _open_directory(cfg: ImportConfig, *, dry_run: bool = False) -> Iterator[DirectoryService]:
    """Yield the directory the command runs against.

    Raises:
        DirectoryError: the database connection cannot be established
    """
    if dry_run or os.getenv("DISABLE_DB_CONNECT") == "1":
        logger.debug("DB connect disabled -> in-memory directory")
        yield InMemoryDirectory()
        return
    with db_connection(cfg.database) as conn:
        yield PostgresDirectory(conn)


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env via python-dotenv; its values win over the process environment."""
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _month(value: str) -> int:
    month = int(value)
    if not 1 <= month <= 12:
        raise argparse.ArgumentTypeError(f"month must be 1..12, got {value}")
    return month


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="jemaat_import",
        description="Household (Kartu Keluarga) spreadsheet import / export",
    )
    p.add_argument("--config", type=Path, default=None, help=f"YAML config (default: {DEFAULT_CONFIG_PATH} if present)")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    sub = p.add_subparsers(dest="command", required=True)

    p_import = sub.add_parser("import", help="Import households from a sheet file")
    p_import.add_argument("file", type=Path)
    p_import.add_argument("--dry-run", action="store_true", help="Reconcile against an empty in-memory directory")
    p_import.add_argument("--list-failures", action="store_true", help="Print every failed household at the end")

    p_export = sub.add_parser("export", help="Export the directory to a sheet file")
    p_export.add_argument("out", type=Path)
    p_export.add_argument("--mode", choices=[m.value for m in ExportMode], default=ExportMode.ROSTER.value)
    p_export.add_argument("--month", type=_month, default=None, help="Birthday month 1..12 (default: current month)")

    p_template = sub.add_parser("template", help="Write the sample import template")
    p_template.add_argument("out", type=Path)

    p_inspect = sub.add_parser("inspect", help="Print detected header and first rows, then exit")
    p_inspect.add_argument("file", type=Path)

    sub.add_parser("init-db", help="Create the families / members tables if missing")
    return p


def _load_cfg(path: Path | None) -> ImportConfig:
    if path is not None:
        return load_config(path)
    if DEFAULT_CONFIG_PATH.exists():
        return load_config(DEFAULT_CONFIG_PATH)
    logger.debug("no config file, using built-in defaults")
    return ImportConfig()


def _cmd_import(args: argparse.Namespace, cfg: ImportConfig) -> int:
    try:
        with _open_directory(cfg, dry_run=args.dry_run) as directory:
            result = run_import(args.file, directory, cfg, dry_run=args.dry_run)
    except ImportFileError as e:
        logger.error(f"file: {e}")
        return EXIT_FATAL
    except DirectoryError as e:
        logger.error(f"database: {e}")
        return EXIT_FATAL

    if args.list_failures and result.tally.errors:
        print("FAILED HOUSEHOLDS:")
        for number, message in result.tally.errors:
            print(f"  {number}: {message}")

    summary_line = render_summary_line(result)
    # log_summary が "SUMMARY " を付与する
    log_summary(summary_line[len("SUMMARY "):])

    if result.failed > 0:
        return EXIT_PARTIAL_FAILURE
    return EXIT_SUCCESS_ALL


def _cmd_export(args: argparse.Namespace, cfg: ImportConfig) -> int:
    mode = ExportMode(args.mode)
    try:
        with _open_directory(cfg) as directory:
            written = run_export(directory, args.out, mode, args.month)
    except ExportError as e:
        logger.error(f"export: {e}")
        return EXIT_FATAL
    except DirectoryError as e:
        logger.error(f"database: {e}")
        return EXIT_FATAL
    logger.info(f"{written} rows written to {args.out}")
    return EXIT_SUCCESS_ALL


def _cmd_template(args: argparse.Namespace) -> int:
    try:
        write_import_template(args.out)
    except ExportError as e:
        logger.error(f"template: {e}")
        return EXIT_FATAL
    return EXIT_SUCCESS_ALL


def _cmd_inspect(args: argparse.Namespace, cfg: ImportConfig) -> int:
    try:
        sheet = load_sheet(args.file, cfg)
    except ImportFileError as e:
        print(f"inspect: {e}")
        return EXIT_FATAL
    print(f"FILE: {args.file.name}")
    print(f"  SHEET: {sheet.sheet_name} header_row={sheet.header_row + 1}")
    print(f"  columns={[c for c in sheet.columns if c]}")
    for row in sheet.rows[:3]:
        # Timestamp などは isoformat で表示
        safe = {k: (v.isoformat() if hasattr(v, "isoformat") else v) for k, v in row.values.items()}
        print(f"  row {row.row_number}: {safe}")
    grouped = group_households(sheet.rows, FieldNormalizer(cfg.normalizer))
    print(f"  rows={len(sheet.rows)} households={len(grouped)}")
    return EXIT_SUCCESS_ALL


def _cmd_init_db(cfg: ImportConfig) -> int:
    try:
        with db_connection(cfg.database) as conn:
            PostgresDirectory(conn).ensure_schema()
    except DirectoryError as e:
        logger.error(f"database: {e}")
        return EXIT_FATAL
    logger.info("schema ready (families, members)")
    return EXIT_SUCCESS_ALL


def main(argv: list[str] | None = None) -> int:
    # [] が渡された場合に sys.argv を読まないよう None のみ判定
    if argv is None:
        argv = sys.argv[1:]
    args = _build_parser().parse_args(argv)
    setup_logging(debug=args.debug)
    if args.debug:
        logger.debug("debug mode enabled")

    # .env を最優先で読み込む (DB 接続パラメータ優先順位保証)
    _load_env_file(Path(".env"), override=True)
    try:
        cfg = _load_cfg(args.config)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    if args.command == "import":
        return _cmd_import(args, cfg)
    if args.command == "export":
        return _cmd_export(args, cfg)
    if args.command == "template":
        return _cmd_template(args)
    if args.command == "inspect":
        return _cmd_inspect(args, cfg)
    return _cmd_init_db(cfg)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
