from __future__ import annotations

import logging
import re
import time
from datetime import UTC, date, datetime
from pathlib import Path

from ..directory.base import DirectoryService
from ..excel.reader import ImportFileError, SheetData, normalize_sheet, read_sheet_file, resolve_header_row
from ..excel.writer import TEMPLATE_COLUMNS, TEMPLATE_ROWS, TEMPLATE_SHEET_NAME, ExportError, write_sheet
from ..logging.error_log import ErrorLogBuffer
from ..models.config_models import ImportConfig
from ..models.enums import ExportMode
from ..models.error_record import FILE_LEVEL, ErrorRecord
from ..models.processing_result import ImportResult, ReconciliationTally
from .grouper import group_households
from .normalizer import FieldNormalizer
from .progress import ProgressTracker
from .reconciliation import BIRTHDAY_COLUMNS, ROSTER_COLUMNS, export_households, import_households

"""Pipeline orchestration: file -> households -> directory, and back.

run_import:
    1. read the sheet (first sheet unless configured) without a header
    2. resolve the header row from the household-number anchors
    3. build ImportRows (null sentinels -> None, empty rows dropped)
    4. group rows into households via the field normalizer
    5. reconcile each household against the directory
    6. flush the JSON Lines error log

File-level problems raise ImportFileError before step 5 touches the
directory; they are also written to the error log with household "-".
"""

logger = logging.getLogger(__name__)

__all__ = [
    "ExportError",
    "load_sheet",
    "run_import",
    "run_export",
    "write_import_template",
    "ROSTER_SHEET_NAME",
    "BIRTHDAY_SHEET_NAME",
]

ROSTER_SHEET_NAME = "Data Jemaat"
BIRTHDAY_SHEET_NAME = "Ulang Tahun"


def _error_type(exc: Exception) -> str:
    # SheetReadError -> SHEET_READ_ERROR
    return re.sub(r"(?<!^)(?=[A-Z])", "_", type(exc).__name__).upper()


def load_sheet(path: Path, config: ImportConfig | None = None) -> SheetData:
    """Read ``path`` and return its rows keyed by the detected header (steps 1-3)."""
    config = config or ImportConfig()
    sheet_name, df = read_sheet_file(path, config.source.sheet_name)
    header_row = resolve_header_row(
        df,
        anchors=config.normalizer.header_anchors,
        scan_rows=config.normalizer.header_scan_rows,
    )
    if header_row:
        logger.debug("%s: header row detected at line %d", path.name, header_row + 1)
    return normalize_sheet(df, sheet_name, header_row, config.source.null_sentinels)


def run_import(
    path: Path,
    directory: DirectoryService,
    config: ImportConfig | None = None,
    *,
    dry_run: bool = False,
    error_log: ErrorLogBuffer | None = None,
) -> ImportResult:
    """Import one sheet file into ``directory``.

    Raises:
        ImportFileError: the file cannot be read or has no data rows
    """
    config = config or ImportConfig()
    error_log = error_log if error_log is not None else ErrorLogBuffer(config.logs_dir)
    start_time = datetime.now(UTC)
    t0 = time.perf_counter()

    logger.info("importing %s%s", path.name, " (dry run)" if dry_run else "")
    try:
        sheet = load_sheet(path, config)
    except ImportFileError as e:
        error_log.append(ErrorRecord.create(path.name, FILE_LEVEL, _error_type(e), str(e)))
        error_log.flush()
        raise

    tally = ReconciliationTally()
    normalizer = FieldNormalizer(config.normalizer)
    grouped = group_households(sheet.rows, normalizer, tally=tally)
    logger.info(
        "%s: %d rows -> %d households (sheet '%s')",
        path.name, len(sheet.rows), len(grouped), sheet.sheet_name,
    )
    for message in tally.warnings:
        logger.warning(message)

    with ProgressTracker(len(grouped)) as progress:
        import_households(
            grouped,
            directory,
            tally=tally,
            error_log=error_log,
            source_name=path.name,
            progress=progress,
        )

    log_path = error_log.flush()
    if log_path is not None:
        logger.info("error log written: %s", log_path)

    elapsed = time.perf_counter() - t0
    return ImportResult(
        source_file=path.name,
        total_rows=len(sheet.rows),
        total_households=len(grouped),
        tally=tally,
        start_time=start_time,
        end_time=datetime.now(UTC),
        elapsed_seconds=elapsed,
        dry_run=dry_run,
    )


def run_export(
    directory: DirectoryService,
    path: Path,
    mode: ExportMode = ExportMode.ROSTER,
    month: int | None = None,
    *,
    today: date | None = None,
) -> int:
    """Export the directory to ``path``; return the number of rows written.

    Raises:
        ExportError: nothing to export, or the file cannot be written
    """
    households = directory.list_all_households()
    try:
        rows = export_households(households, mode, month=month, today=today)
    except ValueError as e:
        raise ExportError(str(e)) from e
    if not rows:
        raise ExportError("no data to export")

    if mode is ExportMode.BIRTHDAY:
        written = write_sheet(path, rows, BIRTHDAY_COLUMNS, BIRTHDAY_SHEET_NAME)
    else:
        written = write_sheet(path, rows, ROSTER_COLUMNS, ROSTER_SHEET_NAME)
    logger.info("exported %d rows (%s) from %d households to %s", written, mode.value, len(households), path)
    return written


def write_import_template(path: Path) -> int:
    """Write the two-row sample import sheet with canonical column names."""
    written = write_sheet(path, TEMPLATE_ROWS, TEMPLATE_COLUMNS, TEMPLATE_SHEET_NAME)
    logger.info("template written: %s", path)
    return written
