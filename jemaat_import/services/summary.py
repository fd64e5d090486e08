from __future__ import annotations

from ..models.processing_result import ImportResult

"""SUMMARY line rendering for the household import.

Format (one line, space separated key=value pairs, fixed order):

    SUMMARY households={n} success={s} failed={f} skipped_rows={k} warnings={w} elapsed_sec={e}

``households`` is the number of grouped households sent to reconciliation;
``success + failed == households`` always holds.
"""

__all__ = [
    "format_elapsed",
    "render_summary_line",
]


def format_elapsed(seconds: float) -> str:
    """Render seconds without scientific notation or trailing zeros.

    >>> format_elapsed(2.0)
    '2'
    >>> format_elapsed(0.0004)
    '0.0004'
    """
    if seconds == 0:
        return "0"
    if seconds == int(seconds):
        return str(int(seconds))
    if seconds < 0.01:
        return f"{seconds:.6f}".rstrip("0").rstrip(".")
    return f"{seconds:.3f}".rstrip("0").rstrip(".")


def render_summary_line(result: ImportResult) -> str:
    tally = result.tally
    return (
        f"SUMMARY households={result.total_households} "
        f"success={tally.succeeded} "
        f"failed={tally.failed} "
        f"skipped_rows={tally.skipped_rows} "
        f"warnings={len(tally.warnings)} "
        f"elapsed_sec={format_elapsed(result.elapsed_seconds)}"
    )
