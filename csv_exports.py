"""Header-aware CSV reading for usage-log and sign-in exports.

Both aggregators consume rows as plain ``{column: str}`` dicts.  This module
is the only place that touches raw export bytes; everything downstream works
on already-decoded rows.
"""

from __future__ import annotations

import io
import logging
import warnings
from pathlib import Path

import pandas as pd

logger = logging.getLogger(__name__)


class ExportParseError(ValueError):
    """Raised when an export cannot be read as tabular data at all."""

    def __init__(self, source: str, reason: str) -> None:
        super().__init__(f"Could not parse export {source}: {reason}")
        self.source = source
        self.reason = reason


def _frame_to_rows(frame: pd.DataFrame) -> list[dict[str, str]]:
    """Convert a string-typed DataFrame into a list of row dicts.

    Short rows come back from pandas as NaN even with
    ``keep_default_na=False``, so they are filled with empty strings here.
    """
    frame = frame.fillna("")
    return [
        {str(col): str(val) for col, val in record.items()}
        for record in frame.to_dict(orient="records")
    ]


def _read_frame(buffer: io.StringIO, source: str) -> pd.DataFrame:
    # index_col=False keeps columns aligned when rows end in a delimiter;
    # a non-empty extra field would be dropped, so that warning is fatal.
    try:
        with warnings.catch_warnings():
            warnings.simplefilter("error", pd.errors.ParserWarning)
            return pd.read_csv(
                buffer,
                dtype=str,
                keep_default_na=False,
                skip_blank_lines=True,
                index_col=False,
            )
    except pd.errors.EmptyDataError as e:
        raise ExportParseError(source, "file is empty") from e
    except pd.errors.ParserError as e:
        raise ExportParseError(source, str(e).strip()) from e
    except pd.errors.ParserWarning as e:
        raise ExportParseError(source, "rows have more fields than the header") from e


def parse_export_text(text: str, source: str = "<text>") -> list[dict[str, str]]:
    """Parse CSV text with a header row into row dicts.

    Args:
        text: Full CSV content, header first.
        source: Name used in error messages.

    Returns:
        One dict per data row mapping column name to cell string.

    Raises:
        ExportParseError: If the text has no header or has ragged rows.
    """
    if text.startswith("\ufeff"):
        text = text[1:]
    frame = _read_frame(io.StringIO(text), source)
    rows = _frame_to_rows(frame)
    logger.debug("Parsed %d rows from %s", len(rows), source)
    return rows


def read_export(path: str | Path) -> list[dict[str, str]]:
    """Read a CSV export file into row dicts.

    Raises:
        FileNotFoundError: If *path* does not exist.
        ExportParseError: If the file is empty, ragged or not UTF-8.
    """
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"Export not found: {path}")
    try:
        text = path.read_bytes().decode("utf-8")
    except UnicodeDecodeError as e:
        raise ExportParseError(path.name, f"not valid UTF-8 ({e.reason})") from e
    return parse_export_text(text, source=path.name)
