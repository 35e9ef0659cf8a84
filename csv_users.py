"""Read user identifiers from a CSV (or Excel) file."""

from pathlib import Path
from typing import Iterable, Optional

import pandas as pd

from config import Config
from run_log import RunLogger

EXCEL_SUFFIXES = (".xlsx",)


def detect_column(headers: Iterable[str], columns: Optional[list] = None) -> Optional[str]:
    """Return the first candidate column present in ``headers``.

    Candidates are tried in priority order and must match a header exactly.
    """
    present = set(headers)
    for column in columns or Config.ID_COLUMNS:
        if column in present:
            return column
    return None


def _read_table(path: Path) -> pd.DataFrame:
    if path.suffix.lower() in EXCEL_SUFFIXES:
        return pd.read_excel(path, dtype=str, keep_default_na=False)
    return pd.read_csv(path, dtype=str, keep_default_na=False, encoding="utf-8-sig")


def extract_users(path, log: RunLogger, columns: Optional[list] = None) -> list[str]:
    """Return the identifiers found in the file, in row order.

    Errors are logged and yield an empty list.
    """
    columns = columns or Config.ID_COLUMNS
    path = Path(path)

    if not path.is_file():
        log.error(f"CSV file not found: {path}")
        return []

    try:
        df = _read_table(path)
    except Exception as e:
        log.error(f"Could not read {path}: {e}")
        return []

    if df.empty:
        log.error(f"No rows found in {path}")
        return []

    column = detect_column(df.columns, columns)
    if column is None:
        log.error(
            f"No identifier column found. Expected one of: {', '.join(columns)}. "
            f"Found: {', '.join(str(c) for c in df.columns)}"
        )
        return []

    users = []
    for value in df[column].tolist():
        if pd.isna(value):
            continue
        value = str(value).strip()
        if value:
            users.append(value)

    log.info(f"Found {len(users)} user(s) in column '{column}' of {path.name}")
    return users
