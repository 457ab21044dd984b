"""Community list loading from spreadsheets and flat files."""

import logging
import os
from typing import List

import pandas as pd

from community_crawler.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

HEADER_NAMES = ("subreddit", "community")


def normalize_name(raw) -> str:
    """Trim a raw cell into a bare community name ('/r/foo' -> 'foo')."""
    if raw is None or (isinstance(raw, float) and pd.isna(raw)):
        return ""
    name = str(raw).strip().lstrip("/")
    while name.startswith("r/"):
        name = name[2:]
    return name.strip()


def _read_frame(path: str) -> pd.DataFrame:
    ext = os.path.splitext(path)[1].lower()
    if ext in (".xlsx", ".xlsm", ".xls"):
        # First sheet only
        return pd.read_excel(path, sheet_name=0, dtype=str)
    if ext == ".csv":
        return pd.read_csv(path, dtype=str, skip_blank_lines=True)
    frame = pd.read_csv(path, header=None, names=["community"], dtype=str, sep="\t", skip_blank_lines=True)
    if not frame.empty and str(frame.iloc[0, 0]).strip().lower() in HEADER_NAMES:
        frame = frame.iloc[1:]
    return frame


def load_communities(path: str) -> List[str]:
    """
    Load community names from ``path``.

    Spreadsheets and CSV files use the 'subreddit' or 'community' column
    when the header has one, otherwise the first column. Plain text files hold
    one name per line. Leading '/' and 'r/' are stripped and blanks dropped;
    order is preserved and duplicates are kept.

    Raises:
        ConfigurationError: If the file is missing, unreadable or yields no names
    """
    if not path or not os.path.exists(path):
        raise ConfigurationError(f"Community source not found: {path}")

    try:
        frame = _read_frame(path)
    except Exception as e:
        raise ConfigurationError(f"Failed to read community source {path}: {str(e)}") from e

    if frame.shape[1] == 0:
        raise ConfigurationError(f"No communities in {path}")

    columns = {str(c).strip().lower(): c for c in frame.columns}
    column = next((columns[h] for h in HEADER_NAMES if h in columns), frame.columns[0])

    names = [normalize_name(value) for value in frame[column].tolist()]
    names = [name for name in names if name]
    if not names:
        raise ConfigurationError(f"No communities in {path}")

    logger.info(f"Loaded {len(names)} communities from {path}")
    return names
