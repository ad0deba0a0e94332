"""Reads statement files from disk into header-keyed rows."""

import logging
import os
from typing import Dict, List, Tuple

import pandas as pd

from ..utils.error_handler import KiwiBudgetError

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = ('.csv', '.txt')


class StatementReadError(KiwiBudgetError):
    """A statement file could not be opened or read as CSV"""
    pass


def read_statement(file_path: str) -> Tuple[List[str], List[Dict[str, str]]]:
    """Read a CSV statement with every cell kept as text

    Args:
        file_path: Path to the exported statement

    Returns:
        Tuple of (headers, rows); empty lists for a file with no data

    Raises:
        StatementReadError: If the file is missing, unsupported or malformed
    """
    if not os.path.exists(file_path):
        raise StatementReadError(f"File does not exist: {file_path}")

    _, ext = os.path.splitext(file_path.lower())
    if ext not in SUPPORTED_EXTENSIONS:
        raise StatementReadError(f"Unsupported file extension: {ext}")

    try:
        df = pd.read_csv(file_path, dtype=str, keep_default_na=False, skipinitialspace=True)
    except pd.errors.EmptyDataError:
        logger.warning(f"CSV file is empty: {file_path}")
        return [], []
    except (pd.errors.ParserError, UnicodeDecodeError, OSError) as e:
        raise StatementReadError(f"Error reading CSV file {file_path}: {e}") from e

    headers = [str(column).strip() for column in df.columns]
    df.columns = headers
    rows = df.to_dict(orient='records')
    logger.debug(f"Read {len(rows)} rows with columns {headers} from {file_path}")
    return headers, rows
