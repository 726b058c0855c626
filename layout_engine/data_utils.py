#!/usr/bin/env python3
"""
Data utilities for the layout optimizer.

Common functions for loading, validating, and normalizing frequency files.
"""

import logging
import math
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
import pandas as pd

logger = logging.getLogger(__name__)

# Column names accepted for the n-gram and frequency columns, per n-gram length
NGRAM_COLUMN_CANDIDATES = {
    1: ['letter', 'character', 'char', 'item'],
    2: ['letter_pair', 'bigram', 'pair', 'item_pair'],
    3: ['letter_triple', 'trigram', 'triple', 'item_triple'],
}
FREQUENCY_COLUMN_CANDIDATES = ['frequency', 'freq', 'probability', 'prob', 'count']


def load_csv_with_validation(filepath: str,
                             required_columns: List[str],
                             dtype_map: Optional[Any] = None) -> pd.DataFrame:
    """
    Load CSV file with column validation and optional data type specification.

    Args:
        filepath: Path to CSV file
        required_columns: List of column names that must be present
        dtype_map: Pandas dtype, or dict mapping column names to dtypes

    Returns:
        Loaded DataFrame

    Raises:
        FileNotFoundError: If file doesn't exist
        ValueError: If required columns are missing or data is invalid
    """
    file_path = Path(filepath)

    if not file_path.exists():
        raise FileNotFoundError(f"Data file not found: {filepath}")

    if not file_path.suffix.lower() in ['.csv', '.tsv', '.txt']:
        raise ValueError(f"Unsupported file format: {file_path.suffix}")

    # Determine delimiter
    delimiter = '\t' if file_path.suffix.lower() == '.tsv' else ','

    try:
        df = pd.read_csv(filepath, delimiter=delimiter, dtype=dtype_map, keep_default_na=False)
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
        raise ValueError(f"Error reading CSV file {filepath}: {e}")

    # Validate required columns
    missing_columns = [col for col in required_columns if col not in df.columns]
    if missing_columns:
        available_columns = list(df.columns)
        raise ValueError(
            f"Missing required columns in {filepath}: {missing_columns}. "
            f"Available columns: {available_columns}"
        )

    return df


def _detect_column(columns: List[str], candidates: List[str], filepath: str) -> str:
    for candidate in candidates:
        if candidate in columns:
            return candidate
    raise ValueError(
        f"Could not find column in {filepath}. "
        f"Available columns: {columns}. "
        f"Expected one of: {candidates}"
    )


def load_ngram_frequencies(filepath: str, n: int) -> Dict[str, float]:
    """
    Load n-gram frequencies from CSV file with automatic column detection.

    Rows with an n-gram of the wrong length or an unparseable or
    non-positive frequency are skipped. Repeated n-grams are summed.

    Args:
        filepath: Path to CSV file
        n: Expected n-gram length (1, 2 or 3)

    Returns:
        Dictionary mapping n-gram strings to raw frequencies (not normalized)

    Raises:
        FileNotFoundError: If file doesn't exist
        ValueError: If required columns can't be found
    """
    if not Path(filepath).exists():
        raise FileNotFoundError(f"Frequencies file not found: {filepath}")

    df = load_csv_with_validation(filepath, [], dtype_map=str)
    if df.empty:
        return {}

    columns = list(df.columns)
    ngram_col = _detect_column(columns, NGRAM_COLUMN_CANDIDATES[n], filepath)
    frequency_col = _detect_column(columns, FREQUENCY_COLUMN_CANDIDATES, filepath)

    logger.debug(f"Loading {n}-gram frequencies from {filepath}")

    frequencies: Dict[str, float] = {}
    skipped = 0

    for ngram, freq_str in zip(df[ngram_col], df[frequency_col]):
        ngram = str(ngram).lower()
        freq_str = str(freq_str).strip()

        if len(ngram) != n or not freq_str:
            skipped += 1
            continue

        try:
            frequency = float(freq_str)
        except ValueError:
            skipped += 1
            continue

        if not math.isfinite(frequency) or frequency <= 0:
            skipped += 1
            continue

        frequencies[ngram] = frequencies.get(ngram, 0.0) + frequency

    if skipped:
        logger.debug(f"  Skipped {skipped} invalid rows in {filepath}")
    logger.debug(f"  Loaded {len(frequencies)} {n}-gram frequencies")

    return frequencies


def normalize_frequencies(frequencies: Dict[str, float], n: Optional[int] = None) -> Dict[str, float]:
    """
    Normalize a frequency table to proportions that sum to 1.

    Zero, negative and non-finite entries are dropped, and so are keys whose
    length differs from n when n is given. Entries are ordered by frequency
    (descending) and then by key so iteration order is reproducible.

    Args:
        frequencies: Raw counts or frequencies
        n: Required key length (None = any)

    Returns:
        Normalized frequency dictionary (empty if nothing remains)
    """
    kept: List[Tuple[str, float]] = []
    for key, value in frequencies.items():
        value = float(value)
        if not math.isfinite(value) or value <= 0:
            continue
        if n is not None and len(key) != n:
            continue
        kept.append((key, value))

    total = math.fsum(value for _, value in kept)
    if total <= 0:
        return {}

    kept.sort(key=lambda item: (-item[1], item[0]))
    return {key: value / total for key, value in kept}


def save_ngram_frequencies(frequencies: Dict[str, float], filepath: str, n: int) -> None:
    """
    Save an n-gram frequency table as CSV with the standard column names.

    Args:
        frequencies: N-gram to frequency mapping
        filepath: Output CSV path
        n: N-gram length (selects the column name)
    """
    column = NGRAM_COLUMN_CANDIDATES[n][0]
    df = pd.DataFrame({column: list(frequencies.keys()),
                       'frequency': list(frequencies.values())})
    Path(filepath).parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(filepath, index=False)


def validate_data_consistency(data_dict: Dict[str, float],
                              name: str = "data",
                              tolerance: float = 1e-6) -> List[str]:
    """
    Validate a normalized frequency table.

    Args:
        data_dict: Dictionary of frequencies to validate
        name: Name of the data for error messages
        tolerance: Allowed deviation of the sum from 1.0

    Returns:
        List of validation issues (empty if all valid)
    """
    issues = []

    if not data_dict:
        issues.append(f"{name} is empty")
        return issues

    non_positive = [k for k, v in data_dict.items() if v <= 0]
    if non_positive:
        issues.append(f"{name} has non-positive values for keys: "
                      f"{non_positive[:5]}{'...' if len(non_positive) > 5 else ''}")

    total = math.fsum(data_dict.values())
    if abs(total - 1.0) > tolerance:
        issues.append(f"{name} sums to {total:.6f}, expected 1.0")

    return issues

