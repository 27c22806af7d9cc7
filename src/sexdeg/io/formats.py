"""
Delimited-text handling shared by the expression and phenotype loaders.

Uploads arrive either as paths (batch CLI) or as in-memory file objects
(Streamlit's UploadedFile, io.BytesIO). Both are read to text once, the
delimiter is sniffed, and the table is parsed with pandas.

Supported:
    - .csv (comma), .tsv / .txt (tab), semicolon and pipe separated files
    - UTF-8 with or without BOM
"""

from __future__ import annotations

import csv
import io
from pathlib import Path
from typing import IO, Union

import pandas as pd

__all__ = ['TableSource', 'read_text', 'sniff_delimiter', 'read_table', 'source_name']

TableSource = Union[str, Path, IO[bytes], IO[str]]

_EXTENSION_DELIMITERS = {
    '.csv': ',',
    '.tsv': '\t',
    '.tab': '\t',
}


def source_name(source: TableSource) -> str:
    """Best-effort file name for a path or uploaded file object."""
    if isinstance(source, (str, Path)):
        return Path(source).name
    return getattr(source, 'name', '') or ''


def read_text(source: TableSource) -> str:
    """
    Read a path or file object into a string.

    Raises:
        FileNotFoundError: If a path does not exist
        ValueError: If the path is not a file or the content is empty
    """
    if isinstance(source, (str, Path)):
        path = Path(source)
        if not path.exists():
            raise FileNotFoundError(f"File not found: {path}")
        if not path.is_file():
            raise ValueError(f"Path is not a file: {path}")
        raw = path.read_bytes()
    else:
        if hasattr(source, 'seek'):
            source.seek(0)
        raw = source.read()

    if isinstance(raw, bytes):
        text = raw.decode('utf-8-sig', errors='replace')
    else:
        text = raw.lstrip('\ufeff')

    if not text.strip():
        raise ValueError(f"File is empty: {source_name(source) or '<upload>'}")
    return text


def sniff_delimiter(text: str, filename: str = '', sample_size: int = 8192) -> str:
    """
    Auto-detect the delimiter of delimited text.

    Uses Python's csv.Sniffer on the first lines, falling back to the file
    extension and then to counting candidates in the header line.

    Returns:
        Detected delimiter character ('\\t', ',', ';' or '|')

    Raises:
        ValueError: If delimiter cannot be determined
    """
    sample = text[:sample_size]

    try:
        dialect = csv.Sniffer().sniff(sample, delimiters='\t,;|')
        return dialect.delimiter
    except csv.Error:
        pass

    suffix = Path(filename).suffix.lower() if filename else ''
    if suffix in _EXTENSION_DELIMITERS:
        return _EXTENSION_DELIMITERS[suffix]

    first_line = sample.split('\n')[0]
    counts = {
        '\t': first_line.count('\t'),
        ',': first_line.count(','),
        ';': first_line.count(';'),
        '|': first_line.count('|'),
    }

    if max(counts.values()) == 0:
        raise ValueError(
            f"Could not detect delimiter in {filename or '<upload>'}. "
            "Expected a comma, tab, semicolon or pipe separated file."
        )

    return max(counts, key=counts.get)


def read_table(source: TableSource, **read_csv_kwargs) -> pd.DataFrame:
    """
    Parse a delimited file into a DataFrame with the sniffed delimiter.

    Raises:
        ValueError: If the file is empty or cannot be parsed
    """
    name = source_name(source)
    text = read_text(source)
    delimiter = sniff_delimiter(text, filename=name)

    try:
        return pd.read_csv(io.StringIO(text), sep=delimiter, **read_csv_kwargs)
    except pd.errors.EmptyDataError as e:
        raise ValueError(f"File is empty: {name or '<upload>'}") from e
    except pd.errors.ParserError as e:
        raise ValueError(f"Failed to parse {name or '<upload>'}: {e}") from e
