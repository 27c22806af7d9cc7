"""
Phenotype table loading and column inference.

The phenotype upload is a free-form clinical table: one row per sample, with
whatever headers the submitter chose ("Sex", "GENDER", "disease state",
"Diagnosis group", ...). This module finds the three columns the analysis
needs, renames them to fixed names and canonicalises their values.

Classes:
    PhenotypeColumnInferencer: Abstract base class for locating columns
    PatternColumnInferencer: Substring rules on normalised header names
    ExplicitColumnInferencer: User-selected column names

Canonical output (index = cleaned sample ID):
    - gender: "female" / "male"
    - status: lower-cased disease status; "ra" -> "rheumatoid arthritis",
      "normal" / "healthy" -> "control"

Example:
    >>> from sexdeg.io.phenotype import load_phenotypes
    >>> pheno = load_phenotypes("GSE93272_phenotype.csv")
    >>> pheno['status'].value_counts()
    rheumatoid arthritis    232
    control                  43
    Name: status, dtype: int64
"""

from __future__ import annotations

import logging
import re
import warnings
from abc import ABC, abstractmethod
from dataclasses import dataclass

import numpy as np
import pandas as pd

from sexdeg.core.errors import MissingColumnError
from sexdeg.io.formats import TableSource, read_table, source_name
from sexdeg.io.loaders import clean_sample_id

__all__ = [
    'CONTROL',
    'CASE',
    'SEXES',
    'STATUS_SYNONYMS',
    'PhenotypeColumns',
    'PhenotypeColumnInferencer',
    'PatternColumnInferencer',
    'ExplicitColumnInferencer',
    'normalize_column_name',
    'canonicalize_status',
    'canonicalize_sex',
    'load_phenotypes',
]

logger = logging.getLogger(__name__)

CONTROL = "control"
CASE = "rheumatoid arthritis"
SEXES = ("female", "male")

STATUS_SYNONYMS = {
    "ra": CASE,
    "normal": CONTROL,
    "healthy": CONTROL,
}

SEX_SYNONYMS = {
    "f": "female",
    "female": "female",
    "woman": "female",
    "w": "female",
    "m": "male",
    "male": "male",
    "man": "male",
}


def normalize_column_name(name: object) -> str:
    """
    Trim, lower-case and underscore a header.

    Examples:
        >>> normalize_column_name("  Disease  State ")
        'disease_state'
    """
    return re.sub(r"\s+", "_", str(name).strip().lower())


def _normalize_value(value: object) -> str | None:
    if value is None or (isinstance(value, float) and np.isnan(value)):
        return None
    text = re.sub(r"\s+", " ", str(value).strip().lower())
    return text or None


def canonicalize_status(value: object) -> str | None:
    """
    Map a raw status value onto the canonical vocabulary.

    Examples:
        >>> canonicalize_status(" RA ")
        'rheumatoid arthritis'
        >>> canonicalize_status("Healthy")
        'control'
        >>> canonicalize_status("Osteoarthritis")
        'osteoarthritis'
    """
    text = _normalize_value(value)
    if text is None:
        return None
    return STATUS_SYNONYMS.get(text, text)


def canonicalize_sex(value: object) -> str | None:
    """
    Map a raw sex value onto "female" / "male".

    Unrecognised values pass through lower-cased so they simply match no
    stratum.
    """
    text = _normalize_value(value)
    if text is None:
        return None
    return SEX_SYNONYMS.get(text, text)


@dataclass(frozen=True)
class PhenotypeColumns:
    """Header names (as they appear after normalisation) of the required columns."""

    sample: str
    sex: str
    status: str


class PhenotypeColumnInferencer(ABC):
    """
    Base class for locating the sample, sex and status columns.

    Methods:
        infer: Map normalised headers to PhenotypeColumns
        get_inference_provenance: Report which rule picked each column
    """

    @abstractmethod
    def infer(self, columns: pd.Index) -> PhenotypeColumns:
        """
        Locate the required columns.

        Args:
            columns: Normalised column names of the phenotype table

        Raises:
            MissingColumnError: If a required column cannot be found
        """
        pass

    def get_inference_provenance(self, columns: pd.Index) -> pd.DataFrame:
        """
        Return which column was picked for each role.

        Returns:
            DataFrame with columns role, column, source
        """
        found = self.infer(columns)
        return pd.DataFrame({
            'role': ['sample', 'sex', 'status'],
            'column': [found.sample, found.sex, found.status],
            'source': type(self).__name__,
        })


class PatternColumnInferencer(PhenotypeColumnInferencer):
    """
    Best-effort column inference from header substrings.

    Rules (applied to normalised headers, first match in table order wins):
        - sample: exactly "sample"
        - sex: contains any of `sex_keywords`
        - status: contains any of `status_keywords`

    Adversarial headers (e.g. "sex_of_donor_status") can be picked for the
    wrong role; use ExplicitColumnInferencer when that matters.
    """

    def __init__(
        self,
        sample_column: str = "sample",
        sex_keywords: tuple[str, ...] = ("gender", "sex"),
        status_keywords: tuple[str, ...] = ("status", "group", "diagnosis", "condition", "disease"),
    ):
        self.sample_column = sample_column
        self.sex_keywords = sex_keywords
        self.status_keywords = status_keywords

    @staticmethod
    def _first_containing(columns: list[str], keywords: tuple[str, ...], exclude: set[str]) -> str | None:
        for col in columns:
            if col in exclude:
                continue
            if any(keyword in col for keyword in keywords):
                return col
        return None

    def infer(self, columns: pd.Index) -> PhenotypeColumns:
        cols = [str(c) for c in columns]

        if self.sample_column not in cols:
            raise MissingColumnError(
                f"Phenotype table needs a '{self.sample_column}' column. Found: {cols}"
            )

        sex = self._first_containing(cols, self.sex_keywords, {self.sample_column})
        if sex is None:
            raise MissingColumnError(
                f"No sex column found (header containing {' or '.join(self.sex_keywords)}). "
                f"Found: {cols}"
            )

        status = self._first_containing(cols, self.status_keywords, {self.sample_column, sex})
        if status is None:
            raise MissingColumnError(
                f"No status column found (header containing {', '.join(self.status_keywords)}). "
                f"Found: {cols}"
            )

        return PhenotypeColumns(sample=self.sample_column, sex=sex, status=status)


class ExplicitColumnInferencer(PhenotypeColumnInferencer):
    """
    Use column names chosen by the user.

    Names are normalised the same way as the table headers, so "Sex" and
    "sex" both select a header "SEX".
    """

    def __init__(self, sample: str = "sample", sex: str = "gender", status: str = "status"):
        self.columns = PhenotypeColumns(
            sample=normalize_column_name(sample),
            sex=normalize_column_name(sex),
            status=normalize_column_name(status),
        )

    def infer(self, columns: pd.Index) -> PhenotypeColumns:
        cols = {str(c) for c in columns}
        for role in ('sample', 'sex', 'status'):
            name = getattr(self.columns, role)
            if name not in cols:
                raise MissingColumnError(
                    f"Selected {role} column '{name}' not in phenotype table. Found: {sorted(cols)}"
                )
        return self.columns


def load_phenotypes(
    source: TableSource,
    inferencer: PhenotypeColumnInferencer | None = None,
) -> pd.DataFrame:
    """
    Load a phenotype file into a sample-indexed table.

    Args:
        source: Path or uploaded file object
        inferencer: Column locator (default: PatternColumnInferencer)

    Returns:
        DataFrame indexed by cleaned sample ID ("sample"), with canonical
        `gender` and `status` columns followed by the remaining columns
        (normalised names). Rows with a null sex or status are dropped.

    Raises:
        MissingColumnError: If the sample, sex or status column is missing
        ValueError: If the file is empty or malformed
    """
    if inferencer is None:
        inferencer = PatternColumnInferencer()

    name = source_name(source) or '<upload>'
    df = read_table(source, dtype=str, keep_default_na=True)
    df.columns = [normalize_column_name(c) for c in df.columns]

    if df.columns.duplicated().any():
        dupes = list(df.columns[df.columns.duplicated()])
        warnings.warn(f"Duplicate phenotype headers {dupes}; using first occurrence", UserWarning)
        df = df.loc[:, ~df.columns.duplicated(keep='first')]

    cols = inferencer.infer(df.columns)
    logger.info(
        f"Phenotype columns in {name}: sample='{cols.sample}', sex='{cols.sex}', status='{cols.status}'"
    )

    table = pd.DataFrame({
        'sample': df[cols.sample].map(clean_sample_id),
        'gender': df[cols.sex].map(canonicalize_sex),
        'status': df[cols.status].map(canonicalize_status),
    })
    extra = [c for c in df.columns if c not in (cols.sample, cols.sex, cols.status)
             and c not in ('gender', 'status')]
    for col in extra:
        table[col] = df[col].values

    table = table[table['sample'] != '']

    # Incomplete rows go first so a later complete duplicate can stand in
    incomplete = table['gender'].isna() | table['status'].isna()
    if incomplete.any():
        logger.info(f"Dropping {int(incomplete.sum())} phenotype rows with missing sex or status")
        table = table[~incomplete]

    if table['sample'].duplicated().any():
        n_duplicates = int(table['sample'].duplicated().sum())
        warnings.warn(
            f"Found {n_duplicates} duplicate sample IDs in phenotype table. "
            "Using first occurrence of each.",
            UserWarning
        )
        table = table[~table['sample'].duplicated(keep='first')]

    table = table.set_index('sample')
    logger.info(
        f"Loaded phenotypes: {len(table)} samples "
        f"({dict(table['gender'].value_counts())}, {dict(table['status'].value_counts())})"
    )
    return table
