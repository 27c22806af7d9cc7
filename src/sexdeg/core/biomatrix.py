"""
Expression matrix with sample annotations and per-cell provenance.

A BioMatrix holds log2 intensities for genes (rows) across samples
(columns), the phenotype rows describing each sample, and a QualityFlag
bitmask recording where each value came from. Microarray exports often list
several probes under one symbol, so gene keys may repeat; sample keys may not.

Every subsetting method returns a new BioMatrix; nothing mutates in place.

Examples:
    >>> import numpy as np
    >>> import pandas as pd
    >>> from sexdeg.core.biomatrix import BioMatrix
    >>> from sexdeg.core.quality import QualityFlag
    >>>
    >>> samples = pd.Index(["GSM001", "GSM002"])
    >>> matrix = BioMatrix(
    ...     np.array([[7.1, 8.3], [5.0, 5.2]]),
    ...     pd.Index(["IL6", "TNF"]),
    ...     samples,
    ...     pd.DataFrame({"gender": ["female", "male"]}, index=samples),
    ...     np.zeros((2, 2), dtype=int),
    ... )
    >>> matrix.select_samples(matrix.sample_metadata["gender"] == "female").shape
    (2, 1)
"""

from __future__ import annotations

import numpy as np
import pandas as pd
from sexdeg.core.quality import QualityFlag

__all__ = ['BioMatrix']

_EXPECTED_TYPES = (
    ("data", np.ndarray),
    ("feature_ids", pd.Index),
    ("sample_ids", pd.Index),
    ("sample_metadata", pd.DataFrame),
    ("quality_flags", np.ndarray),
)


def _as_mask(mask, length: int, axis: str) -> np.ndarray:
    values = mask.to_numpy() if isinstance(mask, pd.Series) else mask
    values = np.asarray(values, dtype=bool)
    if values.shape != (length,):
        raise ValueError(f"{axis} mask has {values.size} entries, matrix has {length} {axis}")
    return values


class BioMatrix:
    """
    Genes × samples expression values bundled with their annotations.

    Attributes:
        data: float array, one row per gene and one column per sample
        feature_ids: gene symbols (may repeat)
        sample_ids: sample identifiers (unique)
        sample_metadata: phenotype table indexed exactly by ``sample_ids``
        quality_flags: QualityFlag bitmask, same shape as ``data``

    Raises:
        TypeError: an argument has the wrong container type
        ValueError: dimensions disagree, the metadata index differs from
            ``sample_ids``, or a sample ID repeats
    """

    def __init__(
        self,
        data: np.ndarray,
        feature_ids: pd.Index,
        sample_ids: pd.Index,
        sample_metadata: pd.DataFrame,
        quality_flags: np.ndarray,
    ):
        given = dict(data=data, feature_ids=feature_ids, sample_ids=sample_ids,
                     sample_metadata=sample_metadata, quality_flags=quality_flags)
        for name, expected in _EXPECTED_TYPES:
            if not isinstance(given[name], expected):
                raise TypeError(
                    f"BioMatrix {name} needs a {expected.__name__}, not {type(given[name]).__name__}"
                )

        if data.ndim != 2:
            raise ValueError(f"Expression data must be two-dimensional; got {data.ndim} axes")
        n_genes, n_samples = data.shape
        if len(feature_ids) != n_genes:
            raise ValueError(f"{len(feature_ids)} gene IDs for {n_genes} data rows")
        if len(sample_ids) != n_samples:
            raise ValueError(f"{len(sample_ids)} sample IDs for {n_samples} data columns")
        if quality_flags.shape != data.shape:
            raise ValueError(f"Flag array {quality_flags.shape} does not line up with data {data.shape}")
        if sample_ids.has_duplicates:
            repeated = sample_ids[sample_ids.duplicated()].unique()[:5].tolist()
            raise ValueError(f"Sample IDs must be unique; repeated: {repeated}")
        if not sample_metadata.index.equals(sample_ids):
            raise ValueError(
                f"Phenotype index ({len(sample_metadata)} rows) is not identical to the "
                f"{len(sample_ids)} sample IDs in matrix order"
            )

        self._data = data
        self._feature_ids = feature_ids
        self._sample_ids = sample_ids
        self._sample_metadata = sample_metadata
        self._quality_flags = quality_flags

    # -- accessors ---------------------------------------------------------

    @property
    def data(self) -> np.ndarray:
        return self._data

    @property
    def feature_ids(self) -> pd.Index:
        return self._feature_ids

    @property
    def sample_ids(self) -> pd.Index:
        return self._sample_ids

    @property
    def sample_metadata(self) -> pd.DataFrame:
        return self._sample_metadata

    @property
    def quality_flags(self) -> np.ndarray:
        return self._quality_flags

    @property
    def shape(self) -> tuple[int, int]:
        """(n_features, n_samples)"""
        return self._data.shape

    @property
    def n_features(self) -> int:
        return len(self._feature_ids)

    @property
    def n_samples(self) -> int:
        return len(self._sample_ids)

    @property
    def n_missing(self) -> int:
        """Cells that were empty or unparseable in the uploaded file."""
        return int(np.count_nonzero(self._quality_flags & QualityFlag.MISSING_ORIGINAL))

    # -- subsetting --------------------------------------------------------

    def _take(self, rows=slice(None), cols=slice(None), metadata: pd.DataFrame | None = None) -> BioMatrix:
        sample_ids = self._sample_ids[cols]
        if metadata is None:
            metadata = self._sample_metadata.loc[sample_ids]
        return BioMatrix(
            self._data[rows][:, cols],
            self._feature_ids[rows],
            sample_ids,
            metadata,
            self._quality_flags[rows][:, cols],
        )

    def select_samples(self, mask: np.ndarray | pd.Series) -> BioMatrix:
        """Keep the columns where *mask* is true. A Series mask is used positionally."""
        return self._take(cols=_as_mask(mask, self.n_samples, "samples"))

    def select_features(self, mask: np.ndarray | pd.Series) -> BioMatrix:
        """Keep the rows where *mask* is true, e.g. genes above a variance floor."""
        return self._take(rows=_as_mask(mask, self.n_features, "features"), metadata=self._sample_metadata)

    def reorder_samples(self, order: pd.Index | list[str]) -> BioMatrix:
        """
        Restrict to the samples in *order*, laid out in that order.

        Raises:
            KeyError: some requested sample is not a column of this matrix
        """
        order = pd.Index(order)
        positions = self._sample_ids.get_indexer(order)
        absent = order[positions == -1]
        if len(absent):
            raise KeyError(f"Samples not in matrix: {absent[:5].tolist()}")
        return self._take(cols=positions)

    def with_metadata(self, sample_metadata: pd.DataFrame) -> BioMatrix:
        """Same values and flags, new phenotype table (validated against sample_ids)."""
        return BioMatrix(
            self._data, self._feature_ids, self._sample_ids, sample_metadata, self._quality_flags
        )

    def to_frame(self) -> pd.DataFrame:
        """Values as a genes × samples DataFrame."""
        return pd.DataFrame(self._data, index=self._feature_ids, columns=self._sample_ids)

    def __repr__(self) -> str:
        text = f"BioMatrix({self.n_features} genes × {self.n_samples} samples"
        if self.n_missing:
            text += f", {self.n_missing} missing"
        return text + ")"
