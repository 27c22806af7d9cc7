"""
Sample matching between the expression matrix and the phenotype table.

The two uploads are produced independently and rarely cover exactly the same
samples. Matching keeps the identifier intersection and puts both tables in
the same lexicographic sample order, so that column j of the expression
matrix and row j of the phenotype table always describe the same sample.

Example:
    Expression has GSM1..GSM20, phenotype has GSM3..GSM25 →
    AnnotatedExpression over GSM3..GSM20 (sorted), 2 expression-only and
    5 phenotype-only samples reported in the audit.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import pandas as pd

from sexdeg.core.biomatrix import BioMatrix
from sexdeg.core.errors import NoOverlapError

__all__ = ['AnnotatedExpression', 'match_samples']

logger = logging.getLogger(__name__)


@dataclass
class AnnotatedExpression:
    """Expression matrix joined with phenotypes over the matched samples.

    Attributes:
        matrix: Expression restricted to matched samples; its sample_metadata
            is the phenotype table in the same order.
        expression_only: Sample IDs present only in the expression file.
        phenotype_only: Sample IDs present only in the phenotype file.
    """

    matrix: BioMatrix
    expression_only: list[str]
    phenotype_only: list[str]

    @property
    def sample_ids(self) -> pd.Index:
        return self.matrix.sample_ids

    @property
    def phenotypes(self) -> pd.DataFrame:
        return self.matrix.sample_metadata

    @property
    def n_samples(self) -> int:
        return self.matrix.n_samples

    def stratum(self, sex: str) -> BioMatrix:
        """Samples whose canonical gender equals `sex`."""
        return self.matrix.select_samples(self.phenotypes['gender'] == sex)

    def to_frame(self) -> pd.DataFrame:
        """Joined table: a gene_symbol column followed by one column per matched sample."""
        frame = self.matrix.to_frame()
        frame.index.name = 'gene_symbol'
        return frame.reset_index()

    def audit(self) -> dict:
        """Counts of matched and unmatched samples."""
        return {
            "n_matched": self.n_samples,
            "n_expression_only": len(self.expression_only),
            "n_phenotype_only": len(self.phenotype_only),
        }


def match_samples(expression: BioMatrix, phenotypes: pd.DataFrame) -> AnnotatedExpression:
    """
    Intersect and align expression samples with phenotype rows.

    Args:
        expression: Gene-by-sample matrix (cleaned sample IDs)
        phenotypes: Sample-indexed phenotype table (cleaned sample IDs)

    Returns:
        AnnotatedExpression whose expression columns and phenotype rows are
        both the sorted intersection of identifiers

    Raises:
        NoOverlapError: If the two inputs share no sample identifier
    """
    expr_ids = set(map(str, expression.sample_ids))
    pheno_ids = set(map(str, phenotypes.index))

    shared = sorted(expr_ids & pheno_ids)
    if not shared:
        raise NoOverlapError(
            "No overlap between expression and phenotype sample identifiers. "
            f"Expression e.g. {sorted(expr_ids)[:3]}, phenotype e.g. {sorted(pheno_ids)[:3]}"
        )

    order = pd.Index(shared, name='sample')
    pheno = phenotypes.copy()
    pheno.index = pheno.index.map(str)
    pheno = pheno.loc[order]
    pheno.index.name = 'sample'

    expr = expression.reorder_samples(order).with_metadata(pheno)

    expression_only = sorted(expr_ids - pheno_ids)
    phenotype_only = sorted(pheno_ids - expr_ids)

    logger.info(
        f"Matched {len(shared)} samples "
        f"({len(expression_only)} expression-only, {len(phenotype_only)} phenotype-only)"
    )

    return AnnotatedExpression(
        matrix=expr,
        expression_only=expression_only,
        phenotype_only=phenotype_only,
    )
