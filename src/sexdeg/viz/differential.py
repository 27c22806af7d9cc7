"""
Plots for the sex-stratified differential expression results.

- plot_volcano: log2 fold change vs -log10 adjusted p-value for one stratum,
  threshold lines, color by direction, labels for the top up and top down
  DEGs by effect size (de-overlapped with adjustText)
- plot_expression_boxplots: expression of selected genes grouped by sex and
  disease status
- plot_rfe_profile: cross-validated accuracy per RFE subset size
"""

from __future__ import annotations

import logging
from typing import Literal, Sequence

import matplotlib.patches as mpatches
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns
from adjustText import adjust_text

from sexdeg.io.phenotype import CASE, CONTROL, SEXES
from sexdeg.selection.rfe import RFEResult
from sexdeg.stats.differential import DEGResult
from sexdeg.stats.matching import AnnotatedExpression
from sexdeg.viz.core import Figure
from sexdeg.viz.styles import Palette, configure_style

__all__ = ['DifferentialVisualizer']

logger = logging.getLogger(__name__)

# Floor for -log10 of adjusted p-values that underflow to 0
_MIN_P = 1e-300


class DifferentialVisualizer:
    """
    Figures for DEG results and selected genes.

    Usage:
        viz = DifferentialVisualizer()
        viz.plot_volcano(female_result).save("volcano_female.png")
        viz.plot_expression_boxplots(annotated, ["IL6", "TNF"]).save("boxplot.png")
    """

    def __init__(
        self,
        palette: str | Palette = "default",
        style: Literal["paper", "presentation", "notebook"] = "notebook",
    ):
        self.style = style
        self.palette = configure_style(style=style, palette=palette)

        self.font_sizes = {
            "paper": {"title": 14, "label": 11, "tick": 9, "annotation": 8},
            "presentation": {"title": 18, "label": 14, "tick": 12, "annotation": 10},
            "notebook": {"title": 12, "label": 10, "tick": 8, "annotation": 8},
        }[style]

    def plot_volcano(
        self,
        result: DEGResult,
        n_labels: int = 5,
        figsize: tuple[float, float] = (8, 6),
        title: str | None = None,
    ) -> Figure:
        """
        Volcano plot for one stratum.

        Args:
            result: DEGResult with all_genes statistics
            n_labels: DEGs labelled on each side (largest |log2FoldChange|)
            figsize: Figure dimensions
            title: Defaults to "<Sex>: rheumatoid arthritis vs control"

        Returns:
            Figure wrapper
        """
        df = result.all_genes.dropna(subset=['log2FoldChange', 'adjustedPValue']).copy()
        df['neglog10p'] = -np.log10(df['adjustedPValue'].clip(lower=_MIN_P))
        df['category'] = df['direction'].fillna('neutral')

        fig, ax = plt.subplots(figsize=figsize)

        # Non-significant genes underneath
        for category in ('neutral', 'down', 'up'):
            subset = df[df['category'] == category]
            if subset.empty:
                continue
            ax.scatter(
                subset['log2FoldChange'], subset['neglog10p'],
                c=self.palette.direction[category],
                s=10 if category == 'neutral' else 18,
                alpha=0.5 if category == 'neutral' else 0.85,
                edgecolors='none',
                rasterized=len(subset) > 5000,
            )

        ax.axhline(-np.log10(result.adjpval), color="#64748b", linestyle="--", linewidth=1, alpha=0.7)
        for x in (-result.logfc, result.logfc):
            ax.axvline(x, color="#64748b", linestyle="--", linewidth=1, alpha=0.7)

        texts = []
        significant = df[df['significant']]
        for direction in ('up', 'down'):
            side = significant[significant['direction'] == direction]
            top = side.reindex(side['log2FoldChange'].abs().sort_values(ascending=False, kind='mergesort').index)
            for _, row in top.head(n_labels).iterrows():
                texts.append(ax.text(
                    row['log2FoldChange'], row['neglog10p'], str(row['gene_symbol']),
                    fontsize=self.font_sizes["annotation"],
                    fontstyle="italic",
                    fontweight="bold",
                    color="#1e293b",
                ))

        if texts:
            adjust_text(texts, ax=ax, arrowprops=dict(arrowstyle="-", color="#94a3b8", lw=0.5))

        sex_label = result.sex.capitalize()
        ax.set_xlabel(r"log$_2$ fold change (RA − control)", fontsize=self.font_sizes["label"])
        ax.set_ylabel(r"-log$_{10}$(adjusted p-value)", fontsize=self.font_sizes["label"])
        ax.set_title(
            title or f"{sex_label}: rheumatoid arthritis vs control",
            fontsize=self.font_sizes["title"], fontweight="bold",
        )
        ax.tick_params(labelsize=self.font_sizes["tick"])

        legend_elements = [
            mpatches.Patch(color=self.palette.up, label=f"Up in RA ({result.n_up})"),
            mpatches.Patch(color=self.palette.down, label=f"Down in RA ({result.n_down})"),
            mpatches.Patch(color=self.palette.neutral, label="Not significant"),
        ]
        ax.legend(handles=legend_elements, loc="upper left", fontsize=self.font_sizes["annotation"])

        fig.tight_layout()

        return Figure(
            fig=fig,
            title=f"Volcano plot ({result.sex})",
            description=(
                f"{len(result)} DEGs at |log2FC| > {result.logfc} and adjusted p < {result.adjpval}; "
                f"{result.n_control} control vs {result.n_case} RA samples"
            ),
            metadata={
                "sex": result.sex,
                "logfc": result.logfc,
                "adjpval": result.adjpval,
                "n_degs": len(result),
                "n_labels": len(texts),
            },
        )

    def plot_expression_boxplots(
        self,
        annotated: AnnotatedExpression,
        genes: Sequence[str],
        sexes: Sequence[str] = SEXES,
        max_genes: int = 10,
        title: str | None = None,
    ) -> Figure:
        """
        Box plots of selected genes by disease status, one panel per sex.

        Unique-suffixed feature names from the ML workflows (``IL6.1``) are
        matched back to their gene symbol. Genes absent from the matrix are
        skipped.

        Args:
            annotated: Matched expression + phenotypes
            genes: Genes to show, in display order (first `max_genes` used)
            sexes: Panels to draw
            max_genes: Cap on the number of genes
            title: Figure title
        """
        present = set(map(str, annotated.matrix.feature_ids))
        chosen: list[str] = []
        for gene in genes:
            symbol = str(gene)
            if symbol not in present and '.' in symbol:
                base = symbol.rsplit('.', 1)[0]
                symbol = base if base in present else symbol
            if symbol in present and symbol not in chosen:
                chosen.append(symbol)
            if len(chosen) == max_genes:
                break

        if not chosen:
            raise ValueError(f"None of the requested genes are in the expression matrix: {list(genes)[:5]}")

        frame = annotated.matrix.to_frame()
        frame = frame[frame.index.isin(chosen)]
        frame.index.name = 'gene'
        long = frame.reset_index().melt(id_vars='gene', var_name='sample', value_name='expression')
        pheno = annotated.phenotypes[['gender', 'status']]
        long = long.join(pheno, on='sample')
        long = long[long['status'].isin([CONTROL, CASE]) & long['gender'].isin(list(sexes))]

        n_panels = len(sexes)
        width = max(6.0, 0.9 * len(chosen) + 2)
        fig, axes = plt.subplots(1, n_panels, figsize=(width * n_panels, 5), sharey=True, squeeze=False)

        for ax, sex in zip(axes[0], sexes):
            subset = long[long['gender'] == sex]
            if subset.empty:
                ax.text(0.5, 0.5, f"No {sex} samples", ha="center", va="center",
                        transform=ax.transAxes, fontsize=self.font_sizes["label"])
                ax.set_axis_off()
                continue
            sns.boxplot(
                data=subset, x='gene', y='expression', hue='status',
                order=chosen, hue_order=[CONTROL, CASE],
                palette=self.palette.status, fliersize=2, linewidth=0.8, ax=ax,
            )
            ax.set_title(sex.capitalize(), fontsize=self.font_sizes["title"], fontweight="bold",
                         color=self.palette.sex.get(sex, "#333333"))
            ax.set_xlabel("")
            ax.set_ylabel(r"log$_2$ expression", fontsize=self.font_sizes["label"])
            ax.tick_params(axis='x', labelrotation=45, labelsize=self.font_sizes["tick"])
            for label in ax.get_xticklabels():
                label.set_fontstyle("italic")
            legend = ax.get_legend()
            if legend is not None:
                legend.set_title(None)

        if title:
            fig.suptitle(title, fontsize=self.font_sizes["title"] + 2, fontweight="bold")
        fig.tight_layout()

        return Figure(
            fig=fig,
            title=title or "Expression of selected genes",
            description=f"Expression by disease status for {len(chosen)} genes",
            metadata={"genes": chosen, "sexes": list(sexes)},
        )

    def plot_rfe_profile(self, result: RFEResult, figsize: tuple[float, float] = (6, 4)) -> Figure:
        """Cross-validated accuracy against subset size, selected size marked."""
        cv = result.cv_results.sort_values('size')

        fig, ax = plt.subplots(figsize=figsize)
        ax.errorbar(
            cv['size'], cv['accuracy'], yerr=cv['accuracy_sd'],
            marker='o', color=self.palette.case, capsize=3, linewidth=1.2,
        )
        ax.axvline(result.selected_size, color=self.palette.neutral, linestyle="--", linewidth=1)
        ax.set_xlabel("Number of genes", fontsize=self.font_sizes["label"])
        ax.set_ylabel("CV accuracy", fontsize=self.font_sizes["label"])
        ax.set_title(f"RFE ({result.sex})", fontsize=self.font_sizes["title"], fontweight="bold")
        ax.set_ylim(0, 1.05)
        fig.tight_layout()

        return Figure(
            fig=fig,
            title=f"RFE profile ({result.sex})",
            description=f"Selected {result.selected_size} genes by {result.n_folds}-fold CV accuracy",
            metadata={"sex": result.sex, "selected_size": result.selected_size},
        )
