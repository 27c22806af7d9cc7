"""
Batch pipeline: the full analysis without the UI.

Usage:
    sexdeg run \\
        --expression data/expression.csv \\
        --phenotype data/phenotype.csv \\
        --output results/ \\
        --logfc 0.5 --adjpval 0.05 \\
        --workflows boruta elastic_net rfe --degs-only

Outputs (in --output):
    deg_<sex>.csv, deg_<sex>_all.csv   DEG table / statistics for every gene
    volcano_<sex>.png                   volcano plot
    summary.csv                         cross-sex summary (8 metrics)
    <workflow>_<sex>.csv                genes selected by each workflow
    boxplot_<sex>.png                   expression of the selected genes
    run_summary.json                    parameters, counts and files
"""

from __future__ import annotations

import argparse
import logging
from datetime import datetime
from pathlib import Path

from sexdeg import __version__
from sexdeg.cli.config import (
    AnalysisConfig,
    config_from_dict,
    load_config,
    merge_config_with_args,
    validate_config,
)
from sexdeg.core.errors import AnalysisInputError, InsufficientDataError
from sexdeg.io.writers import write_deg_table, write_run_summary, write_selection, write_summary
from sexdeg.selection import WORKFLOWS
from sexdeg.session import AnalysisSession
from sexdeg.viz import DifferentialVisualizer

logger = logging.getLogger(__name__)


def register_parser(subparsers: argparse._SubParsersAction) -> None:
    """Register the run subcommand."""
    parser = subparsers.add_parser(
        "run",
        help="Run the full sex-stratified analysis and write results",
        description="Differential expression per sex, cross-sex summary and feature selection",
    )

    parser.add_argument("--config", "-c", type=Path, default=None,
                        help="Path to YAML/JSON config file (CLI args override config values)")

    # All overridable options default to None so that config values apply
    parser.add_argument("--expression", "-e", type=Path, default=None,
                        help="Expression file (gene column followed by sample columns)")
    parser.add_argument("--phenotype", "-p", type=Path, default=None,
                        help="Phenotype file (sample, sex and status columns)")
    parser.add_argument("--output", "-o", type=Path, default=None,
                        help="Output directory")

    thresholds = parser.add_argument_group("thresholds")
    thresholds.add_argument("--logfc", type=float, default=None,
                            help="Strict |log2 fold change| cutoff (default: 0.5)")
    thresholds.add_argument("--adjpval", type=float, default=None,
                            help="Strict adjusted p-value cutoff (default: 0.05)")
    thresholds.add_argument("--min-variance", type=float, default=None,
                            help="Drop genes with log2 variance not above this (default: 0.01)")
    thresholds.add_argument("--log-transform", choices=["auto", "always", "never"], default=None,
                            help="log2(x + 1) the expression values (default: auto)")

    columns = parser.add_argument_group("phenotype columns (default: inferred from headers)")
    columns.add_argument("--sample-column", default=None, help="Sample identifier column")
    columns.add_argument("--sex-column", default=None, help="Sex column")
    columns.add_argument("--status-column", default=None, help="Disease status column")

    selection = parser.add_argument_group("feature selection")
    selection.add_argument("--workflows", nargs="*", choices=list(WORKFLOWS), default=None,
                           help="Workflows to run (default: all; pass no values to skip)")
    selection.add_argument("--sexes", nargs="+", choices=["female", "male"], default=None,
                           help="Strata to analyse (default: both)")
    selection.add_argument("--degs-only", action="store_true", default=None,
                           help="Restrict feature selection to each stratum's DEGs")
    selection.add_argument("--l1-ratio", type=float, default=None,
                           help="Elastic-net mixing parameter in [0, 1] (default: 0.5)")
    selection.add_argument("--cv-folds", type=int, default=None,
                           help="Cross-validation folds (default: 5)")
    selection.add_argument("--boruta-max-iter", type=int, default=None,
                           help="Boruta iteration budget (default: 100)")
    selection.add_argument("--boruta-alpha", type=float, default=None,
                           help="Boruta significance level (default: 0.01)")
    selection.add_argument("--rfe-sizes", nargs="+", type=int, default=None,
                           help="RFE candidate subset sizes (default: 1 2 3 4 5 10 15 20 25)")
    selection.add_argument("--random-state", type=int, default=None,
                           help="Random seed (default: 42)")

    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    parser.set_defaults(func=run_analysis)


def _resolve_config(args: argparse.Namespace) -> AnalysisConfig:
    config = config_from_dict(load_config(args.config)) if args.config else AnalysisConfig()
    config = merge_config_with_args(config, args)
    validate_config(config)
    return config


def _run_workflow(session: AnalysisSession, workflow: str, sex: str, config: AnalysisConfig):
    t, s = config.thresholds, config.selection
    common = dict(sex=sex, degs_only=s.degs_only, logfc=t.logfc, adjpval=t.adjpval)
    if workflow == 'boruta':
        return session.boruta(**common, max_iter=s.boruta_max_iter, alpha=s.boruta_alpha)
    if workflow == 'elastic_net':
        return session.elastic_net(**common, l1_ratio=s.l1_ratio, cv_folds=s.cv_folds)
    return session.rfe(**common, sizes=s.rfe_sizes, cv_folds=s.cv_folds)


def _selected_genes(result) -> list[str]:
    return result.to_frame()['feature'].tolist()


def run_analysis(args: argparse.Namespace) -> int:
    """Execute the run command."""
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s',
    )

    try:
        config = _resolve_config(args)
    except (FileNotFoundError, ValueError) as e:
        logger.error(f"Config error: {e}")
        return 1

    missing = [name for name in ('expression', 'phenotype', 'output') if getattr(config, name) is None]
    if missing:
        logger.error(f"Missing required argument(s) (via CLI or config file): {', '.join('--' + m for m in missing)}")
        return 1

    start_time = datetime.now()
    output: Path = config.output
    output.mkdir(parents=True, exist_ok=True)
    t, s = config.thresholds, config.selection

    session = AnalysisSession(random_state=s.random_state)
    try:
        session.set_expression(config.expression, min_variance=t.min_variance, log_transform=t.log_transform)
        session.set_phenotypes(config.phenotype, inferencer=config.phenotype_columns.inferencer())
        annotated = session.annotated()
    except (FileNotFoundError, AnalysisInputError, ValueError) as e:
        logger.error(f"Input error: {e}")
        return 1

    files: list[str] = []
    errors: dict[str, str] = {}
    degs: dict[str, dict] = {}
    viz = DifferentialVisualizer(style="paper")

    for sex in s.sexes:
        try:
            result = session.differential(sex, logfc=t.logfc, adjpval=t.adjpval)
        except InsufficientDataError as e:
            logger.error(f"Differential expression ({sex}): {e}")
            errors[f"differential_{sex}"] = str(e)
            continue
        degs[sex] = result.to_dict()
        files.append(write_deg_table(result, output / f"deg_{sex}.csv").name)
        files.append(write_deg_table(result, output / f"deg_{sex}_all.csv", all_genes=True).name)
        volcano = viz.plot_volcano(result)
        files.append(volcano.save(output / f"volcano_{sex}.png").name)
        volcano.close()

    if not degs:
        logger.error("No stratum could be analysed")
        write_run_summary({"version": __version__, "config": config.to_dict(), "errors": errors},
                          output / "run_summary.json")
        return 1

    summary = session.summary(logfc=t.logfc, adjpval=t.adjpval)
    files.append(write_summary(summary, output / "summary.csv").name)

    selections: dict[str, dict[str, list[str]]] = {}
    for sex in s.sexes:
        genes_for_plot: list[str] = []
        for workflow in s.workflows:
            try:
                result = _run_workflow(session, workflow, sex, config)
            except InsufficientDataError as e:
                logger.warning(f"{workflow} ({sex}): {e}")
                errors[f"{workflow}_{sex}"] = str(e)
                continue
            files.append(write_selection(result, output / f"{workflow}_{sex}.csv").name)
            genes = _selected_genes(result)
            selections.setdefault(sex, {})[workflow] = genes
            genes_for_plot.extend(g for g in genes if g not in genes_for_plot)

        if not genes_for_plot and sex in degs:
            genes_for_plot = session.differential(sex, logfc=t.logfc, adjpval=t.adjpval).genes
        if genes_for_plot:
            boxplot = viz.plot_expression_boxplots(
                annotated, genes_for_plot, title=f"Selected genes ({sex})"
            )
            files.append(boxplot.save(output / f"boxplot_{sex}.png").name)
            boxplot.close()

    duration = (datetime.now() - start_time).total_seconds()
    write_run_summary({
        "version": __version__,
        "started": start_time.isoformat(),
        "duration_seconds": round(duration, 2),
        "config": config.to_dict(),
        "matching": annotated.audit(),
        "differential": degs,
        "summary": summary.astype(object).where(summary.notna(), None).to_dict(),
        "selections": selections,
        "errors": errors,
        "files": files,
    }, output / "run_summary.json")

    logger.info(f"Done in {duration:.1f}s; results in {output}")
    return 0
