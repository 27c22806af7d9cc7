"""
Streamlit app: sex-stratified differential expression and feature selection.

Run with ``sexdeg app`` (or ``streamlit run src/sexdeg/app.py``).

Each browser session owns one AnalysisSession in st.session_state. Uploads
replace the session's inputs; every tab asks the session for its results,
which are computed on first request and reused until an upload or a
parameter changes. An input error is shown in the tab that hit it only.
"""

from __future__ import annotations

import copy
import logging

import numpy as np
import pandas as pd
import streamlit as st

from sexdeg import __version__
from sexdeg.cli.config import AnalysisConfig, load_app_config
from sexdeg.core.errors import AnalysisInputError
from sexdeg.core.quality import QualityFlag
from sexdeg.io.phenotype import SEXES
from sexdeg.session import AnalysisSession
from sexdeg.viz import DifferentialVisualizer

logger = logging.getLogger(__name__)

UPLOAD_TYPES = ["csv", "tsv", "txt"]
LOG_TRANSFORM_OPTIONS = ["auto", "always", "never"]
ADJPVAL_OPTIONS = [0.001, 0.005, 0.01, 0.05, 0.1, 0.2]


def _config() -> AnalysisConfig:
    if "config" not in st.session_state:
        st.session_state["config"] = load_app_config()
    return st.session_state["config"]


def _session(config: AnalysisConfig) -> AnalysisSession:
    if "analysis" not in st.session_state:
        st.session_state["analysis"] = AnalysisSession(random_state=config.selection.random_state)
    return st.session_state["analysis"]


def _upload_token(uploaded, *params) -> tuple:
    return (getattr(uploaded, "file_id", None), uploaded.name, uploaded.size, *params)


def _sync_uploads(session: AnalysisSession, expr_file, pheno_file, config: AnalysisConfig) -> None:
    """Load uploads whose content or loading parameters changed since the last rerun."""
    t, columns = config.thresholds, config.phenotype_columns
    if expr_file is not None:
        token = _upload_token(expr_file, t.min_variance, t.log_transform)
        if st.session_state.get("expression_token") != token:
            with st.spinner("Loading expression matrix..."):
                try:
                    session.set_expression(expr_file, min_variance=t.min_variance, log_transform=t.log_transform)
                    st.session_state["expression_error"] = None
                except (AnalysisInputError, ValueError) as e:
                    st.session_state["expression_error"] = str(e)
            st.session_state["expression_token"] = token

    if pheno_file is not None:
        token = _upload_token(pheno_file, columns.sample, columns.sex, columns.status)
        if st.session_state.get("phenotype_token") != token:
            try:
                session.set_phenotypes(pheno_file, inferencer=columns.inferencer())
                st.session_state["phenotype_error"] = None
            except (AnalysisInputError, ValueError) as e:
                st.session_state["phenotype_error"] = str(e)
            st.session_state["phenotype_token"] = token


def _csv_bytes(frame: pd.DataFrame, index: bool = False) -> bytes:
    return frame.to_csv(index=index).encode("utf-8")


def _sidebar(defaults: AnalysisConfig):
    """Sidebar widgets; returns the uploads and a per-rerun copy of the config with widget values."""
    config = copy.deepcopy(defaults)
    t, s = config.thresholds, config.selection
    with st.sidebar:
        st.header("Input")
        expr_file = st.file_uploader("Expression file (genes × samples)", type=UPLOAD_TYPES)
        pheno_file = st.file_uploader("Phenotype file (one row per sample)", type=UPLOAD_TYPES)

        with st.expander("Loading options"):
            t.log_transform = st.selectbox(
                "log2(x + 1) transform", LOG_TRANSFORM_OPTIONS,
                index=LOG_TRANSFORM_OPTIONS.index(t.log_transform),
            )
            t.min_variance = st.number_input(
                "Minimum gene variance (log2 scale)", min_value=0.0, value=float(t.min_variance),
                step=0.01, format="%.3f",
            )

        with st.expander("Phenotype columns"):
            st.caption("Leave empty to infer from the headers.")
            cols = config.phenotype_columns
            cols.sample = st.text_input("Sample column", value=cols.sample or "") or None
            cols.sex = st.text_input("Sex column", value=cols.sex or "") or None
            cols.status = st.text_input("Status column", value=cols.status or "") or None

        st.header("Thresholds")
        t.logfc = st.slider("|log2 fold change| >", 0.0, 3.0, float(t.logfc), 0.05)
        t.adjpval = st.select_slider(
            "Adjusted p-value <", options=ADJPVAL_OPTIONS,
            value=t.adjpval if t.adjpval in ADJPVAL_OPTIONS else 0.05,
        )
        s.l1_ratio = st.slider("Elastic-net mixing (l1_ratio)", 0.0, 1.0, float(s.l1_ratio), 0.05)

        st.caption(f"sexdeg {__version__}")
    return expr_file, pheno_file, config


def _data_tab(session: AnalysisSession) -> None:
    for key, label in (("expression_error", "Expression"), ("phenotype_error", "Phenotype")):
        if st.session_state.get(key):
            st.error(f"{label} file: {st.session_state[key]}")

    if session.expression is not None:
        matrix = session.expression
        st.subheader("Expression")
        st.write(f"**{matrix.n_features}** genes × **{matrix.n_samples}** samples "
                 f"({matrix.n_missing} missing values)")
        st.dataframe(matrix.to_frame().head(100), use_container_width=True)
        flags, counts = np.unique(matrix.quality_flags, return_counts=True)
        st.dataframe(
            pd.DataFrame({"values": [QualityFlag.describe(f) for f in flags], "cells": counts}),
            hide_index=True,
        )

    if session.phenotypes is not None:
        st.subheader("Phenotypes")
        st.dataframe(session.phenotypes, use_container_width=True)

    if not session.ready:
        st.info("Upload an expression file and a phenotype file to begin.")
        return

    try:
        annotated = session.annotated()
    except AnalysisInputError as e:
        st.error(str(e))
        return

    audit = annotated.audit()
    c1, c2, c3 = st.columns(3)
    c1.metric("Matched samples", audit["n_matched"])
    c2.metric("Expression only", audit["n_expression_only"])
    c3.metric("Phenotype only", audit["n_phenotype_only"])
    st.dataframe(
        pd.crosstab(annotated.phenotypes["gender"], annotated.phenotypes["status"]),
        use_container_width=True,
    )


def _deg_tab(session: AnalysisSession, config: AnalysisConfig, viz: DifferentialVisualizer) -> None:
    if not session.ready:
        st.info("Upload both files first.")
        return

    t = config.thresholds
    columns = st.columns(len(SEXES))
    for column, sex in zip(columns, SEXES):
        with column:
            st.subheader(sex.capitalize())
            try:
                result = session.differential(sex, logfc=t.logfc, adjpval=t.adjpval)
            except AnalysisInputError as e:
                st.error(str(e))
                continue

            st.write(f"**{len(result)}** DEGs ({result.n_up} up, {result.n_down} down in RA)")
            st.dataframe(result.table, use_container_width=True, height=300)
            st.download_button(
                f"Download {sex} DEGs (CSV)", _csv_bytes(result.table),
                file_name=f"deg_{sex}.csv", mime="text/csv", key=f"dl_deg_{sex}",
            )

            volcano = viz.plot_volcano(result)
            st.pyplot(volcano.fig)
            st.download_button(
                f"Download {sex} volcano plot (PNG)", volcano.to_png_bytes(),
                file_name=f"volcano_{sex}.png", mime="image/png", key=f"dl_volcano_{sex}",
            )
            volcano.close()

    st.subheader("Summary")
    try:
        summary = session.summary(logfc=t.logfc, adjpval=t.adjpval)
    except AnalysisInputError as e:
        st.error(str(e))
        return
    st.dataframe(summary, use_container_width=True)
    st.download_button("Download summary (CSV)", _csv_bytes(summary, index=True),
                       file_name="summary.csv", mime="text/csv", key="dl_summary")


def _workflow_controls(name: str, config: AnalysisConfig) -> tuple[str, bool]:
    c1, c2 = st.columns(2)
    sex = c1.selectbox("Sex", SEXES, key=f"{name}_sex")
    degs_only = c2.checkbox("DEGs only", value=config.selection.degs_only, key=f"{name}_degs_only")
    return sex, degs_only


def _workflow_tab(
    name: str,
    label: str,
    session: AnalysisSession,
    config: AnalysisConfig,
    viz: DifferentialVisualizer,
) -> None:
    if not session.ready:
        st.info("Upload both files first.")
        return

    t, s = config.thresholds, config.selection
    sex, degs_only = _workflow_controls(name, config)
    params = dict(sex=sex, degs_only=degs_only, logfc=t.logfc, adjpval=t.adjpval)
    if name == "boruta":
        params.update(max_iter=s.boruta_max_iter, alpha=s.boruta_alpha)
        runner = session.boruta
    elif name == "elastic_net":
        params.update(l1_ratio=s.l1_ratio, cv_folds=s.cv_folds)
        runner = session.elastic_net
    else:
        params.update(sizes=tuple(s.rfe_sizes), cv_folds=s.cv_folds)
        runner = session.rfe

    result = session.latest(name, **params)
    if result is None and st.button(f"Run {label}", type="primary", key=f"run_{name}"):
        with st.spinner(f"Running {label}..."):
            try:
                result = runner(**params)
            except AnalysisInputError as e:
                st.error(str(e))
                return

    if result is None:
        st.caption("Not run yet for these settings.")
        return

    table = result.to_frame()
    if name == "boruta":
        st.write(f"**{result.n_confirmed}** confirmed genes, {len(result.tentative)} tentative")
    elif name == "elastic_net":
        st.write(f"**{len(table)}** nonzero coefficients at C = {result.C:.4g} "
                 f"(l1_ratio {result.l1_ratio}, {result.n_folds}-fold CV)")
    else:
        st.write(f"Selected **{result.selected_size}** genes ({result.n_folds}-fold CV)")
        profile = viz.plot_rfe_profile(result)
        st.pyplot(profile.fig)
        profile.close()

    st.dataframe(table, use_container_width=True)
    st.download_button(f"Download {label} selection (CSV)", _csv_bytes(table),
                       file_name=f"{name}_{sex}.csv", mime="text/csv", key=f"dl_{name}")

    if len(table):
        boxplot = viz.plot_expression_boxplots(session.annotated(), table["feature"].tolist())
        st.pyplot(boxplot.fig)
        boxplot.close()


def main() -> None:
    st.set_page_config(page_title="Sex-stratified DEG analysis", layout="wide")
    st.title("Sex-stratified differential expression")
    st.caption(
        "Rheumatoid arthritis vs control, analysed separately in female and male samples, "
        "with Boruta, elastic-net and RFE feature selection."
    )

    defaults = _config()
    session = _session(defaults)
    expr_file, pheno_file, config = _sidebar(defaults)
    _sync_uploads(session, expr_file, pheno_file, config)

    viz = DifferentialVisualizer(style="notebook")
    tabs = st.tabs(["Data", "Differential expression", "Boruta", "Elastic net", "RFE"])

    with tabs[0]:
        _data_tab(session)
    with tabs[1]:
        _deg_tab(session, config, viz)
    with tabs[2]:
        _workflow_tab("boruta", "Boruta", session, config, viz)
    with tabs[3]:
        _workflow_tab("elastic_net", "elastic net", session, config, viz)
    with tabs[4]:
        _workflow_tab("rfe", "RFE", session, config, viz)


if __name__ == "__main__":
    main()
