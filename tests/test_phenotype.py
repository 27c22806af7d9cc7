"""
Tests for phenotype loading: column inference, value canonicalisation and
row filtering.
"""

import io

import pandas as pd
import pytest

from sexdeg.core.errors import MissingColumnError
from sexdeg.io.phenotype import (
    CASE,
    CONTROL,
    ExplicitColumnInferencer,
    PatternColumnInferencer,
    canonicalize_sex,
    canonicalize_status,
    load_phenotypes,
    normalize_column_name,
)


def _upload(text: str, name: str = "pheno.csv") -> io.BytesIO:
    buffer = io.BytesIO(text.encode("utf-8"))
    buffer.name = name
    return buffer


class TestCanonicalisation:

    @pytest.mark.parametrize("raw, expected", [
        ("RA", CASE),
        (" ra ", CASE),
        ("Rheumatoid  Arthritis", CASE),
        ("Healthy", CONTROL),
        ("normal", CONTROL),
        ("Control", CONTROL),
        ("Osteoarthritis", "osteoarthritis"),
    ])
    def test_status(self, raw, expected):
        assert canonicalize_status(raw) == expected

    @pytest.mark.parametrize("raw, expected", [
        ("F", "female"),
        ("Female", "female"),
        ("m", "male"),
        ("MALE", "male"),
        ("unknown", "unknown"),
    ])
    def test_sex(self, raw, expected):
        assert canonicalize_sex(raw) == expected

    def test_missing_values(self):
        assert canonicalize_status(None) is None
        assert canonicalize_status("  ") is None
        assert canonicalize_sex(float("nan")) is None

    def test_normalize_column_name(self):
        assert normalize_column_name("  Disease  State ") == "disease_state"
        assert normalize_column_name("GENDER") == "gender"


class TestPatternColumnInferencer:

    def test_geo_style_headers(self):
        cols = PatternColumnInferencer().infer(pd.Index(["sample", "characteristics_gender", "disease_state"]))
        assert cols.sample == "sample"
        assert cols.sex == "characteristics_gender"
        assert cols.status == "disease_state"

    def test_first_match_wins(self):
        cols = PatternColumnInferencer().infer(pd.Index(["sample", "sex", "group", "diagnosis"]))
        assert cols.status == "group"

    def test_missing_sample_column(self):
        with pytest.raises(MissingColumnError, match="'sample'"):
            PatternColumnInferencer().infer(pd.Index(["id", "sex", "status"]))

    def test_missing_sex_column(self):
        with pytest.raises(MissingColumnError, match="sex column"):
            PatternColumnInferencer().infer(pd.Index(["sample", "status"]))

    def test_missing_status_column(self):
        with pytest.raises(MissingColumnError, match="status column"):
            PatternColumnInferencer().infer(pd.Index(["sample", "gender", "age"]))

    def test_provenance(self):
        provenance = PatternColumnInferencer().get_inference_provenance(
            pd.Index(["sample", "gender", "status"])
        )
        assert list(provenance["role"]) == ["sample", "sex", "status"]
        assert set(provenance["source"]) == {"PatternColumnInferencer"}


class TestExplicitColumnInferencer:

    def test_names_are_normalised(self):
        inferencer = ExplicitColumnInferencer(sample="Patient ID", sex="Donor Sex", status="Dx")
        cols = inferencer.infer(pd.Index(["patient_id", "donor_sex", "dx", "age"]))
        assert (cols.sample, cols.sex, cols.status) == ("patient_id", "donor_sex", "dx")

    def test_absent_column(self):
        with pytest.raises(MissingColumnError, match="status column 'dx'"):
            ExplicitColumnInferencer(sex="sex", status="dx").infer(pd.Index(["sample", "sex"]))


class TestLoadPhenotypes:

    def test_planted_study(self, phenotype_csv):
        pheno = load_phenotypes(phenotype_csv)

        assert pheno.index.name == "sample"
        assert len(pheno) == 20
        assert list(pheno.columns[:2]) == ["gender", "status"]
        assert "age" in pheno.columns
        assert pheno["gender"].value_counts().to_dict() == {"female": 10, "male": 10}
        assert pheno["status"].value_counts().to_dict() == {CONTROL: 10, CASE: 10}

    def test_sample_ids_cleaned(self):
        pheno = load_phenotypes(_upload("Sample,Sex,Status\nGSM-1,F,RA\n GSM_2 ,M,healthy\n"))
        assert list(pheno.index) == ["GSM1", "GSM2"]

    def test_rows_without_sex_or_status_dropped(self):
        pheno = load_phenotypes(_upload("sample,sex,status\nA,F,RA\nB,,RA\nC,M,\nD,M,control\n"))
        assert list(pheno.index) == ["A", "D"]

    def test_duplicate_samples(self):
        with pytest.warns(UserWarning, match="duplicate sample IDs"):
            pheno = load_phenotypes(_upload("sample,sex,status\nA,F,RA\nA,M,control\nB,M,RA\n"))
        assert pheno.loc["A", "gender"] == "female"

    def test_incomplete_duplicate_does_not_shadow_complete_row(self):
        pheno = load_phenotypes(_upload("sample,sex,status\nA,,RA\nA,M,control\nB,F,RA\n"))
        assert list(pheno.index) == ["A", "B"]
        assert pheno.loc["A", "gender"] == "male"
        assert pheno.loc["A", "status"] == "control"

    def test_explicit_columns(self):
        text = "sample,sex_at_birth,biological_sex,arm\nA,F,M,RA\nB,M,F,Healthy\n"
        pheno = load_phenotypes(
            _upload(text),
            inferencer=ExplicitColumnInferencer(sex="biological_sex", status="arm"),
        )
        assert list(pheno["gender"]) == ["male", "female"]
        assert list(pheno["status"]) == [CASE, CONTROL]
        assert "sex_at_birth" in pheno.columns

    def test_non_canonical_status_kept(self):
        pheno = load_phenotypes(_upload("sample,gender,status\nA,F,osteoarthritis\nB,M,RA\n"))
        assert pheno.loc["A", "status"] == "osteoarthritis"

    def test_missing_column(self):
        with pytest.raises(MissingColumnError):
            load_phenotypes(_upload("sample,age\nA,40\n"))

    def test_tab_separated(self):
        pheno = load_phenotypes(_upload("sample\tgender\tstatus\nA\tf\tra\n", name="pheno.tsv"))
        assert pheno.loc["A"].tolist()[:2] == ["female", CASE]
