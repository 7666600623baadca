"""Tests for element classification (semester, type, academic level)."""

import pytest

from portal.services.classification import (
    ELEMENT_MATIERE,
    ELEMENT_MODULE,
    ELEMENT_SEMESTRE,
    UNKNOWN_LEVEL,
    academic_year_of,
    classify_element,
    detect_semester,
    detect_yearly_level,
    infer_element_type,
    session_type,
)


class TestDetectSemester:
    """Tests for detect_semester()."""

    @pytest.mark.parametrize("code, expected", [
        ("JMS3M01", 3),
        ("JMDS2X", 2),
        ("JLDN4A", 4),
        ("JLEGS5M1", 5),
        ("FDS7", 7),
        ("  jms1m02 ", 1),
        ("JMDS1M01", 1),
        ("JLDN3M02", 3),
        ("ECOS5", 5),
    ])
    def test_known_codes(self, code, expected):
        assert detect_semester(code) == expected

    def test_master_prefix_wins_over_generic_token(self):
        """JMS2 ... S6: the master rule applies first."""
        assert detect_semester("JMS2XS6") == 2

    def test_semester_token_followed_by_digit_is_ignored(self):
        assert detect_semester("ELS10") is None

    @pytest.mark.parametrize("code", [None, "", "ABC", "DRT1A"])
    def test_no_semester(self, code):
        assert detect_semester(code) is None


class TestDetectYearlyLevel:
    """Tests for detect_yearly_level()."""

    def test_level_in_code(self):
        assert detect_yearly_level("DRT1A") == "1A"
        assert detect_yearly_level("ECO0A3") == "3A"

    def test_accented_label(self):
        assert detect_yearly_level("JLPRE", "Première Année Licence") == "1A"
        assert detect_yearly_level("XYZ", "Deuxième année") == "2A"

    def test_semester_code_is_not_yearly(self):
        assert detect_yearly_level("JLS3", "Licence Fondamentale") is None

    def test_master_label(self):
        assert detect_yearly_level("ABC", "Master 2 droit") == "5A"

    def test_nothing_found(self):
        assert detect_yearly_level("ABC", "Droit civil") is None
        assert detect_yearly_level(None, None) is None


class TestInferElementType:
    """Tests for infer_element_type()."""

    def test_semester_nature(self):
        assert infer_element_type("X", "SEM", None) == ELEMENT_SEMESTRE
        assert infer_element_type("X", None, "S4") == ELEMENT_SEMESTRE

    def test_module_nature(self):
        assert infer_element_type("X", "MOD") == ELEMENT_MODULE

    def test_other_nature_is_subject(self):
        assert infer_element_type("X", "MAT") == ELEMENT_MATIERE

    def test_code_fallback(self):
        assert infer_element_type("JLMOD1") == ELEMENT_MODULE
        assert infer_element_type("UE12") == ELEMENT_SEMESTRE
        assert infer_element_type("ZZZ") == ELEMENT_MATIERE


class TestClassifyElement:
    """Tests for classify_element()."""

    def test_semester_module(self):
        result = classify_element("JMS3M01", "Droit civil", "MOD")
        assert result.semester_number == 3
        assert result.element_type == ELEMENT_MODULE
        assert result.academic_level == "S3"
        assert result.is_yearly_element is False

    def test_yearly_element(self):
        result = classify_element("DRT1A", "Droit 1ère année", "ANN")
        assert result.semester_number == 1
        assert result.element_type == ELEMENT_SEMESTRE
        assert result.academic_level == "1A"
        assert result.is_yearly_element is True

    def test_semester_from_period_code(self):
        result = classify_element("ELP01", "Bloc", "SEM", "S4")
        assert result.semester_number == 4
        assert result.academic_level == "S4"

    def test_unknown(self):
        result = classify_element("ZZZ")
        assert result.semester_number is None
        assert result.academic_level == UNKNOWN_LEVEL
        assert result.is_yearly_element is False


class TestSessionHelpers:
    """Tests for session_type() and academic_year_of()."""

    @pytest.mark.parametrize("semester, expected", [
        (1, "automne"), (3, "automne"), (2, "printemps"), (6, "printemps"), (None, "unknown"), (0, "unknown"),
    ])
    def test_session_type(self, semester, expected):
        assert session_type(semester) == expected

    @pytest.mark.parametrize("semester, expected", [(1, 1), (2, 1), (3, 2), (6, 3), (None, 0)])
    def test_academic_year_of(self, semester, expected):
        assert academic_year_of(semester) == expected
