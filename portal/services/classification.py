"""
Element Classification

PURPOSE:
Infer, from Apogee element codes and labels, the semester number, the
element type (SEMESTRE / MODULE / MATIERE) and the academic level
(yearly 1A..5A or semester S1..S12) of a pedagogical element.

One set of rules, used everywhere:
- sync_service: classify elements and pedagogical situation rows on import
- backfill: recompute classification for rows already stored
- grades: place grades with no stored semester

All functions are pure (no database access).
"""

import math
import re
import unicodedata
from dataclasses import dataclass
from typing import Optional


ELEMENT_SEMESTRE = "SEMESTRE"
ELEMENT_MODULE = "MODULE"
ELEMENT_MATIERE = "MATIERE"

UNKNOWN_LEVEL = "Unknown"

# Yearly level -> first semester of that year
LEVEL_FIRST_SEMESTER = {"1A": 1, "2A": 3, "3A": 5, "4A": 7, "5A": 9}

_MASTER_SEMESTER = re.compile(r"^JMD?S([1-4])")
_LICENCE_DN_SEMESTER = re.compile(r"^JLDN([1-6])")
_LICENCE_PREFIX = re.compile(r"^JL[^D]")
_SEMESTER_DIGITS = re.compile(r"S?(\d+)")
_SEMESTER_TOKEN = re.compile(r"S(\d+)")

# (level, label fragments) checked in order, on accent-stripped lowercase text
_YEAR_LABELS = [
    ("1A", ("premiere annee", "1ere annee", "first year")),
    ("2A", ("deuxieme annee", "2eme annee", "second year")),
    ("3A", ("troisieme annee", "3eme annee", "third year")),
    ("4A", ("quatrieme annee", "4eme annee", "fourth year")),
    ("5A", ("cinquieme annee", "5eme annee", "fifth year")),
]


@dataclass(frozen=True)
class Classification:
    semester_number: Optional[int]
    element_type: str
    academic_level: str
    is_yearly_element: bool


def _normalize_label(label: Optional[str]) -> str:
    """Lowercase and strip accents: 'Première Année' -> 'premiere annee'."""
    if not label:
        return ""
    decomposed = unicodedata.normalize("NFKD", label.lower())
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def detect_semester(code: Optional[str]) -> Optional[int]:
    """
    Semester number from an element code, or None.

    Rules, first match wins:
    1. master codes JMS<n> / JMDS<n>, n in 1..4
    2. licence codes JLDN<n>, n in 1..6
    3. other licence codes JL...S<n>, n in 1..6
    4. any S<n> token not followed by a digit, n in 1..8
    """
    if not code:
        return None
    code = code.strip().upper()

    match = _MASTER_SEMESTER.match(code)
    if match:
        return int(match.group(1))

    match = _LICENCE_DN_SEMESTER.match(code)
    if match:
        return int(match.group(1))

    if _LICENCE_PREFIX.match(code):
        for n in range(1, 7):
            if re.match(rf"^JL[^D].*S{n}", code):
                return n

    for n in range(1, 9):
        if re.search(rf"S{n}(?![0-9])", code):
            return n

    return None


def detect_yearly_level(code: Optional[str], label: Optional[str] = None) -> Optional[str]:
    """
    Yearly academic level ('1A'..'5A') from a code and/or label, or None.
    """
    upper = (code or "").strip().upper()
    text = _normalize_label(label)

    for year in range(1, 6):
        if f"{year}A" in upper or f"0A{year}" in upper:
            return f"{year}A"

    for level, fragments in _YEAR_LABELS:
        if any(fragment in text for fragment in fragments):
            return level

    # VET (version d'etape) codes carry the year in the label
    if "VET" in upper:
        for year, word in ((1, "premiere"), (2, "deuxieme"), (3, "troisieme")):
            if str(year) in text or word in text:
                return f"{year}A"

    if _SEMESTER_TOKEN.search(upper):
        return None

    if "licence" in text or re.search(r"\bl[1-3]\b", text):
        for year in (1, 2, 3):
            if f"l{year}" in text or str(year) in text:
                return f"{year}A"
    if "master" in text or re.search(r"\bm[12]\b", text):
        if "m1" in text or "1" in text:
            return "4A"
        if "m2" in text or "2" in text:
            return "5A"

    return None


def _nature_semester(nature: Optional[str]) -> Optional[int]:
    """Semester digit of a semester-like nature/period code ('S3', 'SM2', 'S02')."""
    if not nature:
        return None
    nature = nature.strip().upper()
    if not (nature.startswith("S") or "SM" in nature):
        return None
    match = _SEMESTER_DIGITS.search(nature)
    return int(match.group(1)) if match else None


def _is_semester_nature(nature: Optional[str]) -> bool:
    if not nature:
        return False
    nature = nature.strip().upper()
    return nature.startswith("S") or "SM" in nature


def infer_element_type(cod_elp: Optional[str], cod_nel: Optional[str] = None,
                       cod_pel: Optional[str] = None) -> str:
    if _is_semester_nature(cod_nel) or _is_semester_nature(cod_pel):
        return ELEMENT_SEMESTRE
    if cod_nel:
        return ELEMENT_MODULE if cod_nel.strip().upper() == "MOD" else ELEMENT_MATIERE

    # No nature code (placeholder elements): look at the code itself
    upper = (cod_elp or "").upper()
    if "MOD" in upper or "M0" in upper:
        return ELEMENT_MODULE
    if "UE" in upper or "SM" in upper:
        return ELEMENT_SEMESTRE
    return ELEMENT_MATIERE


def classify_element(
    cod_elp: Optional[str],
    lib_elp: Optional[str] = None,
    cod_nel: Optional[str] = None,
    cod_pel: Optional[str] = None,
) -> Classification:
    """
    Full classification of one element.

    Semester: code cascade, then the nature/period code digit, then the
    first semester of a yearly level. Elements only placed through their
    yearly level are grouping elements (SEMESTRE).
    """
    element_type = infer_element_type(cod_elp, cod_nel, cod_pel)
    yearly_level = detect_yearly_level(cod_elp, lib_elp)

    semester = detect_semester(cod_elp)
    if semester is None:
        semester = _nature_semester(cod_nel) or _nature_semester(cod_pel)
    if semester is None and yearly_level:
        semester = LEVEL_FIRST_SEMESTER[yearly_level]
        element_type = ELEMENT_SEMESTRE

    if yearly_level:
        return Classification(semester, element_type, yearly_level, True)
    if semester is not None:
        return Classification(semester, element_type, f"S{semester}", False)
    return Classification(None, element_type, UNKNOWN_LEVEL, False)


def session_type(semester_number: Optional[int]) -> str:
    """Odd semesters belong to the autumn session, even ones to spring."""
    if not semester_number:
        return "unknown"
    return "automne" if semester_number % 2 == 1 else "printemps"


def academic_year_of(semester_number: Optional[int]) -> int:
    """S1,S2 -> 1; S3,S4 -> 2; ... 0 when unknown."""
    if not semester_number:
        return 0
    return math.ceil(semester_number / 2)
