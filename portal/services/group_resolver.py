"""
Exam Group Resolver

PURPOSE:
Decide which students sit an exam, given a module code and a free-text
group specifier such as "G1 (matin) + G2".

HOW IT WORKS:
1. Parse the specifier into group names ("Tous" means everybody)
2. Load candidate students: pedagogical-situation rows whose element code
   matches the module code
3. Load the grouping rules of the requested groups
4. Keep a student when at least one rule matches both the element code
   (ILIKE pattern) and the surname (alphabetic range)

NAME RANGES:
Surnames are compared uppercased, code point by code point (the same
order as Postgres COLLATE "C" on UTF-8 text). The end bound is padded with
"ZZZZZZ" so that range_end "B" covers every surname starting with "B".

The admin statistics (per-rule counts, breakdowns, exports) run the same
range predicate in SQL, see RANGE_PREDICATE_SQL.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from portal.core.logging import get_logger

logger = get_logger(__name__)

ALL_GROUPS = "TOUS"
RANGE_END_PADDING = "ZZZZZZ"

_ANNOTATION = re.compile(r"\(.*\)$")

# Shared SQL form of name_in_range(), for queries joining
# pedagogical_situation ps with grouping_rules gr
RANGE_PREDICATE_SQL = """
    UPPER(ps.lib_nom_pat_ind) COLLATE "C" >= UPPER(gr.range_start) COLLATE "C"
    AND UPPER(ps.lib_nom_pat_ind) COLLATE "C" <= (UPPER(gr.range_end) || 'ZZZZZZ') COLLATE "C"
"""

# Continuous-assessment elements (codes ending in CC) never get exam groups
EXCLUDE_CC_SQL = "ps.cod_elp NOT LIKE '%CC'"


@dataclass
class GroupingRule:
    module_pattern: str
    group_name: str
    range_start: str
    range_end: str
    id: Optional[int] = None

    @classmethod
    def from_row(cls, row: dict) -> "GroupingRule":
        return cls(
            id=row.get("id"),
            module_pattern=row["module_pattern"],
            group_name=row["group_name"],
            range_start=row["range_start"],
            range_end=row["range_end"],
        )

    def matches(self, cod_elp: str, surname: Optional[str]) -> bool:
        return like_match(self.module_pattern, cod_elp) and name_in_range(
            surname, self.range_start, self.range_end
        )


@dataclass
class ResolvedStudent:
    cod_etu: str
    lib_nom_pat_ind: Optional[str]
    lib_pr1_ind: Optional[str]
    lib_elp: Optional[str] = None
    groups: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "cod_etu": self.cod_etu,
            "lib_nom_pat_ind": self.lib_nom_pat_ind,
            "lib_pr1_ind": self.lib_pr1_ind,
            "lib_elp": self.lib_elp,
            "groups": self.groups,
        }


def parse_group_specifier(specifier: Optional[str]) -> Optional[List[str]]:
    """
    Split a group specifier into group names.

    "G1 (matin) + G2" -> ["G1", "G2"]
    None, "", "Tous", "G1 + Tous" -> None (no filtering)
    """
    if specifier is None or not specifier.strip():
        return None

    groups = []
    for token in specifier.split("+"):
        name = _ANNOTATION.sub("", token.strip()).strip()
        if not name:
            continue
        if name.upper() == ALL_GROUPS:
            return None
        if name not in groups:
            groups.append(name)
    return groups or None


def _like_to_regex(pattern: str) -> "re.Pattern":
    parts = []
    escaped = False
    for ch in pattern:
        if escaped:
            parts.append(re.escape(ch))
            escaped = False
        elif ch == "\\":
            escaped = True
        elif ch == "%":
            parts.append(".*")
        elif ch == "_":
            parts.append(".")
        else:
            parts.append(re.escape(ch))
    if escaped:
        parts.append(re.escape("\\"))
    return re.compile("".join(parts), re.IGNORECASE | re.DOTALL)


def like_match(pattern: Optional[str], value: Optional[str]) -> bool:
    """SQL ILIKE on trimmed operands: % = any run, _ = one char, \\ escapes."""
    if pattern is None or value is None:
        return False
    return _like_to_regex(pattern.strip()).fullmatch(value.strip()) is not None


def name_in_range(surname: Optional[str], range_start: str, range_end: str) -> bool:
    """Inclusive alphabetic range check in byte order."""
    if not surname:
        return False
    name = surname.strip().upper()
    return range_start.strip().upper() <= name <= range_end.strip().upper() + RANGE_END_PADDING


def matching_groups(rules: Iterable[GroupingRule], cod_elp: str, surname: Optional[str]) -> List[str]:
    """Names of the groups whose rules place this student, sorted."""
    return sorted({rule.group_name for rule in rules if rule.matches(cod_elp, surname)})


class GroupResolver:
    """
    Resolves exam groups against the Postgres cache.

    Usage:
        resolver = GroupResolver(db)
        students = resolver.resolve("JLS3M01%", "G1 + G2")
    """

    def __init__(self, db):
        self.db = db

    def _load_candidates(self, module_code: str, academic_year: Optional[int]) -> List[dict]:
        sql = """
            SELECT DISTINCT ps.cod_etu, ps.lib_nom_pat_ind, ps.lib_pr1_ind, ps.cod_elp, ps.lib_elp
            FROM pedagogical_situation ps
            WHERE TRIM(ps.cod_elp) ILIKE TRIM(:module_code)
        """
        params = {"module_code": module_code}
        if academic_year is not None:
            sql += " AND ps.daa_uni_con = :year"
            params["year"] = academic_year
        return self.db.execute_raw_sql(sql, params)

    def _load_rules(self, groups: List[str]) -> List[GroupingRule]:
        rows = self.db.execute_raw_sql(
            """
            SELECT id, module_pattern, group_name, range_start, range_end
            FROM grouping_rules
            WHERE group_name = ANY(:groups)
            ORDER BY group_name, range_start
            """,
            {"groups": list(groups)},
        )
        return [GroupingRule.from_row(row) for row in rows]

    def resolve(
        self,
        module_code: str,
        group_spec: Optional[str] = None,
        academic_year: Optional[int] = None,
    ) -> List[ResolvedStudent]:
        """
        Distinct students of a module restricted to the given groups.

        A student enrolled in several matching elements, or placed by
        several groups, appears once with all of their groups.
        """
        groups = parse_group_specifier(group_spec)
        candidates = self._load_candidates(module_code, academic_year)

        rules: List[GroupingRule] = []
        if groups is not None:
            rules = self._load_rules(groups)
            if not rules:
                logger.info("no_grouping_rules", module_code=module_code, groups=groups)
                return []

        students: Dict[str, ResolvedStudent] = {}
        for row in candidates:
            if groups is None:
                placed: List[str] = []
            else:
                placed = matching_groups(rules, row["cod_elp"], row["lib_nom_pat_ind"])
                if not placed:
                    continue

            student = students.get(row["cod_etu"])
            if student is None:
                student = ResolvedStudent(
                    cod_etu=row["cod_etu"],
                    lib_nom_pat_ind=row["lib_nom_pat_ind"],
                    lib_pr1_ind=row["lib_pr1_ind"],
                    lib_elp=row.get("lib_elp"),
                )
                students[row["cod_etu"]] = student
            student.groups = sorted(set(student.groups) | set(placed))

        resolved = sorted(
            students.values(),
            key=lambda s: ((s.lib_nom_pat_ind or "").upper(), (s.lib_pr1_ind or "").upper(), s.cod_etu),
        )
        logger.info(
            "groups_resolved",
            module_code=module_code,
            groups=groups or ALL_GROUPS,
            candidates=len(candidates),
            resolved=len(resolved),
        )
        return resolved


# ============================================================
# RULE MANAGEMENT + STATISTICS (admin screens)
# ============================================================

class GroupRuleService:
    """Grouping rule CRUD, plus counts per rule, element and group for one academic year."""

    def __init__(self, db, academic_year: int):
        self.db = db
        self.academic_year = academic_year

    def rules_with_counts(self) -> List[dict]:
        return self.db.execute_raw_sql(
            f"""
            SELECT gr.*,
                (
                    SELECT COUNT(DISTINCT ps.cod_etu)
                    FROM pedagogical_situation ps
                    WHERE ps.cod_elp ILIKE gr.module_pattern
                      AND ps.daa_uni_con = :year
                      AND {EXCLUDE_CC_SQL}
                      AND {RANGE_PREDICATE_SQL}
                ) AS student_count
            FROM grouping_rules gr
            ORDER BY gr.module_pattern, gr.group_name
            """,
            {"year": self.academic_year},
        )

    def get_rule(self, rule_id: int) -> Optional[dict]:
        rows = self.db.execute_raw_sql("SELECT * FROM grouping_rules WHERE id = :id", {"id": rule_id})
        return rows[0] if rows else None

    def create_rule(self, module_pattern: str, group_name: str, range_start: str, range_end: str) -> dict:
        """Patterns and bounds are stored uppercased, the group name as given."""
        rows = self.db.execute_raw_sql(
            """
            INSERT INTO grouping_rules (module_pattern, group_name, range_start, range_end)
            VALUES (:module_pattern, :group_name, :range_start, :range_end)
            RETURNING *
            """,
            {
                "module_pattern": module_pattern.strip().upper(),
                "group_name": group_name.strip(),
                "range_start": range_start.strip().upper(),
                "range_end": range_end.strip().upper(),
            },
        )
        logger.info("grouping_rule_created", rule_id=rows[0]["id"], group_name=group_name)
        return rows[0]

    def delete_rule(self, rule_id: int) -> bool:
        rows = self.db.execute_raw_sql(
            "DELETE FROM grouping_rules WHERE id = :id RETURNING id", {"id": rule_id}
        )
        return bool(rows)

    def rule_students(self, rule_id: int) -> List[dict]:
        return self.db.execute_raw_sql(
            f"""
            SELECT DISTINCT ps.cod_etu, ps.lib_nom_pat_ind, ps.lib_pr1_ind, s.cin_ind, s.lib_etp
            FROM grouping_rules gr
            JOIN pedagogical_situation ps ON ps.cod_elp ILIKE gr.module_pattern
            LEFT JOIN students s ON ps.cod_etu = s.cod_etu
            WHERE gr.id = :id
              AND ps.daa_uni_con = :year
              AND {EXCLUDE_CC_SQL}
              AND {RANGE_PREDICATE_SQL}
            ORDER BY ps.lib_nom_pat_ind, ps.lib_pr1_ind
            """,
            {"id": rule_id, "year": self.academic_year},
        )

    def breakdown(self, pattern: str) -> List[dict]:
        """
        Per element code matching `pattern`: total students and count per group.
        """
        totals = self.db.execute_raw_sql(
            f"""
            SELECT ps.cod_elp, MAX(ps.lib_elp) AS lib_elp, COUNT(DISTINCT ps.cod_etu) AS total_count
            FROM pedagogical_situation ps
            WHERE ps.cod_elp ILIKE :pattern
              AND {EXCLUDE_CC_SQL}
              AND ps.daa_uni_con = :year
            GROUP BY ps.cod_elp
            """,
            {"pattern": pattern, "year": self.academic_year},
        )
        groups = self.db.execute_raw_sql(
            f"""
            SELECT ps.cod_elp, gr.group_name, COUNT(DISTINCT ps.cod_etu) AS group_count
            FROM pedagogical_situation ps
            JOIN grouping_rules gr ON gr.module_pattern = :pattern
            WHERE ps.cod_elp ILIKE :pattern
              AND {EXCLUDE_CC_SQL}
              AND ps.daa_uni_con = :year
              AND {RANGE_PREDICATE_SQL}
            GROUP BY ps.cod_elp, gr.group_name
            """,
            {"pattern": pattern, "year": self.academic_year},
        )
        return merge_breakdown(totals, groups)

    def full_export(self) -> List[dict]:
        return self.db.execute_raw_sql(
            f"""
            SELECT gr.module_pattern, ps.cod_elp, MAX(ps.lib_elp) AS lib_elp,
                   gr.group_name, COUNT(DISTINCT ps.cod_etu) AS student_count
            FROM grouping_rules gr
            JOIN pedagogical_situation ps ON ps.cod_elp ILIKE gr.module_pattern
            WHERE {EXCLUDE_CC_SQL}
              AND ps.daa_uni_con = :year
              AND {RANGE_PREDICATE_SQL}
            GROUP BY gr.module_pattern, ps.cod_elp, gr.group_name
            ORDER BY gr.module_pattern, ps.cod_elp, gr.group_name
            """,
            {"year": self.academic_year},
        )


def merge_breakdown(totals: List[dict], groups: List[dict]) -> List[dict]:
    """Join element totals with per-group counts; groups sorted by name, elements by code."""
    merged: Dict[str, dict] = {}
    for row in totals:
        merged[row["cod_elp"]] = {
            "cod_elp": row["cod_elp"],
            "lib_elp": row["lib_elp"],
            "total": int(row["total_count"]),
            "groups": [],
        }
    for row in groups:
        entry = merged.get(row["cod_elp"])
        if entry is not None:
            entry["groups"].append({"name": row["group_name"], "count": int(row["group_count"])})

    for entry in merged.values():
        entry["groups"].sort(key=lambda g: g["name"])
    return sorted(merged.values(), key=lambda e: e["cod_elp"])
