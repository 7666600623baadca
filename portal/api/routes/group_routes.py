"""
Grouping Rule Routes (admin)

GET /admin/groups/rules - Rules with their student counts
GET /admin/groups/rules/{id}/students - Students placed by one rule
POST /admin/groups/rules - Create a rule
DELETE /admin/groups/rules/{id} - Delete a rule
GET /admin/groups/stats/breakdown - Per element counts for a module pattern
GET /admin/groups/stats/full-export - Counts for every rule and element
GET /admin/groups/resolve - Students of a module for a group specifier
"""

from typing import Optional

from fastapi import APIRouter, HTTPException, Depends, Query

from portal.db.postgres import Database, get_database
from portal.core.auth import get_current_admin
from portal.core.config import get_settings
from portal.services.group_resolver import GroupResolver, GroupRuleService, parse_group_specifier
from portal.schemas.schemas import (
    GroupingRuleCreate, GroupingRuleResponse, GroupResolutionResponse,
    ResolvedStudentResponse, MessageResponse
)

router = APIRouter(prefix="/admin/groups", tags=["Groups"])


def _rules(db: Database) -> GroupRuleService:
    return GroupRuleService(db, get_settings().current_academic_year)


@router.get("/rules")
async def list_rules(admin: dict = Depends(get_current_admin), db: Database = Depends(get_database)):
    return _rules(db).rules_with_counts()


@router.get("/rules/{rule_id}/students")
async def rule_students(rule_id: int, admin: dict = Depends(get_current_admin), db: Database = Depends(get_database)):
    service = _rules(db)
    rule = service.get_rule(rule_id)
    if not rule:
        raise HTTPException(status_code=404, detail="Rule not found")

    students = service.rule_students(rule_id)
    return {"rule": rule, "students": students, "count": len(students)}


@router.post("/rules", response_model=GroupingRuleResponse, status_code=201)
async def create_rule(
    data: GroupingRuleCreate,
    admin: dict = Depends(get_current_admin),
    db: Database = Depends(get_database)
):
    fields = (data.module_pattern, data.group_name, data.range_start, data.range_end)
    if not all(f and f.strip() for f in fields):
        raise HTTPException(status_code=400, detail="All fields are required")

    rule = _rules(db).create_rule(*fields)
    return GroupingRuleResponse(**rule)


@router.delete("/rules/{rule_id}", response_model=MessageResponse)
async def delete_rule(rule_id: int, admin: dict = Depends(get_current_admin), db: Database = Depends(get_database)):
    if not _rules(db).delete_rule(rule_id):
        raise HTTPException(status_code=404, detail="Rule not found")
    return MessageResponse(message="Rule deleted successfully")


@router.get("/stats/breakdown")
async def group_breakdown(
    pattern: Optional[str] = None,
    admin: dict = Depends(get_current_admin),
    db: Database = Depends(get_database)
):
    if not pattern:
        raise HTTPException(status_code=400, detail="Pattern required")
    return _rules(db).breakdown(pattern)


@router.get("/stats/full-export")
async def full_export(admin: dict = Depends(get_current_admin), db: Database = Depends(get_database)):
    return _rules(db).full_export()


@router.get("/resolve", response_model=GroupResolutionResponse)
async def resolve_group(
    module: str = Query(..., min_length=1),
    group: str = "Tous",
    year: Optional[int] = None,
    admin: dict = Depends(get_current_admin),
    db: Database = Depends(get_database)
):
    """Preview who an exam for (module, group) would convoke."""
    academic_year = year if year is not None else get_settings().current_academic_year
    students = GroupResolver(db).resolve(module, group, academic_year=academic_year)
    return GroupResolutionResponse(
        module_code=module,
        group=group,
        groups=parse_group_specifier(group),
        count=len(students),
        students=[ResolvedStudentResponse(**s.to_dict()) for s in students],
    )
