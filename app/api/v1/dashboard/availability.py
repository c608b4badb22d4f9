# ============================================================================
# app/api/v1/dashboard/availability.py
# Rule store management for businesses and employees - thin HTTP layer
# ============================================================================
from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.orm import Session

from app.api.dependencies import get_business_scope
from app.config.database import get_db
from app.core.exceptions import NotFoundError
from app.models.availability import ResourceKind
from app.schemas.availability import BreakCreate, SpecialDateUpsert, WeeklyRuleCreate, WeeklyRuleUpdate
from app.services.availability.rule_store import RuleStore
from app.services.resource.resource_service import Resource, ResourceService

router = APIRouter(prefix="/availability", tags=["dashboard-availability"])


def scoped_resource(
        resource_kind: ResourceKind = Path(..., description="business or employee"),
        resource_id: UUID = Path(...),
        business_id: UUID = Depends(get_business_scope),
        db: Session = Depends(get_db)
) -> Resource:
    """Resource from the path, only if it belongs to the caller's business"""
    resource = ResourceService.get_resource(db, resource_kind, resource_id)
    if resource.business_id != business_id:
        raise NotFoundError("Resource not found", {"resource_id": str(resource_id)})
    return resource


# ---------------------------------------------------------------------------
# Weekly rules
# ---------------------------------------------------------------------------

@router.get("/{resource_kind}/{resource_id}/rules")
def list_rules(resource: Resource = Depends(scoped_resource), db: Session = Depends(get_db)):
    return {"rules": [r.to_dict() for r in RuleStore.list_weekly_rules(db, resource)]}


@router.post("/{resource_kind}/{resource_id}/rules", status_code=status.HTTP_201_CREATED)
def create_rule(
        request: WeeklyRuleCreate,
        resource: Resource = Depends(scoped_resource),
        db: Session = Depends(get_db)
):
    return RuleStore.create_weekly_rule(db, resource, request).to_dict()


@router.patch("/{resource_kind}/{resource_id}/rules/{rule_id}")
def update_rule(
        request: WeeklyRuleUpdate,
        rule_id: UUID,
        resource: Resource = Depends(scoped_resource),
        db: Session = Depends(get_db)
):
    return RuleStore.update_weekly_rule(db, resource, rule_id, request).to_dict()


@router.delete("/{resource_kind}/{resource_id}/rules/{rule_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_rule(rule_id: UUID, resource: Resource = Depends(scoped_resource), db: Session = Depends(get_db)):
    RuleStore.delete_weekly_rule(db, resource, rule_id)


# ---------------------------------------------------------------------------
# Breaks
# ---------------------------------------------------------------------------

@router.get("/{resource_kind}/{resource_id}/rules/{rule_id}/breaks")
def list_breaks(rule_id: UUID, resource: Resource = Depends(scoped_resource), db: Session = Depends(get_db)):
    return {"breaks": [b.to_dict() for b in RuleStore.list_breaks(db, resource, rule_id)]}


@router.post("/{resource_kind}/{resource_id}/rules/{rule_id}/breaks", status_code=status.HTTP_201_CREATED)
def create_break(
        request: BreakCreate,
        rule_id: UUID,
        resource: Resource = Depends(scoped_resource),
        db: Session = Depends(get_db)
):
    return RuleStore.create_break(db, resource, rule_id, request).to_dict()


@router.put("/{resource_kind}/{resource_id}/rules/{rule_id}/breaks/{break_id}")
def update_break(
        request: BreakCreate,
        rule_id: UUID,
        break_id: UUID,
        resource: Resource = Depends(scoped_resource),
        db: Session = Depends(get_db)
):
    return RuleStore.update_break(db, resource, rule_id, break_id, request).to_dict()


@router.delete(
    "/{resource_kind}/{resource_id}/rules/{rule_id}/breaks/{break_id}",
    status_code=status.HTTP_204_NO_CONTENT
)
def delete_break(
        rule_id: UUID,
        break_id: UUID,
        resource: Resource = Depends(scoped_resource),
        db: Session = Depends(get_db)
):
    RuleStore.delete_break(db, resource, rule_id, break_id)


# ---------------------------------------------------------------------------
# Special dates
# ---------------------------------------------------------------------------

@router.get("/{resource_kind}/{resource_id}/special-dates")
def list_special_dates(
        start_date: Optional[date] = Query(None),
        end_date: Optional[date] = Query(None),
        resource: Resource = Depends(scoped_resource),
        db: Session = Depends(get_db)
):
    special_dates = RuleStore.list_special_dates(db, resource, start_date, end_date)
    return {"special_dates": [s.to_dict() for s in special_dates]}


@router.put("/{resource_kind}/{resource_id}/special-dates")
def upsert_special_date(
        request: SpecialDateUpsert,
        resource: Resource = Depends(scoped_resource),
        db: Session = Depends(get_db)
):
    """Create or replace the override for request.date"""
    return RuleStore.upsert_special_date(db, resource, request).to_dict()


@router.delete(
    "/{resource_kind}/{resource_id}/special-dates/{special_date_id}",
    status_code=status.HTTP_204_NO_CONTENT
)
def delete_special_date(
        special_date_id: UUID,
        resource: Resource = Depends(scoped_resource),
        db: Session = Depends(get_db)
):
    RuleStore.delete_special_date(db, resource, special_date_id)


@router.post("/employee/{employee_id}/copy-business-rules")
def copy_business_rules(
        employee_id: UUID,
        business_id: UUID = Depends(get_business_scope),
        db: Session = Depends(get_db)
):
    """Reset an employee's weekly hours to the business's"""
    resource = ResourceService.get_resource(db, ResourceKind.EMPLOYEE, employee_id)
    if resource.business_id != business_id:
        raise NotFoundError("Employee not found", {"employee_id": str(employee_id)})
    rules = RuleStore.copy_business_rules_to_employee(db, resource)
    return {"rules": [r.to_dict() for r in rules]}
