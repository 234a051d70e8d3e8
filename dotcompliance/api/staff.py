from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session, joinedload
from dotcompliance.db.session import get_db
from dotcompliance.core.auth import check_access, get_scope
from dotcompliance.core.errors import GrantError, OrganizationNotFound, error_for_reason, to_http_exception
from dotcompliance.core.policy import Operation, authorize_role_change
from dotcompliance.core.scope import Scope
from dotcompliance.models.models import Party, Role, RoleKind, Staff
from dotcompliance.schemas.schemas import StaffCreate, StaffResponse, StaffUpdate
from dotcompliance.services import grants
from dotcompliance.services.party_graph import active_role_filter

router = APIRouter(prefix="/api/organizations/{org_id}/staff", tags=["staff"])


def _member_party_ids(org_id: str):
    return select(Role.party_id).where(Role.organization_id == org_id, *active_role_filter())


def _staff_response(staff: Staff) -> StaffResponse:
    person = staff.party.person if staff.party else None
    return StaffResponse(
        id=staff.id, party_id=staff.party_id,
        first_name=person.first_name if person else None,
        last_name=person.last_name if person else None,
        position=staff.position, department=staff.department,
        can_sign_cafs=bool(staff.can_sign_cafs), can_approve_cafs=bool(staff.can_approve_cafs),
        is_active=bool(staff.is_active),
    )


@router.get("", response_model=list[StaffResponse])
def list_staff(org_id: str, scope: Scope = Depends(get_scope), db: Session = Depends(get_db)):
    check_access(scope, Operation.VIEW_ORGANIZATION, org_id)
    rows = (
        db.query(Staff)
        .options(joinedload(Staff.party).joinedload(Party.person))
        .filter(Staff.party_id.in_(_member_party_ids(org_id)))
        .order_by(Staff.department, Staff.position)
        .all()
    )
    return [_staff_response(s) for s in rows]


@router.post("", response_model=StaffResponse)
def create_staff(org_id: str, data: StaffCreate, scope: Scope = Depends(get_scope), db: Session = Depends(get_db)):
    check_access(scope, Operation.GRANT_ROLE, org_id)
    decision = authorize_role_change(scope, RoleKind.STAFF, org_id)
    if not decision.allow:
        raise to_http_exception(error_for_reason(decision.reason))
    try:
        staff = grants.create_staff(
            db, org_id, data.party_id, actor=scope.principal_id,
            position=data.position, department=data.department,
            can_sign_cafs=data.can_sign_cafs, can_approve_cafs=data.can_approve_cafs,
        )
    except (GrantError, OrganizationNotFound) as e:
        raise to_http_exception(e)
    return _staff_response(staff)


@router.put("/{staff_id}", response_model=StaffResponse)
def update_staff(org_id: str, staff_id: str, data: StaffUpdate,
                 scope: Scope = Depends(get_scope), db: Session = Depends(get_db)):
    check_access(scope, Operation.GRANT_ROLE, org_id)
    staff = (
        db.query(Staff)
        .filter(Staff.id == staff_id, Staff.party_id.in_(_member_party_ids(org_id)))
        .first()
    )
    if not staff:
        raise HTTPException(status_code=404, detail="Staff member not found")
    staff = grants.update_staff(db, staff, org_id, actor=scope.principal_id, **data.model_dump())
    return _staff_response(staff)
