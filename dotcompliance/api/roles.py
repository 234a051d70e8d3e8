from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from dotcompliance.db.session import get_db
from dotcompliance.core.auth import check_access, get_scope
from dotcompliance.core.errors import GrantError, OrganizationNotFound, error_for_reason, to_http_exception
from dotcompliance.core.policy import Operation, authorize_role_change
from dotcompliance.core.scope import Scope
from dotcompliance.models.models import Role, RoleKind
from dotcompliance.schemas.schemas import RoleDeactivate, RoleGrant, RoleResponse
from dotcompliance.services import grants

router = APIRouter(prefix="/api/roles", tags=["roles"])


def _role_response(role: Role) -> RoleResponse:
    return RoleResponse(
        id=role.id, party_id=role.party_id, role_type=role.role_type.value,
        organization_id=role.organization_id, location_id=role.location_id,
        status=role.status, is_active=role.is_active,
        start_date=role.start_date, end_date=role.end_date,
    )


def _check_role_change(scope: Scope, kind: RoleKind, organization_id: str | None) -> None:
    decision = authorize_role_change(scope, kind, organization_id)
    if not decision.allow:
        raise to_http_exception(error_for_reason(decision.reason))


@router.post("", response_model=RoleResponse)
def grant(data: RoleGrant, scope: Scope = Depends(get_scope), db: Session = Depends(get_db)):
    check_access(scope, Operation.GRANT_ROLE, data.organization_id, target_location_id=data.location_id)
    try:
        kind = RoleKind(data.role_type)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid role type")
    _check_role_change(scope, kind, data.organization_id)
    try:
        role = grants.grant_role(db, data.party_id, kind, data.organization_id,
                                 data.location_id, actor=scope.principal_id)
    except (GrantError, OrganizationNotFound) as e:
        raise to_http_exception(e)
    return _role_response(role)


@router.post("/{role_id}/deactivate", response_model=RoleResponse)
def deactivate(role_id: str, data: RoleDeactivate, scope: Scope = Depends(get_scope), db: Session = Depends(get_db)):
    role = db.query(Role).filter(Role.id == role_id).first()
    if not role:
        raise HTTPException(status_code=404, detail="Role not found")
    check_access(scope, Operation.REVOKE_ROLE, role.organization_id, target_location_id=role.location_id)
    _check_role_change(scope, role.role_type, role.organization_id)
    try:
        role = grants.deactivate_role(db, role.id, end_date=data.end_date, reason=data.reason,
                                      actor=scope.principal_id)
    except GrantError as e:
        raise to_http_exception(e)
    return _role_response(role)
