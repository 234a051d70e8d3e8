from typing import Optional
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session, joinedload
from dotcompliance.db.session import get_db
from dotcompliance.core.auth import check_access, get_scope
from dotcompliance.core.errors import GrantError, OrganizationNotFound, to_http_exception
from dotcompliance.core.policy import Operation
from dotcompliance.core.scope import Scope
from dotcompliance.models.models import Party, Role, RoleKind
from dotcompliance.schemas.schemas import DriverCreate, DriverDeactivate, DriverResponse, RoleResponse
from dotcompliance.services import grants
from dotcompliance.services.party_graph import active_role_filter

router = APIRouter(prefix="/api/organizations/{org_id}/drivers", tags=["drivers"])


def _driver_response(party: Party, role: Role) -> DriverResponse:
    p = party.person
    return DriverResponse(
        id=p.id, party_id=party.id, first_name=p.first_name, last_name=p.last_name,
        email=p.email, phone=p.phone, license_number=p.license_number,
        organization_id=role.organization_id, location_id=role.location_id, role_id=role.id,
    )


@router.get("", response_model=list[DriverResponse])
def list_drivers(org_id: str, location_id: Optional[str] = None,
                 scope: Scope = Depends(get_scope), db: Session = Depends(get_db)):
    check_access(scope, Operation.VIEW_DRIVER, org_id, target_location_id=location_id)
    q = db.query(Role).options(joinedload(Role.party).joinedload(Party.person)).filter(
        Role.organization_id == org_id,
        Role.role_type == RoleKind.DRIVER,
        *active_role_filter(),
    )
    if location_id:
        q = q.filter(Role.location_id == location_id)
    return [_driver_response(r.party, r) for r in q.order_by(Role.start_date.desc()).all()
            if r.party.person is not None]


@router.post("", response_model=DriverResponse)
def create_driver(org_id: str, data: DriverCreate, scope: Scope = Depends(get_scope), db: Session = Depends(get_db)):
    check_access(scope, Operation.MANAGE_DRIVER, org_id, target_location_id=data.location_id)
    try:
        party = grants.create_driver(
            db, org_id, data.first_name, data.last_name,
            location_id=data.location_id, actor=scope.principal_id,
            email=data.email, phone=data.phone,
            license_number=data.license_number, birth_date=data.birth_date,
        )
    except (GrantError, OrganizationNotFound) as e:
        raise to_http_exception(e)
    role = next(r for r in party.roles if r.role_type == RoleKind.DRIVER)
    return _driver_response(party, role)


@router.post("/deactivate", response_model=RoleResponse)
def deactivate_driver(org_id: str, data: DriverDeactivate, scope: Scope = Depends(get_scope), db: Session = Depends(get_db)):
    role = db.query(Role).filter(Role.id == data.role_id, Role.role_type == RoleKind.DRIVER).first()
    if not role:
        raise HTTPException(status_code=404, detail="Driver role not found")
    check_access(scope, Operation.MANAGE_DRIVER, org_id,
                 target_entity_owner_organization_id=role.organization_id,
                 target_location_id=role.location_id)
    try:
        role = grants.deactivate_role(db, role.id, end_date=data.end_date, reason=data.reason,
                                      actor=scope.principal_id)
    except GrantError as e:
        raise to_http_exception(e)
    return RoleResponse(
        id=role.id, party_id=role.party_id, role_type=role.role_type.value,
        organization_id=role.organization_id, location_id=role.location_id,
        status=role.status, is_active=role.is_active,
        start_date=role.start_date, end_date=role.end_date,
    )
