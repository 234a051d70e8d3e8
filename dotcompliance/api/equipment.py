from typing import Optional
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session, joinedload
from dotcompliance.db.session import get_db
from dotcompliance.core.auth import check_access, get_scope
from dotcompliance.core.errors import GrantError, OrganizationNotFound, to_http_exception
from dotcompliance.core.policy import Operation
from dotcompliance.core.scope import Scope
from dotcompliance.models.models import Party, Role, RoleKind
from dotcompliance.schemas.schemas import EquipmentCreate, EquipmentResponse
from dotcompliance.services import grants
from dotcompliance.services.party_graph import active_role_filter

router = APIRouter(prefix="/api/organizations/{org_id}/equipment", tags=["equipment"])


def _equipment_response(party: Party, role: Role) -> EquipmentResponse:
    e = party.equipment
    return EquipmentResponse(
        id=e.id, party_id=party.id, unit_number=e.unit_number, vin=e.vin,
        make=e.make, model=e.model, year=e.year, plate_number=e.plate_number,
        unit_type=e.unit_type, organization_id=role.organization_id, location_id=role.location_id,
    )


@router.get("", response_model=list[EquipmentResponse])
def list_equipment(org_id: str, location_id: Optional[str] = None,
                   scope: Scope = Depends(get_scope), db: Session = Depends(get_db)):
    check_access(scope, Operation.VIEW_EQUIPMENT, org_id, target_location_id=location_id)
    q = db.query(Role).options(joinedload(Role.party).joinedload(Party.equipment)).filter(
        Role.organization_id == org_id,
        Role.role_type == RoleKind.EQUIPMENT,
        *active_role_filter(),
    )
    if location_id:
        q = q.filter(Role.location_id == location_id)
    return [_equipment_response(r.party, r) for r in q.order_by(Role.start_date.desc()).all()
            if r.party.equipment is not None]


@router.post("", response_model=EquipmentResponse)
def create_equipment(org_id: str, data: EquipmentCreate, scope: Scope = Depends(get_scope), db: Session = Depends(get_db)):
    check_access(scope, Operation.MANAGE_EQUIPMENT, org_id, target_location_id=data.location_id)
    try:
        party = grants.create_equipment(
            db, org_id, data.unit_number, location_id=data.location_id, actor=scope.principal_id,
            vin=data.vin, make=data.make, model=data.model, year=data.year,
            plate_number=data.plate_number, unit_type=data.unit_type,
        )
    except (GrantError, OrganizationNotFound) as e:
        raise to_http_exception(e)
    role = next(r for r in party.roles if r.role_type == RoleKind.EQUIPMENT)
    return _equipment_response(party, role)
