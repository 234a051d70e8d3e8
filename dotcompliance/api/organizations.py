from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from dotcompliance.db.session import get_db
from dotcompliance.core.auth import check_access, get_party_graph, get_scope, require_principal
from dotcompliance.core.errors import GrantError, OrganizationNotFound, PartyGraphUnavailable, to_http_exception
from dotcompliance.core.policy import Operation
from dotcompliance.core.scope import Scope
from dotcompliance.models.models import Location, Organization, RoleKind
from dotcompliance.schemas.schemas import (
    ClaimRequest, LocationCreate, LocationResponse, OrganizationCreate, OrganizationResponse,
)
from dotcompliance.services import grants
from dotcompliance.services.issues import organization_stats
from dotcompliance.services.party_graph import PartyGraph

router = APIRouter(prefix="/api/organizations", tags=["organizations"])


def _get_org(db: Session, org_id: str) -> Organization:
    org = db.query(Organization).filter(Organization.id == org_id).first()
    if not org:
        raise HTTPException(status_code=404, detail="Organization not found")
    return org


@router.get("", response_model=list[OrganizationResponse])
def list_organizations(scope: Scope = Depends(get_scope), db: Session = Depends(get_db)):
    if not scope.granted_organization_ids:
        return []
    return db.query(Organization).filter(
        Organization.id.in_(list(scope.granted_organization_ids))
    ).order_by(Organization.created_at.desc()).all()


@router.post("", response_model=OrganizationResponse)
def create_organization(data: OrganizationCreate, scope: Scope = Depends(get_scope), db: Session = Depends(get_db)):
    check_access(scope, Operation.CREATE_ORGANIZATION, None)
    try:
        return grants.create_managed_organization(
            db, scope, name=data.name, dot_number=data.dot_number,
            phone=data.phone, ein_number=data.ein_number,
        )
    except (GrantError, OrganizationNotFound) as e:
        raise to_http_exception(e)


@router.get("/claim")
def list_unclaimed(principal_id: str = Depends(require_principal), db: Session = Depends(get_db)):
    orgs = grants.list_unclaimed_organizations(db)
    return {
        "organizations": [OrganizationResponse.model_validate(o) for o in orgs],
        "count": len(orgs),
    }


@router.post("/claim")
def claim(data: ClaimRequest, principal_id: str = Depends(require_principal), db: Session = Depends(get_db)):
    try:
        claimed = grants.claim_organizations(db, principal_id, data.organization_ids)
    except GrantError as e:
        raise to_http_exception(e)
    return {
        "message": f"Successfully claimed {len(claimed)} organizations",
        "claimed_count": len(claimed),
        "organizations": [OrganizationResponse.model_validate(o) for o in claimed],
    }


@router.get("/{org_id}", response_model=OrganizationResponse)
def get_organization(org_id: str, scope: Scope = Depends(get_scope), db: Session = Depends(get_db)):
    check_access(scope, Operation.VIEW_ORGANIZATION, org_id)
    return _get_org(db, org_id)


@router.get("/{org_id}/stats")
def get_stats(
    org_id: str,
    scope: Scope = Depends(get_scope),
    db: Session = Depends(get_db),
    graph: PartyGraph = Depends(get_party_graph),
):
    check_access(scope, Operation.VIEW_ORGANIZATION, org_id)
    try:
        return organization_stats(db, graph, org_id)
    except (OrganizationNotFound, PartyGraphUnavailable) as e:
        raise to_http_exception(e)


@router.get("/{org_id}/locations", response_model=list[LocationResponse])
def list_locations(org_id: str, scope: Scope = Depends(get_scope), db: Session = Depends(get_db)):
    check_access(scope, Operation.VIEW_ORGANIZATION, org_id)
    q = db.query(Location).filter(Location.organization_id == org_id)
    if not scope.is_master and scope.role_kind_for(org_id) == RoleKind.LOCATION:
        q = q.filter(Location.id.in_(list(scope.location_ids_by_organization.get(org_id, ()))))
    return q.order_by(Location.is_main_location.desc(), Location.name).all()


@router.post("/{org_id}/locations", response_model=LocationResponse)
def create_location(org_id: str, data: LocationCreate, scope: Scope = Depends(get_scope), db: Session = Depends(get_db)):
    check_access(scope, Operation.CREATE_LOCATION, org_id)
    try:
        return grants.create_location(
            db, org_id, name=data.name, actor=scope.principal_id,
            is_main_location=data.is_main_location,
            street=data.street, city=data.city, state=data.state, zip=data.zip,
        )
    except OrganizationNotFound as e:
        raise to_http_exception(e)
