from typing import Optional
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from dotcompliance.db.session import get_db
from dotcompliance.core.auth import check_access, get_party_graph, get_scope, organization_party_ids
from dotcompliance.core.errors import CafGenerationError, to_http_exception
from dotcompliance.core.policy import Operation
from dotcompliance.core.scope import Scope
from dotcompliance.models.models import Accident, Issue, IssueType, RoadsideInspection, Role, Violation
from dotcompliance.schemas.schemas import (
    AccidentCreate, AccidentResponse, IssueCreate, IssueResponse,
    RoadsideInspectionCreate, RoadsideInspectionResponse, ViolationResponse,
)
from dotcompliance.services import caf_service, issues
from dotcompliance.services.party_graph import PartyGraph, active_role_filter
from dotcompliance.api.cafs import caf_response

router = APIRouter(prefix="/api/organizations/{org_id}", tags=["inspections"])


def _violation_response(v: Violation) -> ViolationResponse:
    return ViolationResponse(
        id=v.id, violation_code=v.violation_code, description=v.description,
        violation_type=v.violation_type.value if v.violation_type else None,
        out_of_service=v.out_of_service, severity=v.severity,
        has_caf=bool(v.corrective_action_forms),
    )


def _inspection_response(i: RoadsideInspection) -> RoadsideInspectionResponse:
    return RoadsideInspectionResponse(
        id=i.id, issue_id=i.issue_id, party_id=i.issue.party_id, title=i.issue.title,
        report_number=i.report_number, inspection_date=i.inspection_date,
        inspection_level=i.inspection_level, status=i.status.value,
        equipment_id=i.equipment_id,
        violations=[_violation_response(v) for v in i.violations],
    )


def _accident_response(a: Accident) -> AccidentResponse:
    return AccidentResponse(
        id=a.id, issue_id=a.issue_id, party_id=a.issue.party_id, title=a.issue.title,
        accident_date=a.accident_date, location_text=a.location_text,
        fatalities=a.fatalities, injuries=a.injuries,
        violations=[_violation_response(v) for v in a.violations],
    )


def _issue_response(i: Issue) -> IssueResponse:
    return IssueResponse(
        id=i.id, party_id=i.party_id, issue_type=i.issue_type.value, title=i.title,
        description=i.description, status=i.status, priority=i.priority,
        created_at=i.created_at, detail=issues.issue_detail(i),
    )


def _scoped_party_ids(db: Session, graph: PartyGraph, org_id: str, location_id: str | None):
    party_ids = organization_party_ids(graph, org_id)
    if not location_id:
        return party_ids
    at_location = db.query(Role.party_id).filter(
        Role.organization_id == org_id, Role.location_id == location_id, *active_role_filter()
    ).all()
    return party_ids & {r[0] for r in at_location}


def _check_subject(db: Session, scope: Scope, operation: Operation, org_id: str, party_id: str) -> None:
    placed_org, placed_location = issues.party_placement(db, party_id)
    check_access(scope, operation, org_id,
                 target_entity_owner_organization_id=placed_org,
                 target_location_id=placed_location)
    if placed_org is None:
        raise HTTPException(status_code=400, detail="Party does not belong to this organization")


def _generate(db: Session, scope: Scope, org_id: str, record, generator):
    _check_subject(db, scope, Operation.GENERATE_CAFS, org_id, record.issue.party_id)
    try:
        created = generator(db, record, created_by=scope.principal_id)
    except CafGenerationError as e:
        raise to_http_exception(e)
    return {
        "message": f"Generated {len(created)} CAFs",
        "cafs_created": len(created),
        "cafs": [caf_response(c) for c in created],
    }


@router.get("/roadside-inspections", response_model=list[RoadsideInspectionResponse])
def list_roadside_inspections(
    org_id: str,
    location_id: Optional[str] = None,
    scope: Scope = Depends(get_scope),
    db: Session = Depends(get_db),
    graph: PartyGraph = Depends(get_party_graph),
):
    check_access(scope, Operation.VIEW_ISSUE, org_id, target_location_id=location_id)
    party_ids = _scoped_party_ids(db, graph, org_id, location_id)
    return [_inspection_response(i) for i in issues.list_roadside_inspections(db, party_ids)]


@router.post("/roadside-inspections", response_model=RoadsideInspectionResponse)
def create_roadside_inspection(org_id: str, data: RoadsideInspectionCreate,
                               scope: Scope = Depends(get_scope), db: Session = Depends(get_db)):
    _check_subject(db, scope, Operation.MANAGE_ISSUE, org_id, data.party_id)
    try:
        inspection = issues.create_roadside_inspection(
            db, data.party_id, data.title,
            violations=[v.model_dump() for v in data.violations],
            actor=scope.principal_id,
            equipment_id=data.equipment_id, report_number=data.report_number,
            inspection_date=data.inspection_date, inspection_level=data.inspection_level,
            location_text=data.location_text, officer_name=data.officer_name,
        )
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid violation type")
    return _inspection_response(inspection)


@router.post("/roadside-inspections/{inspection_id}/generate-cafs")
def generate_inspection_cafs(org_id: str, inspection_id: str,
                             scope: Scope = Depends(get_scope), db: Session = Depends(get_db)):
    inspection = db.query(RoadsideInspection).filter(RoadsideInspection.id == inspection_id).first()
    if not inspection:
        raise HTTPException(status_code=404, detail="Roadside inspection not found")
    return _generate(db, scope, org_id, inspection, caf_service.generate_cafs_from_inspection)


@router.get("/accidents", response_model=list[AccidentResponse])
def list_accidents(
    org_id: str,
    location_id: Optional[str] = None,
    scope: Scope = Depends(get_scope),
    db: Session = Depends(get_db),
    graph: PartyGraph = Depends(get_party_graph),
):
    check_access(scope, Operation.VIEW_ISSUE, org_id, target_location_id=location_id)
    party_ids = _scoped_party_ids(db, graph, org_id, location_id)
    return [_accident_response(a) for a in issues.list_accidents(db, party_ids)]


@router.post("/accidents", response_model=AccidentResponse)
def create_accident(org_id: str, data: AccidentCreate,
                    scope: Scope = Depends(get_scope), db: Session = Depends(get_db)):
    _check_subject(db, scope, Operation.MANAGE_ISSUE, org_id, data.party_id)
    try:
        accident = issues.create_accident(
            db, data.party_id, data.title,
            violations=[v.model_dump() for v in data.violations],
            actor=scope.principal_id,
            accident_date=data.accident_date, location_text=data.location_text,
            fatalities=data.fatalities, injuries=data.injuries, is_towed=data.is_towed,
            is_hazmat=data.is_hazmat, is_citation_issued=data.is_citation_issued,
        )
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid violation type")
    return _accident_response(accident)


@router.post("/accidents/{accident_id}/generate-cafs")
def generate_accident_cafs(org_id: str, accident_id: str,
                           scope: Scope = Depends(get_scope), db: Session = Depends(get_db)):
    accident = db.query(Accident).filter(Accident.id == accident_id).first()
    if not accident:
        raise HTTPException(status_code=404, detail="Accident not found")
    return _generate(db, scope, org_id, accident, caf_service.generate_cafs_from_accident)


@router.get("/issues", response_model=list[IssueResponse])
def list_issues(
    org_id: str,
    issue_type: Optional[str] = None,
    location_id: Optional[str] = None,
    scope: Scope = Depends(get_scope),
    db: Session = Depends(get_db),
    graph: PartyGraph = Depends(get_party_graph),
):
    check_access(scope, Operation.VIEW_ISSUE, org_id, target_location_id=location_id)
    try:
        kind = IssueType(issue_type) if issue_type else None
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid issue type")
    party_ids = _scoped_party_ids(db, graph, org_id, location_id)
    return [_issue_response(i) for i in issues.list_issues(db, party_ids, kind)]


@router.post("/issues", response_model=IssueResponse)
def create_issue(org_id: str, data: IssueCreate,
                 scope: Scope = Depends(get_scope), db: Session = Depends(get_db)):
    _check_subject(db, scope, Operation.MANAGE_ISSUE, org_id, data.party_id)
    try:
        issue = issues.create_issue(db, data.party_id, data.issue_type, data.title,
                                    description=data.description, actor=scope.principal_id,
                                    **data.detail)
    except (ValueError, TypeError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _issue_response(issue)
