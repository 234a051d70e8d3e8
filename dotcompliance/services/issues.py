"""Compliance issues scoped to an organization's parties."""

import json
import logging
from datetime import datetime

from sqlalchemy import desc, func
from sqlalchemy.orm import Session

from dotcompliance.core.hierarchy import expand_organization
from dotcompliance.db.session import atomic
from dotcompliance.models.models import (
    Accident, ActivityLog, CafStatus, CorrectiveActionForm, DrugAlcoholTest,
    Issue, IssueType, License, Location, Organization, RoadsideInspection,
    Registration, Role, RoleKind, Training, Violation, ViolationType,
)
from dotcompliance.services.party_graph import PartyGraph, active_role_filter

logger = logging.getLogger(__name__)

_SPECIALIZATIONS = {
    IssueType.LICENSE: (License, "license"),
    IssueType.TRAINING: (Training, "training"),
    IssueType.DRUG_ALCOHOL: (DrugAlcoholTest, "drug_alcohol_test"),
    IssueType.REGISTRATION: (Registration, "registration"),
}


def party_placement(db: Session, party_id: str) -> tuple[str | None, str | None]:
    """Return (organization_id, location_id) a subject party belongs to."""
    org = db.query(Organization).filter(Organization.party_id == party_id).first()
    if org is not None:
        return org.id, None
    role = (
        db.query(Role)
        .filter(
            Role.party_id == party_id,
            Role.role_type.in_([RoleKind.DRIVER, RoleKind.EQUIPMENT]),
            *active_role_filter(),
        )
        .order_by(Role.start_date.desc(), Role.id)
        .first()
    )
    if role is None:
        return None, None
    return role.organization_id, role.location_id


def list_issues(db: Session, party_ids, issue_type: IssueType | None = None) -> list[Issue]:
    q = db.query(Issue).filter(Issue.party_id.in_(list(party_ids)))
    if issue_type is not None:
        q = q.filter(Issue.issue_type == issue_type)
    return q.order_by(desc(Issue.created_at)).all()


def list_roadside_inspections(db: Session, party_ids) -> list[RoadsideInspection]:
    return (
        db.query(RoadsideInspection)
        .join(Issue, Issue.id == RoadsideInspection.issue_id)
        .filter(Issue.party_id.in_(list(party_ids)))
        .order_by(desc(RoadsideInspection.inspection_date))
        .all()
    )


def list_accidents(db: Session, party_ids) -> list[Accident]:
    return (
        db.query(Accident)
        .join(Issue, Issue.id == Accident.issue_id)
        .filter(Issue.party_id.in_(list(party_ids)))
        .order_by(desc(Accident.accident_date))
        .all()
    )


def _add_violations(db: Session, violations: list[dict], **link):
    for v in violations or []:
        vtype = v.get("violation_type")
        db.add(Violation(
            violation_code=v["violation_code"],
            description=v.get("description") or "",
            violation_type=ViolationType(vtype) if vtype else None,
            out_of_service=bool(v.get("out_of_service", False)),
            out_of_service_date=v.get("out_of_service_date"),
            severity=v.get("severity"),
            inspector_comments=v.get("inspector_comments"),
            **link,
        ))


def _add_issue(db: Session, party_id: str, issue_type: IssueType, title: str,
               description: str | None = None, priority: str = "medium") -> Issue:
    issue = Issue(party_id=party_id, issue_type=issue_type, title=title,
                  description=description, priority=priority, status="open")
    db.add(issue)
    db.flush()
    return issue


def create_roadside_inspection(db: Session, party_id: str, title: str, violations: list[dict] | None = None,
                               actor: str | None = None, **fields) -> RoadsideInspection:
    with atomic(db):
        issue = _add_issue(db, party_id, IssueType.ROADSIDE_INSPECTION, title)
        inspection = RoadsideInspection(issue_id=issue.id, **fields)
        db.add(inspection)
        db.flush()
        _add_violations(db, violations, roadside_inspection_id=inspection.id)
        db.add(ActivityLog(principal_id=actor, organization_id=party_placement(db, party_id)[0],
                           action="create", entity_type="roadside_inspection", entity_id=inspection.id,
                           details=json.dumps({"violations": len(violations or [])})))
    return inspection


def create_accident(db: Session, party_id: str, title: str, violations: list[dict] | None = None,
                    actor: str | None = None, **fields) -> Accident:
    with atomic(db):
        issue = _add_issue(db, party_id, IssueType.ACCIDENT, title)
        accident = Accident(issue_id=issue.id, **fields)
        db.add(accident)
        db.flush()
        _add_violations(db, violations, accident_id=accident.id)
        db.add(ActivityLog(principal_id=actor, organization_id=party_placement(db, party_id)[0],
                           action="create", entity_type="accident", entity_id=accident.id,
                           details=json.dumps({"violations": len(violations or [])})))
    return accident


def create_issue(db: Session, party_id: str, issue_type: IssueType | str, title: str,
                 description: str | None = None, actor: str | None = None, **detail) -> Issue:
    """Create a license, training, drug/alcohol or registration issue."""
    issue_type = IssueType(issue_type)
    if issue_type not in _SPECIALIZATIONS:
        raise ValueError(f"Use the dedicated creator for {issue_type.value} issues")
    model, _ = _SPECIALIZATIONS[issue_type]
    with atomic(db):
        issue = _add_issue(db, party_id, issue_type, title, description)
        db.add(model(issue_id=issue.id, **detail))
        db.add(ActivityLog(principal_id=actor, organization_id=party_placement(db, party_id)[0],
                           action="create", entity_type=issue_type.value, entity_id=issue.id))
    return issue


def issue_detail(issue: Issue) -> dict:
    if issue.issue_type in _SPECIALIZATIONS:
        _, attr = _SPECIALIZATIONS[issue.issue_type]
        detail = getattr(issue, attr)
        if detail is not None:
            return {c.name: getattr(detail, c.name) for c in detail.__table__.columns
                    if c.name not in ("id", "issue_id")}
    return {}


def organization_stats(db: Session, graph: PartyGraph, organization_id: str) -> dict:
    party_ids = expand_organization(graph, organization_id)
    member_roles = db.query(Role.role_type, func.count(func.distinct(Role.party_id))).filter(
        Role.organization_id == organization_id,
        Role.role_type.in_([RoleKind.DRIVER, RoleKind.EQUIPMENT]),
        *active_role_filter(),
    ).group_by(Role.role_type).all()
    counts = {RoleKind(kind).value: n for kind, n in member_roles}

    open_issues = db.query(func.count(Issue.id)).filter(
        Issue.party_id.in_(list(party_ids)), Issue.status != "closed").scalar() or 0
    open_cafs = db.query(func.count(CorrectiveActionForm.id)).filter(
        CorrectiveActionForm.organization_id == organization_id,
        CorrectiveActionForm.status != CafStatus.APPROVED).scalar() or 0
    overdue_cafs = db.query(func.count(CorrectiveActionForm.id)).filter(
        CorrectiveActionForm.organization_id == organization_id,
        CorrectiveActionForm.status != CafStatus.APPROVED,
        CorrectiveActionForm.due_date < datetime.utcnow()).scalar() or 0
    locations = db.query(func.count(Location.id)).filter(
        Location.organization_id == organization_id).scalar() or 0

    return {
        "drivers": counts.get("driver", 0),
        "equipment": counts.get("equipment", 0),
        "locations": locations,
        "open_issues": open_issues,
        "open_cafs": open_cafs,
        "overdue_cafs": overdue_cafs,
    }
