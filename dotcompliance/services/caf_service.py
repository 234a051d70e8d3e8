"""Corrective action form generation and signing.

CAFs are generated one per violation that does not have one yet, scoped to
the organization of the inspected driver or unit, and assigned to the staff
member whose position best matches the violation type.
"""

import json
import logging
from datetime import datetime, timedelta

from sqlalchemy import Integer, cast, func, or_, select
from sqlalchemy.orm import Session

from dotcompliance.core.config import CAF_DUE_DAYS_CRITICAL, CAF_DUE_DAYS_DEFAULT
from dotcompliance.core.errors import CafGenerationError, SignatureError, SignaturePermissionError
from dotcompliance.db.session import atomic
from dotcompliance.models.models import (
    Accident, ActivityLog, CafCategory, CafPriority, CafSignature, CafStatus,
    CorrectiveActionForm, InspectionStatus, RoadsideInspection, Role,
    SignatureType, Staff, Violation, ViolationType,
)
from dotcompliance.services.issues import party_placement
from dotcompliance.services.party_graph import active_role_filter

logger = logging.getLogger(__name__)

CRITICAL_CODES = ("392.2", "392.3", "392.4", "392.5", "393.5", "393.9")

CATEGORY_BY_TYPE = {
    ViolationType.DRIVER_PERFORMANCE: CafCategory.DRIVER_PERFORMANCE,
    ViolationType.DRIVER_QUALIFICATION: CafCategory.DRIVER_QUALIFICATION,
    ViolationType.EQUIPMENT: CafCategory.EQUIPMENT_MAINTENANCE,
    ViolationType.COMPANY: CafCategory.COMPANY_OPERATIONS,
}

CATEGORY_BY_CODE_PREFIX = (
    ("390", CafCategory.COMPANY_OPERATIONS),
    ("391", CafCategory.DRIVER_QUALIFICATION),
    ("392", CafCategory.DRIVER_PERFORMANCE),
    ("393", CafCategory.EQUIPMENT_MAINTENANCE),
    ("396", CafCategory.EQUIPMENT_MAINTENANCE),
)

TITLE_PREFIX = {
    ViolationType.DRIVER_PERFORMANCE: "Driver Performance",
    ViolationType.DRIVER_QUALIFICATION: "Driver Qualification",
    ViolationType.EQUIPMENT: "Equipment Maintenance",
    ViolationType.COMPANY: "Company Operations",
}

REQUIRED_ACTIONS = {
    ViolationType.DRIVER_PERFORMANCE: [
        "Immediate driver coaching/retraining on the specific violation",
        "Document training provided and driver acknowledgment",
        "Implement monitoring plan for similar violations",
        "Consider progressive discipline if repeat violation",
    ],
    ViolationType.EQUIPMENT: [
        "Inspect and repair/replace defective equipment",
        "Document repairs with receipts and inspection records",
        "Return equipment to service only after verification",
        "Review maintenance schedule to prevent recurrence",
    ],
    ViolationType.COMPANY: [
        "Review and update relevant company policies/procedures",
        "Ensure all affected staff are trained on corrections",
        "Implement systemic controls to prevent recurrence",
        "Document policy changes and training completion",
    ],
}

DEFAULT_ACTIONS = [
    "Investigate root cause of violation",
    "Implement appropriate corrective measures",
    "Document all actions taken",
    "Monitor for effectiveness",
]

STAFF_KEYWORDS = {
    ViolationType.DRIVER_PERFORMANCE: ("safety", "operations"),
    ViolationType.DRIVER_QUALIFICATION: ("safety", "operations"),
    ViolationType.EQUIPMENT: ("maintenance", "fleet"),
    ViolationType.COMPANY: ("compliance", "manager", "director"),
}


def caf_category(violation_type: ViolationType | None, violation_code: str) -> CafCategory:
    if violation_type is not None:
        return CATEGORY_BY_TYPE.get(violation_type, CafCategory.OTHER)
    for prefix, category in CATEGORY_BY_CODE_PREFIX:
        if violation_code.startswith(prefix):
            return category
    return CafCategory.OTHER


def caf_priority(out_of_service: bool, violation_code: str) -> CafPriority:
    if out_of_service:
        return CafPriority.CRITICAL
    if any(code in violation_code for code in CRITICAL_CODES):
        return CafPriority.HIGH
    return CafPriority.MEDIUM


def caf_due_date(priority: CafPriority, now: datetime | None = None) -> datetime:
    now = now or datetime.utcnow()
    days = CAF_DUE_DAYS_CRITICAL if priority == CafPriority.CRITICAL else CAF_DUE_DAYS_DEFAULT
    return now + timedelta(days=days)


def caf_title(violation_type: ViolationType | None, violation_code: str, description: str) -> str:
    prefix = TITLE_PREFIX.get(violation_type, "Safety")
    short = description[:50] + ("..." if len(description) > 50 else "")
    return f"{prefix} - {violation_code}: {short}"


def caf_description(violation: Violation) -> str:
    lines = [
        f"Corrective Action Required for Violation: {violation.violation_code}",
        "",
        f"Violation Description: {violation.description}",
        "",
    ]
    if violation.inspector_comments:
        lines += [f"Inspector Comments: {violation.inspector_comments}", ""]
    if violation.out_of_service:
        lines.append("OUT OF SERVICE: This violation resulted in an out-of-service order.")
        if violation.out_of_service_date:
            lines.append(f"Out of Service Date: {violation.out_of_service_date.date().isoformat()}")
        lines += ["Equipment/Driver must be returned to service before resuming operations.", ""]
    lines.append("Required Actions:")
    actions = REQUIRED_ACTIONS.get(violation.violation_type, DEFAULT_ACTIONS)
    lines += [f"{i}. {a}" for i, a in enumerate(actions, start=1)]
    lines += [
        "",
        "Due Date: Must be completed within regulatory timeframes.",
        "Documentation: All corrective actions must be documented with supporting evidence.",
    ]
    return "\n".join(lines)


def next_caf_number(db: Session, now: datetime | None = None) -> str:
    prefix = f"CAF-{(now or datetime.utcnow()).year}-"
    # Numeric max; suffixes run past four digits.
    last = (
        db.query(func.max(cast(func.substr(CorrectiveActionForm.caf_number, len(prefix) + 1), Integer)))
        .filter(CorrectiveActionForm.caf_number.startswith(prefix))
        .scalar()
    )
    next_number = last + 1 if last else 1
    return f"{prefix}{next_number:04d}"


def find_assignable_staff(db: Session, organization_id: str, violation_type: ViolationType | None) -> Staff | None:
    members = select(Role.party_id).where(Role.organization_id == organization_id, *active_role_filter())
    base = (
        db.query(Staff)
        .filter(Staff.is_active.is_(True), Staff.party_id.in_(members))
        .order_by(Staff.created_at, Staff.id)
    )

    keywords = STAFF_KEYWORDS.get(violation_type)
    if keywords:
        clauses = []
        for word in keywords:
            clauses.append(Staff.position.ilike(f"%{word}%"))
            clauses.append(Staff.department.ilike(f"%{word}%"))
        match = base.filter(or_(*clauses)).first()
        if match is not None:
            return match

    approver = base.filter(Staff.can_approve_cafs.is_(True)).first()
    if approver is not None:
        return approver
    return base.first()


def _violation_organization(db: Session, subject_party_id: str) -> str:
    organization_id, _ = party_placement(db, subject_party_id)
    if organization_id is None:
        raise CafGenerationError("Could not determine organization for violations")
    return organization_id


def _generate(db: Session, violations: list[Violation], subject_party_id: str, created_by: str | None) -> list[CorrectiveActionForm]:
    pending = [v for v in violations if not v.corrective_action_forms]
    if not pending:
        return []

    organization_id = _violation_organization(db, subject_party_id)
    created = []
    with atomic(db):
        for violation in pending:
            staff = find_assignable_staff(db, organization_id, violation.violation_type)
            if staff is None:
                logger.warning("No staff to assign CAF for violation %s in %s", violation.id, organization_id)
                continue

            priority = caf_priority(violation.out_of_service, violation.violation_code)
            caf = CorrectiveActionForm(
                caf_number=next_caf_number(db),
                violation_id=violation.id,
                organization_id=organization_id,
                title=caf_title(violation.violation_type, violation.violation_code, violation.description),
                description=caf_description(violation),
                priority=priority,
                category=caf_category(violation.violation_type, violation.violation_code),
                status=CafStatus.ASSIGNED,
                assigned_staff_id=staff.id,
                assigned_by=created_by,
                due_date=caf_due_date(priority),
                requires_approval=True,
            )
            db.add(caf)
            db.flush()
            created.append(caf)
        for caf in created:
            db.add(ActivityLog(principal_id=created_by, organization_id=organization_id, action="generate",
                               entity_type="caf", entity_id=caf.id,
                               details=json.dumps({"violation_id": caf.violation_id})))

    logger.info("Generated %d CAFs for organization %s", len(created), organization_id)
    return created


def generate_cafs_from_inspection(db: Session, inspection: RoadsideInspection, created_by: str | None = None) -> list[CorrectiveActionForm]:
    return _generate(db, list(inspection.violations), inspection.issue.party_id, created_by)


def generate_cafs_from_accident(db: Session, accident: Accident, created_by: str | None = None) -> list[CorrectiveActionForm]:
    return _generate(db, list(accident.violations), accident.issue.party_id, created_by)


def _is_caf_complete(caf: CorrectiveActionForm) -> bool:
    if caf.status != CafStatus.APPROVED:
        return False
    kinds = {s.signature_type for s in caf.signatures}
    return SignatureType.COMPLETION in kinds and (SignatureType.APPROVAL in kinds or caf.approved_at is not None)


def refresh_inspection_status(db: Session, inspection: RoadsideInspection) -> bool:
    cafs = [
        caf
        for violation in inspection.violations
        for caf in violation.corrective_action_forms
    ]
    complete = bool(cafs) and all(_is_caf_complete(c) for c in cafs)
    inspection.status = InspectionStatus.RESOLVED if complete else InspectionStatus.PENDING
    inspection.completed_at = datetime.utcnow() if complete else None
    return complete


def sign_caf(db: Session, caf: CorrectiveActionForm, staff: Staff, signature_type: SignatureType | str,
             digital_signature: str, signer_principal_id: str, signer_is_master: bool = False,
             ip_address: str | None = None, notes: str | None = None) -> CafSignature:
    signature_type = SignatureType(signature_type)

    if not signer_is_master and staff.party.user_id != signer_principal_id:
        raise SignaturePermissionError("Insufficient permissions to sign")
    if signature_type == SignatureType.COMPLETION and not staff.can_sign_cafs:
        raise SignaturePermissionError("Staff member does not have permission to sign CAFs")
    if signature_type == SignatureType.APPROVAL and not staff.can_approve_cafs and not signer_is_master:
        raise SignaturePermissionError("Staff member does not have permission to approve CAFs")

    if any(s.staff_id == staff.id and s.signature_type == signature_type for s in caf.signatures):
        raise SignatureError("This staff member has already provided this type of signature")
    if caf.status != CafStatus.COMPLETED:
        raise SignatureError(f"CAF must be in COMPLETED status to receive {signature_type.value.lower()} signature")
    if signature_type == SignatureType.APPROVAL and not any(
        s.signature_type == SignatureType.COMPLETION for s in caf.signatures
    ):
        raise SignatureError("CAF must have completion signature before approval signature")

    with atomic(db):
        signature = CafSignature(
            caf_id=caf.id, staff_id=staff.id, signature_type=signature_type,
            digital_signature=digital_signature, ip_address=ip_address or "unknown",
            notes=notes, signed_at=datetime.utcnow(),
        )
        caf.signatures.append(signature)
        if signature_type == SignatureType.APPROVAL:
            caf.status = CafStatus.APPROVED
            caf.approved_at = datetime.utcnow()
        db.add(ActivityLog(
            principal_id=signer_principal_id, organization_id=caf.organization_id,
            action="sign", entity_type="caf", entity_id=caf.id,
            details=json.dumps({"signature_type": signature_type.value, "staff_id": staff.id}),
        ))
        db.flush()
        violation = caf.violation
        if violation is not None and violation.roadside_inspection is not None:
            refresh_inspection_status(db, violation.roadside_inspection)

    return signature


def update_caf_status(db: Session, caf: CorrectiveActionForm, status: CafStatus | str, actor: str | None = None) -> CorrectiveActionForm:
    status = CafStatus(status)
    if status == CafStatus.APPROVED:
        raise SignatureError("CAFs are approved by signature")
    with atomic(db):
        caf.status = status
        db.add(ActivityLog(principal_id=actor, organization_id=caf.organization_id, action="update_status",
                           entity_type="caf", entity_id=caf.id, details=json.dumps({"status": status.value})))
    return caf


def caf_subject_party_id(caf: CorrectiveActionForm) -> str | None:
    violation = caf.violation
    if violation is None:
        return None
    record = violation.roadside_inspection or violation.accident
    return record.issue.party_id if record is not None else None
