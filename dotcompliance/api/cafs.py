from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session
from dotcompliance.db.session import get_db
from dotcompliance.core.auth import check_access, get_party_graph, get_scope
from dotcompliance.core.errors import SignatureError, to_http_exception
from dotcompliance.core.policy import Operation
from dotcompliance.core.scope import Scope
from dotcompliance.models.models import CafStatus, CorrectiveActionForm, Role, Staff
from dotcompliance.schemas.schemas import CafResponse, CafSignRequest, CafStatusUpdate
from dotcompliance.services import caf_service
from dotcompliance.services.issues import party_placement
from dotcompliance.services.party_graph import PartyGraph, active_role_filter

router = APIRouter(prefix="/api", tags=["cafs"])


def caf_response(caf: CorrectiveActionForm) -> CafResponse:
    return CafResponse(
        id=caf.id, caf_number=caf.caf_number, organization_id=caf.organization_id,
        violation_id=caf.violation_id, title=caf.title, description=caf.description,
        priority=caf.priority.value, category=caf.category.value, status=caf.status.value,
        assigned_staff_id=caf.assigned_staff_id, due_date=caf.due_date, approved_at=caf.approved_at,
        signatures=[{
            "id": s.id, "staff_id": s.staff_id, "signature_type": s.signature_type.value,
            "signed_at": s.signed_at, "notes": s.notes,
        } for s in caf.signatures],
    )


def _get_caf(db: Session, caf_id: str) -> CorrectiveActionForm:
    caf = db.query(CorrectiveActionForm).filter(CorrectiveActionForm.id == caf_id).first()
    if not caf:
        raise HTTPException(status_code=404, detail="CAF not found")
    return caf


def _check_caf(db: Session, scope: Scope, operation: Operation, caf: CorrectiveActionForm) -> None:
    location_id = None
    subject = caf_service.caf_subject_party_id(caf)
    if subject is not None:
        _, location_id = party_placement(db, subject)
    check_access(scope, operation, caf.organization_id, target_location_id=location_id)


@router.get("/organizations/{org_id}/cafs", response_model=list[CafResponse])
def list_cafs(
    org_id: str,
    status: Optional[str] = None,
    location_id: Optional[str] = None,
    scope: Scope = Depends(get_scope),
    db: Session = Depends(get_db),
    graph: PartyGraph = Depends(get_party_graph),
):
    check_access(scope, Operation.VIEW_CAF, org_id, target_location_id=location_id)
    if graph.find_organization_by_id(org_id) is None:
        raise HTTPException(status_code=404, detail="Organization not found")
    q = db.query(CorrectiveActionForm).filter(CorrectiveActionForm.organization_id == org_id)
    if status:
        try:
            q = q.filter(CorrectiveActionForm.status == CafStatus(status))
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid status")
    cafs = q.order_by(CorrectiveActionForm.due_date).all()
    if location_id:
        at_location = {r[0] for r in db.query(Role.party_id).filter(
            Role.organization_id == org_id, Role.location_id == location_id, *active_role_filter()
        ).all()}
        cafs = [c for c in cafs if caf_service.caf_subject_party_id(c) in at_location]
    return [caf_response(c) for c in cafs]


@router.get("/cafs/{caf_id}", response_model=CafResponse)
def get_caf(caf_id: str, scope: Scope = Depends(get_scope), db: Session = Depends(get_db)):
    caf = _get_caf(db, caf_id)
    _check_caf(db, scope, Operation.VIEW_CAF, caf)
    return caf_response(caf)


@router.put("/cafs/{caf_id}/status", response_model=CafResponse)
def update_status(caf_id: str, data: CafStatusUpdate, scope: Scope = Depends(get_scope), db: Session = Depends(get_db)):
    caf = _get_caf(db, caf_id)
    _check_caf(db, scope, Operation.MANAGE_ISSUE, caf)
    try:
        caf = caf_service.update_caf_status(db, caf, data.status, actor=scope.principal_id)
    except SignatureError as e:
        raise to_http_exception(e)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid status")
    return caf_response(caf)


@router.post("/cafs/{caf_id}/sign")
def sign(caf_id: str, data: CafSignRequest, request: Request,
         scope: Scope = Depends(get_scope), db: Session = Depends(get_db)):
    caf = _get_caf(db, caf_id)
    _check_caf(db, scope, Operation.SIGN_CAF, caf)
    staff = db.query(Staff).filter(Staff.id == data.staff_id).first()
    if not staff:
        raise HTTPException(status_code=404, detail="Staff member not found")

    ip_address = request.headers.get("x-forwarded-for") or (request.client.host if request.client else None)
    try:
        signature = caf_service.sign_caf(
            db, caf, staff, data.signature_type, data.digital_signature,
            signer_principal_id=scope.principal_id, signer_is_master=scope.is_master,
            ip_address=ip_address, notes=data.notes,
        )
    except SignatureError as e:
        raise to_http_exception(e)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid signature type")

    return {
        "message": f"{signature.signature_type.value.title()} signature added successfully",
        "signature_id": signature.id,
        "caf_status": caf.status.value,
    }
