import json
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy import desc
from sqlalchemy.orm import Session
from dotcompliance.db.session import get_db
from dotcompliance.core.auth import check_access, get_scope
from dotcompliance.core.policy import Operation
from dotcompliance.core.scope import Scope
from dotcompliance.models.models import ActivityLog
from dotcompliance.schemas.schemas import ActivityLogResponse

router = APIRouter(prefix="/api/organizations/{org_id}/activity", tags=["activity"])


def _activity_response(entry: ActivityLog) -> ActivityLogResponse:
    return ActivityLogResponse(
        id=entry.id, principal_id=entry.principal_id, organization_id=entry.organization_id,
        action=entry.action, entity_type=entry.entity_type, entity_id=entry.entity_id,
        details=json.loads(entry.details) if entry.details else None,
        created_at=entry.created_at,
    )


@router.get("", response_model=list[ActivityLogResponse])
def list_activity(org_id: str, entity_type: Optional[str] = None, entity_id: Optional[str] = None,
                  limit: int = Query(100, ge=1, le=500),
                  scope: Scope = Depends(get_scope), db: Session = Depends(get_db)):
    check_access(scope, Operation.VIEW_ORGANIZATION, org_id)
    q = db.query(ActivityLog).filter(ActivityLog.organization_id == org_id)
    if entity_type:
        q = q.filter(ActivityLog.entity_type == entity_type)
    if entity_id:
        q = q.filter(ActivityLog.entity_id == entity_id)
    return [_activity_response(e) for e in q.order_by(desc(ActivityLog.created_at)).limit(limit).all()]
