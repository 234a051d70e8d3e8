from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from dotcompliance.db.session import get_db
from dotcompliance.core.auth import require_master
from dotcompliance.core.scope import Scope
from dotcompliance.services import integrity

router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.get("/integrity")
def integrity_report(scope: Scope = Depends(require_master), db: Session = Depends(get_db)):
    return integrity.integrity_report(db)


@router.post("/integrity/repair")
def repair(scope: Scope = Depends(require_master), db: Session = Depends(get_db)):
    repaired = integrity.repair_dangling_roles(db, actor=scope.principal_id)
    return {
        "message": f"Deactivated {len(repaired)} dangling roles",
        "deactivated_role_ids": [r.id for r in repaired],
    }
