from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from dotcompliance.db.session import get_db
from dotcompliance.core.auth import get_scope, require_principal
from dotcompliance.core.errors import GrantError, to_http_exception
from dotcompliance.core.scope import Scope
from dotcompliance.schemas.schemas import OnboardRequest, ScopeResponse
from dotcompliance.services import grants

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _scope_to_response(scope: Scope) -> ScopeResponse:
    return ScopeResponse(
        principal_id=scope.principal_id,
        role_type=scope.management_level,
        is_master=scope.is_master,
        is_consultant=scope.is_consultant,
        owned_organization_id=scope.owned_organization_id,
        organization_ids=sorted(scope.granted_organization_ids),
        role_kind_by_organization={k: v.value for k, v in scope.role_kind_by_organization.items()},
    )


@router.get("/me", response_model=ScopeResponse)
def get_me(scope: Scope = Depends(get_scope)):
    return _scope_to_response(scope)


@router.post("/onboard")
def onboard(data: OnboardRequest, principal_id: str = Depends(require_principal), db: Session = Depends(get_db)):
    try:
        result = grants.onboard_principal(
            db, principal_id,
            first_name=data.first_name,
            last_name=data.last_name,
            role_kind=data.role_type,
            organization_name=data.organization_name,
            email=data.email,
        )
    except GrantError as e:
        raise to_http_exception(e)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid role type")

    org = result["organization"]
    role = result["role"]
    return {
        "message": "Onboarding completed successfully",
        "party_id": result["person_party"].id,
        "organization_id": org.id if org else None,
        "role_id": role.id,
        "role_type": role.role_type.value,
    }
