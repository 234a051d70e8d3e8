from datetime import datetime, timedelta
from jose import jwt, JWTError
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session
from dotcompliance.core.config import SECRET_KEY, ALGORITHM, ACCESS_TOKEN_EXPIRE_MINUTES
from dotcompliance.core.errors import (
    OrganizationNotFound, PartyGraphUnavailable, error_for_reason, to_http_exception,
)
from dotcompliance.core.hierarchy import expand_organization
from dotcompliance.core.policy import Operation, authorize
from dotcompliance.core.scope import Scope, resolve_scope
from dotcompliance.db.session import get_db
from dotcompliance.services.party_graph import PartyGraph

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/token", auto_error=False)


def create_access_token(principal_id: str, expires_minutes: int = ACCESS_TOKEN_EXPIRE_MINUTES) -> str:
    expire = datetime.utcnow() + timedelta(minutes=expires_minutes)
    return jwt.encode({"sub": principal_id, "exp": expire}, SECRET_KEY, algorithm=ALGORITHM)


def decode_principal(token: str | None) -> str | None:
    if token is None:
        return None
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None
    return payload.get("sub")


def current_principal(token: str = Depends(oauth2_scheme)) -> str | None:
    return decode_principal(token)


def require_principal(principal_id: str | None = Depends(current_principal)) -> str:
    if principal_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return principal_id


def get_party_graph(db: Session = Depends(get_db)) -> PartyGraph:
    return PartyGraph(db)


def get_scope(
    principal_id: str = Depends(require_principal),
    graph: PartyGraph = Depends(get_party_graph),
) -> Scope:
    try:
        return resolve_scope(graph, principal_id)
    except PartyGraphUnavailable as e:
        raise to_http_exception(e)


def require_master(scope: Scope = Depends(get_scope)) -> Scope:
    if not scope.is_master:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Master access required")
    return scope


def check_access(scope: Scope, operation: Operation | str, organization_id: str | None, **kwargs) -> None:
    decision = authorize(scope, operation, organization_id, **kwargs)
    if not decision.allow:
        raise to_http_exception(error_for_reason(decision.reason))


def organization_party_ids(graph: PartyGraph, organization_id: str) -> frozenset[str]:
    try:
        return expand_organization(graph, organization_id)
    except (OrganizationNotFound, PartyGraphUnavailable) as e:
        raise to_http_exception(e)
