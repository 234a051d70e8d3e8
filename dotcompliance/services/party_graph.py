"""Read-only queries over parties, roles and organizations.

The access-control core issues only these query shapes. Store failures are
surfaced as ``PartyGraphUnavailable`` so callers can tell an infrastructure
problem apart from a denial.
"""

import functools
import logging
from datetime import datetime

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from dotcompliance.core.errors import PartyGraphUnavailable
from dotcompliance.models.models import Organization, Party, Role

logger = logging.getLogger(__name__)


def _wrap_store_errors(fn):
    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except SQLAlchemyError as e:
            logger.warning("Party graph query %s failed: %s", fn.__name__, e)
            raise PartyGraphUnavailable(str(e)) from e
    return wrapper


def active_role_filter(now: datetime | None = None):
    now = now or datetime.utcnow()
    return (
        Role.is_active.is_(True),
        or_(Role.end_date.is_(None), Role.end_date > now),
    )


class PartyGraph:
    def __init__(self, db: Session):
        self.db = db

    @_wrap_store_errors
    def find_parties_by_principal(self, principal_id: str) -> list[Party]:
        return (
            self.db.query(Party)
            .options(joinedload(Party.person), joinedload(Party.organization))
            .filter(Party.user_id == principal_id)
            .order_by(Party.created_at, Party.id)
            .all()
        )

    @_wrap_store_errors
    def find_active_roles_by_party(self, party_id: str) -> list[Role]:
        return (
            self.db.query(Role)
            .filter(Role.party_id == party_id, *active_role_filter())
            .order_by(Role.start_date.desc(), Role.id)
            .all()
        )

    @_wrap_store_errors
    def find_organization_by_id(self, organization_id: str) -> Organization | None:
        return self.db.query(Organization).filter(Organization.id == organization_id).first()

    @_wrap_store_errors
    def find_role_targets_by_organization(self, organization_id: str) -> list[str]:
        rows = (
            self.db.query(Role.party_id)
            .join(Party, Party.id == Role.party_id)
            .filter(
                Role.organization_id == organization_id,
                *active_role_filter(),
                or_(Party.person.has(), Party.equipment.has()),
            )
            .distinct()
            .all()
        )
        return [r[0] for r in rows]
