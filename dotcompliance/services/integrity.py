"""Detection and repair of orphaned grants and duplicate person parties."""

import logging
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from dotcompliance.core.reporting import Reporter, default_reporter
from dotcompliance.db.session import atomic
from dotcompliance.models.models import ActivityLog, Organization, Party, Person, Role

logger = logging.getLogger(__name__)


def find_dangling_roles(db: Session) -> list[Role]:
    """Active roles whose target organization no longer exists."""
    existing = select(Organization.id)
    return (
        db.query(Role)
        .filter(
            Role.is_active.is_(True),
            Role.organization_id.isnot(None),
            Role.organization_id.notin_(existing),
        )
        .order_by(Role.created_at, Role.id)
        .all()
    )


def find_duplicate_principals(db: Session) -> dict[str, list[str]]:
    """Principals bound to more than one person party, mapped to those party ids."""
    dupes = (
        db.query(Party.user_id)
        .join(Person, Person.party_id == Party.id)
        .filter(Party.user_id.isnot(None))
        .group_by(Party.user_id)
        .having(func.count(Party.id) > 1)
        .all()
    )
    result = {}
    for (user_id,) in dupes:
        parties = (
            db.query(Party.id)
            .join(Person, Person.party_id == Party.id)
            .filter(Party.user_id == user_id)
            .order_by(Party.created_at, Party.id)
            .all()
        )
        result[user_id] = [p[0] for p in parties]
    return result


def integrity_report(db: Session) -> dict:
    dangling = find_dangling_roles(db)
    return {
        "dangling_roles": [
            {"role_id": r.id, "party_id": r.party_id, "organization_id": r.organization_id,
             "role_type": r.role_type.value}
            for r in dangling
        ],
        "duplicate_principals": find_duplicate_principals(db),
    }


def repair_dangling_roles(db: Session, actor: str | None = None, reporter: Reporter | None = None) -> list[Role]:
    """Deactivate every dangling role; nothing is deleted."""
    reporter = reporter or default_reporter
    dangling = find_dangling_roles(db)
    if not dangling:
        return []

    now = datetime.utcnow()
    with atomic(db):
        for role in dangling:
            reporter.report(
                LookupError(f"Role {role.id} references missing organization {role.organization_id}"),
                {"role_id": role.id, "party_id": role.party_id, "repair": "deactivate"},
            )
            role.is_active = False
            role.status = "inactive"
            role.end_date = now
            db.add(ActivityLog(principal_id=actor, organization_id=role.organization_id,
                               action="repair_dangling_role", entity_type="role", entity_id=role.id))

    logger.info("Deactivated %d dangling roles", len(dangling))
    return dangling
