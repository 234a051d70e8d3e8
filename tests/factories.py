"""Shared builders for an in-memory party graph."""

import os
import sys
from datetime import datetime

# Engine is created at import; point it at SQLite before anything imports config.
os.environ.setdefault("DATABASE_URL", "sqlite://")

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from dotcompliance.models.base import Base  # noqa: E402
from dotcompliance.models.models import (  # noqa: E402
    Equipment, Location, Organization, Party, PartyStatus, Person, Role, RoleKind, Staff,
)


def make_sessionmaker():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


def make_session():
    return make_sessionmaker()()


def person(db, principal_id=None, first_name="Pat", last_name="Lee"):
    party = Party(user_id=principal_id, status=PartyStatus.ACTIVE)
    party.person = Person(first_name=first_name, last_name=last_name)
    db.add(party)
    db.commit()
    return party


def equipment(db, unit_number="T-100"):
    party = Party(status=PartyStatus.ACTIVE)
    party.equipment = Equipment(unit_number=unit_number)
    db.add(party)
    db.commit()
    return party


def organization(db, name="Acme Freight", owner=None, dot_number=None):
    party = Party(user_id=owner, status=PartyStatus.ACTIVE)
    party.organization = Organization(name=name, dot_number=dot_number)
    db.add(party)
    db.commit()
    return party.organization


def location(db, org, name="Main Yard"):
    loc = Location(organization_id=org.id, name=name)
    db.add(loc)
    db.commit()
    return loc


def role(db, party, kind, organization_id=None, location_id=None, is_active=True, end_date=None):
    r = Role(
        party_id=party.id, role_type=RoleKind(kind), organization_id=organization_id,
        location_id=location_id, is_active=is_active, end_date=end_date,
        status="active" if is_active else "inactive", start_date=datetime.utcnow(),
    )
    db.add(r)
    db.commit()
    return r


def staff(db, party, position=None, can_sign=True, can_approve=False):
    s = Staff(party_id=party.id, position=position, can_sign_cafs=can_sign, can_approve_cafs=can_approve)
    db.add(s)
    db.commit()
    return s


class RecordingReporter:
    def __init__(self):
        self.reports = []

    def report(self, error, context):
        self.reports.append((error, context))
