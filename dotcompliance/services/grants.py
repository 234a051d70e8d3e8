"""Writes that change authorization state.

Every public function here runs as a single transaction: a party is never
visible without its sub-record, nor a grant without its role row.
"""

import json
import logging
from datetime import datetime

from sqlalchemy.orm import Session

from dotcompliance.core.errors import (
    DuplicateDotNumberError, DuplicatePartyError, GrantError, OrganizationNotFound,
)
from dotcompliance.core.scope import Scope
from dotcompliance.db.session import atomic
from dotcompliance.models.models import (
    ActivityLog, Consultant, Equipment, Location, Organization, Party,
    PartyStatus, Person, Role, RoleKind, Staff,
)
from dotcompliance.services.party_graph import active_role_filter

logger = logging.getLogger(__name__)

NO_DOT = "NO_DOT"
ONBOARDING_KINDS = (RoleKind.MASTER, RoleKind.ORGANIZATION, RoleKind.CONSULTANT)
MEMBERSHIP_KINDS = (RoleKind.DRIVER, RoleKind.EQUIPMENT)


def _log(db: Session, principal_id: str | None, action: str, entity_type: str, entity_id: str,
         organization_id: str | None = None, **details):
    db.add(ActivityLog(
        principal_id=principal_id, organization_id=organization_id, action=action,
        entity_type=entity_type, entity_id=entity_id,
        details=json.dumps(details, default=str) if details else None,
    ))


def _get_organization(db: Session, organization_id: str) -> Organization:
    org = db.query(Organization).filter(Organization.id == organization_id).first()
    if org is None:
        raise OrganizationNotFound(organization_id)
    return org


def _check_location(db: Session, organization_id: str, location_id: str | None) -> Location | None:
    if location_id is None:
        return None
    location = db.query(Location).filter(Location.id == location_id).first()
    if location is None or location.organization_id != organization_id:
        raise GrantError("Location does not belong to this organization")
    return location


def _add_person_party(db: Session, principal_id: str | None, first_name: str, last_name: str,
                      email: str | None = None, **person_fields) -> Party:
    if principal_id is not None:
        existing = db.query(Party).filter(Party.user_id == principal_id, Party.person.has()).first()
        if existing is not None:
            raise DuplicatePartyError("Principal already has a person record")
    party = Party(user_id=principal_id, status=PartyStatus.ACTIVE)
    party.person = Person(first_name=first_name, last_name=last_name, email=email, **person_fields)
    db.add(party)
    db.flush()
    return party


def _add_organization(db: Session, name: str, owner_principal_id: str | None = None,
                      dot_number: str | None = None, **fields) -> Organization:
    if dot_number == NO_DOT:
        dot_number = None
    if dot_number:
        if db.query(Organization).filter(Organization.dot_number == dot_number).first():
            raise DuplicateDotNumberError("DOT number already exists")
    party = Party(user_id=owner_principal_id, status=PartyStatus.ACTIVE)
    party.organization = Organization(name=name, dot_number=dot_number, **fields)
    db.add(party)
    db.flush()
    return party.organization


def _add_role(db: Session, party_id: str, kind: RoleKind, organization_id: str | None = None,
              location_id: str | None = None) -> Role:
    role = Role(
        party_id=party_id, role_type=kind, organization_id=organization_id,
        location_id=location_id, status="active", is_active=True, start_date=datetime.utcnow(),
    )
    db.add(role)
    db.flush()
    return role


def create_person_party(db: Session, principal_id: str, first_name: str, last_name: str,
                        email: str | None = None) -> Party:
    with atomic(db):
        party = _add_person_party(db, principal_id, first_name, last_name, email)
        _log(db, principal_id, "create", "party", party.id, kind="person")
    return party


def onboard_principal(db: Session, principal_id: str, first_name: str, last_name: str,
                      role_kind: RoleKind | str, organization_name: str | None = None,
                      email: str | None = None) -> dict:
    role_kind = RoleKind(role_kind)
    if role_kind not in ONBOARDING_KINDS:
        raise GrantError(f"Cannot onboard with role type {role_kind.value}")
    if role_kind != RoleKind.CONSULTANT and not organization_name:
        raise GrantError("Organization name is required for this role type")

    if db.query(Party).filter(Party.user_id == principal_id).first() is not None:
        raise DuplicatePartyError("User already has an account setup")

    with atomic(db):
        person_party = _add_person_party(db, principal_id, first_name, last_name, email)
        organization = None
        if role_kind == RoleKind.CONSULTANT:
            consultant_party = Party(user_id=principal_id, status=PartyStatus.ACTIVE)
            consultant_party.consultant = Consultant(years_experience=0, is_verified=False)
            db.add(consultant_party)
            db.flush()
            role = _add_role(db, consultant_party.id, RoleKind.CONSULTANT)
        else:
            organization = _add_organization(db, organization_name, owner_principal_id=principal_id)
            role = _add_role(db, person_party.id, role_kind, organization.id)
        _log(db, principal_id, "onboard", "party", person_party.id,
             organization_id=organization.id if organization else None, role_type=role_kind.value)

    logger.info("Onboarded principal %s as %s", principal_id, role_kind.value)
    return {"person_party": person_party, "organization": organization, "role": role}


def create_managed_organization(db: Session, scope: Scope, name: str, dot_number: str | None = None,
                                phone: str | None = None, ein_number: str | None = None) -> Organization:
    """Create an organization managed by the caller's own (master) organization."""
    if not name:
        raise GrantError("Organization name is required")
    if scope.owned_organization_id is None:
        raise GrantError("No master company found for user")

    with atomic(db):
        owner = _get_organization(db, scope.owned_organization_id)
        organization = _add_organization(db, name, dot_number=dot_number, phone=phone, ein_number=ein_number)
        role = _add_role(db, owner.party_id, RoleKind.MASTER, organization.id)
        _log(db, scope.principal_id, "create", "organization", organization.id,
             organization_id=organization.id, master_organization_id=owner.id, role_id=role.id)

    logger.info("Created organization %s managed by %s", organization.id, owner.id)
    return organization


def list_unclaimed_organizations(db: Session) -> list[Organization]:
    return (
        db.query(Organization)
        .join(Party, Party.id == Organization.party_id)
        .filter(Party.user_id.is_(None))
        .order_by(Organization.name)
        .all()
    )


def claim_organizations(db: Session, principal_id: str, organization_ids: list[str]) -> list[Organization]:
    if not organization_ids:
        raise GrantError("Organization IDs are required")

    with atomic(db):
        organizations = (
            db.query(Organization)
            .join(Party, Party.id == Organization.party_id)
            .filter(Organization.id.in_(organization_ids), Party.user_id.is_(None))
            .all()
        )
        if not organizations:
            return []

        for org in organizations:
            org.party.user_id = principal_id

        person_party = (
            db.query(Party).filter(Party.user_id == principal_id, Party.person.has()).first()
        )
        if person_party is None:
            person_party = _add_person_party(db, principal_id, "User", "User", "")

        for org in organizations:
            _add_role(db, person_party.id, RoleKind.MASTER, org.id)
            _log(db, principal_id, "claim", "organization", org.id, organization_id=org.id)

    logger.info("Principal %s claimed %d organizations", principal_id, len(organizations))
    return organizations


def grant_role(db: Session, party_id: str, kind: RoleKind | str, organization_id: str | None = None,
               location_id: str | None = None, actor: str | None = None) -> Role:
    kind = RoleKind(kind)
    party = db.query(Party).filter(Party.id == party_id).first()
    if party is None:
        raise GrantError("Party not found")
    if kind == RoleKind.DRIVER and party.person is None:
        raise GrantError("Driver roles require a person party")
    if kind == RoleKind.EQUIPMENT and party.equipment is None:
        raise GrantError("Equipment roles require an equipment party")
    if kind == RoleKind.LOCATION and (organization_id is None or location_id is None):
        raise GrantError("Location roles require an organization and a location")
    if kind in MEMBERSHIP_KINDS:
        elsewhere = (
            db.query(Role)
            .filter(Role.party_id == party.id, Role.role_type.in_(MEMBERSHIP_KINDS),
                    Role.organization_id != organization_id, *active_role_filter())
            .first()
        )
        if elsewhere is not None:
            raise GrantError("Party already belongs to another organization")

    with atomic(db):
        if organization_id is not None:
            _get_organization(db, organization_id)
            _check_location(db, organization_id, location_id)
        role = _add_role(db, party.id, kind, organization_id, location_id)
        _log(db, actor, "grant_role", "role", role.id, party_id=party.id,
             role_type=kind.value, organization_id=organization_id)
    return role


def deactivate_role(db: Session, role_id: str, end_date: datetime | None = None,
                    reason: str | None = None, actor: str | None = None) -> Role:
    role = db.query(Role).filter(Role.id == role_id, Role.is_active.is_(True)).first()
    if role is None:
        raise GrantError("Role not found or already inactive")

    with atomic(db):
        role.is_active = False
        role.status = "inactive"
        role.end_date = end_date or datetime.utcnow()
        _log(db, actor, "deactivate_role", "role", role.id, reason=reason,
             organization_id=role.organization_id)
    return role


def create_location(db: Session, organization_id: str, name: str, actor: str | None = None,
                    is_main_location: bool = False, **address) -> Location:
    with atomic(db):
        _get_organization(db, organization_id)
        if is_main_location:
            db.query(Location).filter(Location.organization_id == organization_id).update(
                {Location.is_main_location: False}
            )
        location = Location(organization_id=organization_id, name=name,
                            is_main_location=is_main_location, **address)
        db.add(location)
        db.flush()
        _log(db, actor, "create", "location", location.id, organization_id=organization_id)
    return location


def create_driver(db: Session, organization_id: str, first_name: str, last_name: str,
                  location_id: str | None = None, actor: str | None = None, **person_fields) -> Party:
    with atomic(db):
        _get_organization(db, organization_id)
        _check_location(db, organization_id, location_id)
        party = _add_person_party(db, None, first_name, last_name, **person_fields)
        _add_role(db, party.id, RoleKind.DRIVER, organization_id, location_id)
        _log(db, actor, "create", "driver", party.person.id, organization_id=organization_id)
    return party


def create_equipment(db: Session, organization_id: str, unit_number: str,
                     location_id: str | None = None, actor: str | None = None, **fields) -> Party:
    with atomic(db):
        _get_organization(db, organization_id)
        _check_location(db, organization_id, location_id)
        party = Party(status=PartyStatus.ACTIVE)
        party.equipment = Equipment(unit_number=unit_number, **fields)
        db.add(party)
        db.flush()
        _add_role(db, party.id, RoleKind.EQUIPMENT, organization_id, location_id)
        _log(db, actor, "create", "equipment", party.equipment.id, organization_id=organization_id)
    return party


STAFF_FIELDS = ("position", "department", "can_sign_cafs", "can_approve_cafs", "is_active")


def create_staff(db: Session, organization_id: str, party_id: str, actor: str | None = None,
                 **fields) -> Staff:
    """Give a person the staff record CAFs are assigned to and signed by.

    A person with no active role in the organization joins it as ``staff``.
    """
    party = db.query(Party).filter(Party.id == party_id).first()
    if party is None or party.person is None:
        raise GrantError("Staff records require a person party")
    if db.query(Staff).filter(Staff.party_id == party_id).first() is not None:
        raise GrantError("Staff record already exists for this party")

    with atomic(db):
        _get_organization(db, organization_id)
        member = (
            db.query(Role)
            .filter(Role.party_id == party_id, Role.organization_id == organization_id,
                    *active_role_filter())
            .first()
        )
        if member is None:
            _add_role(db, party_id, RoleKind.STAFF, organization_id)
        staff = Staff(party_id=party_id, is_active=True,
                      **{k: v for k, v in fields.items() if k in STAFF_FIELDS and v is not None})
        db.add(staff)
        db.flush()
        _log(db, actor, "create", "staff", staff.id, organization_id=organization_id, party_id=party_id)
    return staff


def update_staff(db: Session, staff: Staff, organization_id: str, actor: str | None = None,
                 **changes) -> Staff:
    changes = {k: v for k, v in changes.items() if k in STAFF_FIELDS and v is not None}
    with atomic(db):
        for key, value in changes.items():
            setattr(staff, key, value)
        _log(db, actor, "update", "staff", staff.id, organization_id=organization_id, **changes)
    return staff
