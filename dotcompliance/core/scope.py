"""Resolve what a principal may act on.

A principal can be bound to several parties (a person party, the party of an
organization it owns, a consultant party, and occasionally duplicates left
behind by earlier onboarding flows). Roles are unioned across all of them.

Master status has two independent sources that are both honored:

* an active ``master`` role held by any of the principal's parties
* direct ownership of an organization (the organization's party carries the
  principal's user id), with or without a role row
"""

import logging
from dataclasses import dataclass, field

from dotcompliance.models.models import RoleKind
from dotcompliance.services.party_graph import PartyGraph

logger = logging.getLogger(__name__)

# Higher wins when several roles target the same organization.
ROLE_PRECEDENCE = {
    RoleKind.MASTER: 80,
    RoleKind.ORGANIZATION: 70,
    RoleKind.ADMIN: 60,
    RoleKind.MANAGER: 50,
    RoleKind.LOCATION: 40,
    RoleKind.STAFF: 30,
    RoleKind.CONSULTANT: 20,
    RoleKind.DRIVER: 10,
    RoleKind.EQUIPMENT: 10,
}


@dataclass(frozen=True)
class Scope:
    principal_id: str | None
    is_master: bool = False
    owned_organization_id: str | None = None
    owned_organization_ids: frozenset = frozenset()
    granted_organization_ids: frozenset = frozenset()
    role_kind_by_organization: dict = field(default_factory=dict)
    location_ids_by_organization: dict = field(default_factory=dict)
    is_consultant: bool = False
    dangling_organization_ids: frozenset = frozenset()
    party_ids: frozenset = frozenset()

    @classmethod
    def anonymous(cls) -> "Scope":
        return cls(principal_id=None)

    @property
    def is_authenticated(self) -> bool:
        return self.principal_id is not None

    @property
    def is_empty(self) -> bool:
        return not self.party_ids and not self.granted_organization_ids

    def role_kind_for(self, organization_id: str) -> RoleKind | None:
        return self.role_kind_by_organization.get(organization_id)

    @property
    def management_level(self) -> str:
        if self.is_consultant and not self.is_master and not self.granted_organization_ids:
            return "consultant"
        if self.is_master:
            return "master"
        if not self.party_ids:
            return "new_user"
        kinds = set(self.role_kind_by_organization.values())
        if kinds & {RoleKind.ORGANIZATION, RoleKind.ADMIN, RoleKind.MANAGER}:
            return "organization"
        if RoleKind.LOCATION in kinds:
            return "location"
        return "organization"


def _stronger(current: RoleKind | None, candidate: RoleKind) -> RoleKind:
    if current is None:
        return candidate
    return candidate if ROLE_PRECEDENCE[candidate] > ROLE_PRECEDENCE[current] else current


def resolve_scope(graph: PartyGraph, principal_id: str | None) -> Scope:
    if principal_id is None:
        return Scope.anonymous()

    parties = graph.find_parties_by_principal(principal_id)
    if len([p for p in parties if p.kind == "person"]) > 1:
        logger.warning("Principal %s has multiple person parties; unioning roles", principal_id)

    owned = [p.organization for p in parties if p.organization is not None]
    owned.sort(key=lambda o: (o.created_at is None, o.created_at, o.id))
    owned_ids = [o.id for o in owned]

    has_master_role = False
    is_consultant = False
    kinds: dict[str, RoleKind] = {o: RoleKind.MASTER for o in owned_ids}
    locations: dict[str, set[str]] = {}
    dangling: set[str] = set()
    known_orgs: dict[str, bool] = {o: True for o in owned_ids}

    for party in parties:
        for role in graph.find_active_roles_by_party(party.id):
            kind = RoleKind(role.role_type)
            if kind == RoleKind.MASTER:
                has_master_role = True
            if kind == RoleKind.CONSULTANT:
                is_consultant = True

            org_id = role.organization_id
            if org_id is None:
                continue
            if org_id not in known_orgs:
                known_orgs[org_id] = graph.find_organization_by_id(org_id) is not None
            if not known_orgs[org_id]:
                logger.debug("Role %s targets missing organization %s", role.id, org_id)
                dangling.add(org_id)
                continue

            kinds[org_id] = _stronger(kinds.get(org_id), kind)
            if kind == RoleKind.LOCATION and role.location_id:
                locations.setdefault(org_id, set()).add(role.location_id)

    return Scope(
        principal_id=principal_id,
        is_master=has_master_role or bool(owned_ids),
        owned_organization_id=owned_ids[0] if owned_ids else None,
        owned_organization_ids=frozenset(owned_ids),
        granted_organization_ids=frozenset(kinds),
        role_kind_by_organization=kinds,
        location_ids_by_organization={k: frozenset(v) for k, v in locations.items()},
        is_consultant=is_consultant,
        dangling_organization_ids=frozenset(dangling),
        party_ids=frozenset(p.id for p in parties),
    )
