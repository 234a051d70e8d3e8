from dotcompliance.core.errors import OrganizationNotFound
from dotcompliance.services.party_graph import PartyGraph


def expand_organization(graph: PartyGraph, organization_id: str) -> frozenset[str]:
    """Return the organization's own party id plus every member driver/equipment party.

    Members are parties with a Person or Equipment record holding an active role
    that targets the organization. Computed on every call; role grants may change
    between requests.
    """
    organization = graph.find_organization_by_id(organization_id)
    if organization is None:
        raise OrganizationNotFound(organization_id)
    members = graph.find_role_targets_by_organization(organization_id)
    return frozenset([organization.party_id, *members])
