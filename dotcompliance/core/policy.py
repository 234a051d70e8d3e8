"""Access decisions over a resolved scope.

``authorize`` is a pure function of the scope it is given: it never queries the
store. The only side effect is reporting an integrity violation when the scope
carries a grant onto an organization that no longer exists.
"""

import enum
import logging
from dataclasses import dataclass

from dotcompliance.core.errors import DecisionReason, error_for_reason
from dotcompliance.core.reporting import Reporter, default_reporter
from dotcompliance.core.scope import ROLE_PRECEDENCE, Scope
from dotcompliance.models.models import RoleKind

logger = logging.getLogger(__name__)


class Operation(str, enum.Enum):
    VIEW_ORGANIZATION = "view_organization"
    UPDATE_ORGANIZATION = "update_organization"
    CREATE_ORGANIZATION = "create_organization"
    VIEW_LOCATION = "view_location"
    CREATE_LOCATION = "create_location"
    UPDATE_LOCATION = "update_location"
    VIEW_DRIVER = "view_driver"
    MANAGE_DRIVER = "manage_driver"
    VIEW_EQUIPMENT = "view_equipment"
    MANAGE_EQUIPMENT = "manage_equipment"
    VIEW_ISSUE = "view_issue"
    MANAGE_ISSUE = "manage_issue"
    GENERATE_CAFS = "generate_cafs"
    VIEW_CAF = "view_caf"
    SIGN_CAF = "sign_caf"
    GRANT_ROLE = "grant_role"
    REVOKE_ROLE = "revoke_role"


VIEW_OPERATIONS = frozenset({
    Operation.VIEW_ORGANIZATION,
    Operation.VIEW_LOCATION,
    Operation.VIEW_DRIVER,
    Operation.VIEW_EQUIPMENT,
    Operation.VIEW_ISSUE,
    Operation.VIEW_CAF,
})

COMPLIANCE_OPERATIONS = frozenset({
    Operation.MANAGE_ISSUE,
    Operation.GENERATE_CAFS,
    Operation.SIGN_CAF,
})

# Top-level resources and grants stay with organization-level roles.
ORGANIZATION_LEVEL_OPERATIONS = frozenset(Operation) - {Operation.CREATE_ORGANIZATION}

LOCATION_OPERATIONS = VIEW_OPERATIONS | COMPLIANCE_OPERATIONS | {
    Operation.UPDATE_LOCATION,
    Operation.MANAGE_DRIVER,
    Operation.MANAGE_EQUIPMENT,
}

# Operations on entities that belong to a location; a location role must match it.
LOCATION_SCOPED_OPERATIONS = frozenset(Operation) - {
    Operation.VIEW_ORGANIZATION,
    Operation.UPDATE_ORGANIZATION,
    Operation.CREATE_ORGANIZATION,
}

ALLOWED_OPERATIONS = {
    RoleKind.MASTER: frozenset(Operation),
    RoleKind.ORGANIZATION: ORGANIZATION_LEVEL_OPERATIONS,
    RoleKind.ADMIN: ORGANIZATION_LEVEL_OPERATIONS,
    RoleKind.MANAGER: ORGANIZATION_LEVEL_OPERATIONS,
    RoleKind.LOCATION: LOCATION_OPERATIONS,
    RoleKind.STAFF: VIEW_OPERATIONS | COMPLIANCE_OPERATIONS,
    RoleKind.CONSULTANT: VIEW_OPERATIONS,
    RoleKind.DRIVER: frozenset(),
    RoleKind.EQUIPMENT: frozenset(),
}


@dataclass(frozen=True)
class Decision:
    allow: bool
    reason: DecisionReason

    def __bool__(self) -> bool:
        return self.allow

    def raise_for_denial(self, detail: str | None = None) -> None:
        if not self.allow:
            raise error_for_reason(self.reason, detail)


def _deny(reason: DecisionReason) -> Decision:
    return Decision(allow=False, reason=reason)


def authorize(
    scope: Scope,
    operation: Operation | str,
    target_organization_id: str | None,
    target_entity_owner_organization_id: str | None = None,
    target_location_id: str | None = None,
    reporter: Reporter | None = None,
) -> Decision:
    operation = Operation(operation)

    if not scope.is_authenticated:
        return _deny(DecisionReason.UNAUTHENTICATED)

    if target_organization_id is not None and target_organization_id in scope.dangling_organization_ids:
        (reporter or default_reporter).report(
            LookupError(f"Role grant references missing organization {target_organization_id}"),
            {
                "principal_id": scope.principal_id,
                "organization_id": target_organization_id,
                "operation": operation.value,
            },
        )
        return _deny(DecisionReason.INTEGRITY_VIOLATION)

    if scope.is_master:
        return Decision(allow=True, reason=DecisionReason.MASTER)

    if target_organization_id is None or target_organization_id not in scope.granted_organization_ids:
        return _deny(DecisionReason.NOT_IN_SCOPE)

    if (
        target_entity_owner_organization_id is not None
        and target_entity_owner_organization_id != target_organization_id
    ):
        return _deny(DecisionReason.NOT_IN_SCOPE)

    kind = scope.role_kind_for(target_organization_id)
    if operation not in ALLOWED_OPERATIONS.get(kind, frozenset()):
        logger.debug("%s role cannot %s in %s", kind, operation.value, target_organization_id)
        return _deny(DecisionReason.INVALID_OPERATION)

    if kind == RoleKind.LOCATION and operation in LOCATION_SCOPED_OPERATIONS:
        allowed_locations = scope.location_ids_by_organization.get(target_organization_id, frozenset())
        if target_location_id is None or target_location_id not in allowed_locations:
            return _deny(DecisionReason.NOT_IN_SCOPE)

    return Decision(allow=True, reason=DecisionReason.GRANTED)


def require(scope: Scope, operation: Operation | str, target_organization_id: str | None, **kwargs) -> Decision:
    """Authorize or raise the matching ``AccessError``."""
    decision = authorize(scope, operation, target_organization_id, **kwargs)
    decision.raise_for_denial()
    return decision


def authorize_role_change(scope: Scope, kind: RoleKind | str, target_organization_id: str | None) -> Decision:
    """Whether the scope may grant or revoke a role of ``kind`` on the organization.

    Only a master hands out or takes away ``master``; anyone else is limited to
    kinds no stronger than the one they hold on that organization.
    """
    kind = RoleKind(kind)
    if scope.is_master:
        return Decision(allow=True, reason=DecisionReason.MASTER)
    if kind == RoleKind.MASTER or target_organization_id is None:
        return _deny(DecisionReason.INVALID_OPERATION)
    own = scope.role_kind_for(target_organization_id)
    if own is None or ROLE_PRECEDENCE[kind] > ROLE_PRECEDENCE[own]:
        return _deny(DecisionReason.INVALID_OPERATION)
    return Decision(allow=True, reason=DecisionReason.GRANTED)
