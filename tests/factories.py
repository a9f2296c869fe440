"""Factory functions for test definitions, principals and log entries.

All factories have sensible defaults that can be overridden via keyword
arguments.

Usage::

    from tests.factories import make_definitions, make_principal

    def test_something():
        definitions = make_definitions()
        admin = make_principal("u1", roles=["admin"])
"""

from typing import Any, Dict, Iterable, Optional

from stateflow.core.audit import AuditLogEntry
from stateflow.core.definitions import InMemoryDefinitionStore, parse_definitions
from stateflow.core.identity import EntityRef, Principal

# ---------------------------------------------------------------------------
# Definition ids
# ---------------------------------------------------------------------------

ORDER_MACHINE = 1
NEW, PAID, SHIPPED, CANCELLED = 1, 2, 3, 4
PAY, CANCEL, SHIP = 1, 2, 3

DOCUMENT_MACHINE = 2
DRAFT, REVIEW, PUBLISHED = 5, 6, 7
SUBMIT, PUBLISH, REJECT, ESCALATE = 4, 5, 6, 7


DEFINITION_DOCUMENT: Dict[str, Any] = {
    "machines": [
        {
            "id": ORDER_MACHINE,
            "slug": "order",
            "name": "Order",
            "states": [
                {"id": NEW, "slug": "new", "name": "New", "kind": "initial"},
                {"id": PAID, "slug": "paid", "name": "Paid"},
                {"id": SHIPPED, "slug": "shipped", "name": "Shipped", "kind": "final"},
                {"id": CANCELLED, "slug": "cancelled", "name": "Cancelled", "kind": "final"},
            ],
            "transitions": [
                {"id": CANCEL, "label": "cancel", "from": "new", "to": "cancelled", "sort_order": 2},
                {"id": PAY, "label": "pay", "from": "new", "to": "paid", "sort_order": 1},
                {
                    "id": SHIP,
                    "label": "ship",
                    "from": "paid",
                    "to": "shipped",
                    "guard": "role",
                    "metadata": {"required_roles": ["admin"]},
                },
            ],
        },
        {
            "id": DOCUMENT_MACHINE,
            "slug": "document",
            "name": "Document",
            "initial_state": "draft",
            "states": [
                {"id": DRAFT, "slug": "draft"},
                {"id": REVIEW, "slug": "review"},
                {"id": PUBLISHED, "slug": "published", "kind": "final"},
            ],
            "transitions": [
                {"id": SUBMIT, "label": "submit", "from": "draft", "to": "review", "guard": "owner"},
                {
                    "id": PUBLISH,
                    "label": "publish",
                    "from": "review",
                    "to": "published",
                    "guard": "capability",
                    "metadata": {"required_capability": "documents:publish"},
                },
                {
                    "id": REJECT,
                    "label": "reject",
                    "from": "review",
                    "to": "draft",
                    "guard": "callback",
                    "metadata": {"callback": "can_reject"},
                },
                {"id": ESCALATE, "label": "escalate", "from": "review", "to": "published", "guard": "committee"},
            ],
        },
    ]
}


def make_definitions() -> InMemoryDefinitionStore:
    """The order and document machines."""
    return parse_definitions(DEFINITION_DOCUMENT)


def make_principal(
    principal_id: str = "user-1",
    roles: Iterable[str] = (),
    capabilities: Iterable[str] = (),
    name: Optional[str] = None,
) -> Principal:
    return Principal.of(principal_id, roles=roles, capabilities=capabilities, name=name)


def make_entity(entity_id="1", entity_type: str = "order", owner_id: Optional[str] = None) -> EntityRef:
    return EntityRef(entity_type, str(entity_id), owner_id)


def make_entry(**overrides) -> AuditLogEntry:
    """An unsaved log entry for the order machine's pay transition."""
    fields: Dict[str, Any] = {
        "machine_id": ORDER_MACHINE,
        "entity_type": "order",
        "entity_id": "1",
        "from_state_id": NEW,
        "to_state_id": PAID,
        "transition_id": PAY,
        "principal_id": "user-1",
    }
    fields.update(overrides)
    return AuditLogEntry(**fields)


def principal_headers(principal: Principal, tenant: Optional[str] = None) -> Dict[str, str]:
    """Request headers carrying ``principal`` the way the identity proxy sends them."""
    headers = {
        "X-Principal-Id": principal.id,
        "X-Principal-Roles": ",".join(sorted(principal.roles)),
        "X-Principal-Capabilities": ",".join(sorted(principal.capabilities)),
    }
    if principal.name:
        headers["X-Principal-Name"] = principal.name
    if tenant:
        headers["X-Tenant"] = tenant
    return headers
