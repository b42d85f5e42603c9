"""
Actor Domain Model

The already-authenticated employee invoking the engine. Identity is
verified upstream; the engine only reads the permission set.
"""
from pydantic import BaseModel, Field, ConfigDict
from typing import FrozenSet, Iterable, Optional


VOID_TRANSACTIONS = "void_transactions"
PROCESS_REFUNDS = "process_refunds"
OVERRIDE_PRICES = "override_prices"
MANAGE_INVENTORY = "manage_inventory"
MANAGE_LOYALTY = "manage_loyalty"

ALL_PERMISSIONS = frozenset({
    VOID_TRANSACTIONS,
    PROCESS_REFUNDS,
    OVERRIDE_PRICES,
    MANAGE_INVENTORY,
    MANAGE_LOYALTY,
})

# Role defaults; explicit grants on the token are added on top
ROLE_PERMISSIONS = {
    "admin": ALL_PERMISSIONS,
    "manager": ALL_PERMISSIONS,
    "supervisor": frozenset({VOID_TRANSACTIONS, PROCESS_REFUNDS, OVERRIDE_PRICES}),
    "cashier": frozenset(),
}


class Actor(BaseModel):
    """Employee context extracted from the session token"""

    id: str = Field(..., description="Employee ID")
    name: Optional[str] = Field(None, description="Display name")
    role: str = Field("cashier", description="admin, manager, supervisor or cashier")
    permissions: FrozenSet[str] = Field(default_factory=frozenset)

    model_config = ConfigDict(frozen=True)

    @classmethod
    def for_role(cls, actor_id: str, role: str, extra: Iterable[str] = (), name: Optional[str] = None) -> "Actor":
        granted = set(ROLE_PERMISSIONS.get(role, frozenset())) | set(extra)
        return cls(id=actor_id, name=name, role=role, permissions=frozenset(granted))

    def can(self, permission: str) -> bool:
        return permission in self.permissions
