"""Granular permission system for roastery RBAC.

Design:
  - Each role has a set of DEFAULT permissions (defined here, not in DB).
  - Admins can grant/revoke individual permissions per user via
    `User.custom_permissions` (a JSON dict of {perm: True/False} overrides).
  - `resolve_permissions(role, custom_permissions)` computes the effective
    permission set for a given user.
  - The effective set is embedded in the JWT so route checks are token-only.

Permission naming: `<resource>.<action>`
  Resources: batch, packaging, inventory, adjustment, transfer,
             sales, reports, reconciliation
"""

from __future__ import annotations


# ── All known permissions ───────────────────────────────────

ALL_PERMISSIONS: set[str] = {
    # Roasting
    "batch.read",
    "batch.write",            # start / finish batches
    "packaging.write",        # allocate roasted weight into packaged units

    # Stock
    "inventory.read",
    "adjustment.write",       # submit adjustments
    "adjustment.approve",     # approve / reject pending adjustments
    "transfer.read",
    "transfer.write",

    # Point of sale
    "sales.write",

    # Back office
    "reports.read",
    "reconciliation.run",
}


# ── Role → default permissions ──────────────────────────────

ROLE_DEFAULTS: dict[str, set[str]] = {
    "ADMIN": ALL_PERMISSIONS.copy(),

    "MANAGER": ALL_PERMISSIONS - {"reconciliation.run"},

    "ROASTER": {
        "batch.read", "batch.write",
        "packaging.write",
        "inventory.read",
    },

    "CASHIER": {
        "inventory.read",
        "sales.write",
    },

    "WAREHOUSE_STAFF": {
        "inventory.read",
        "adjustment.write",
        "transfer.read", "transfer.write",
    },
}


# ── Resolution ──────────────────────────────────────────────

def resolve_permissions(
    role: str,
    custom_overrides: dict[str, bool] | None = None,
) -> list[str]:
    """Compute effective permissions for a user.

    1. Start with the role's defaults.
    2. Apply custom_overrides: {perm: True} adds, {perm: False} removes.
    3. Return a sorted list (for stable JWT claims).
    """
    base = ROLE_DEFAULTS.get(role, set()).copy()

    if custom_overrides:
        for perm, granted in custom_overrides.items():
            if perm not in ALL_PERMISSIONS:
                continue  # ignore unknown permissions
            if granted:
                base.add(perm)
            else:
                base.discard(perm)

    return sorted(base)


def has_permission(user_permissions: list[str] | set[str], required: str) -> bool:
    """Check whether a permission set satisfies a requirement."""
    return required in user_permissions
