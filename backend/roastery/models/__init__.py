"""Aggregate model imports for Alembic auto-detection."""

# Identity
from roastery.models.user import User, UserRole  # noqa: F401

# Catalog
from roastery.models.catalog import (  # noqa: F401
    GreenBean, Location, PackageTemplate, ProductDefinition,
)

# Roasting & packaging
from roastery.models.roasting_batch import (  # noqa: F401
    BatchHistory, BatchStatus, PackagingUnit, RoastingBatch,
)

# Inventory movements
from roastery.models.inventory import (  # noqa: F401
    AdjustmentStatus, InventoryItem, StockAdjustment, StockTransfer, TransferStatus,
)

# Sales
from roastery.models.sale import ReprintLog, SaleTransaction  # noqa: F401

# Audit & reconciliation
from roastery.models.activity_log import ActivityLog  # noqa: F401
from roastery.models.reconciliation_alert import ReconciliationAlert  # noqa: F401
