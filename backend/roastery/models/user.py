import enum
import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Enum as SAEnum, JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from roastery.database import Base


class UserRole(str, enum.Enum):
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    ROASTER = "ROASTER"
    CASHIER = "CASHIER"
    WAREHOUSE_STAFF = "WAREHOUSE_STAFF"


# Roles allowed to approve/reject adjustments and reprint receipts
PRIVILEGED_ROLES = (UserRole.ADMIN, UserRole.MANAGER)


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    email: Mapped[str] = mapped_column(
        String(255), unique=True, nullable=False, index=True
    )
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[UserRole] = mapped_column(SAEnum(UserRole), default=UserRole.CASHIER)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    # Granular RBAC: per-user overrides on top of role defaults.
    # JSON dict of {"permission.name": true/false}.
    # null = use role defaults only.
    custom_permissions: Mapped[dict | None] = mapped_column(JSON, default=None)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    @property
    def is_privileged(self) -> bool:
        return self.role in PRIVILEGED_ROLES
