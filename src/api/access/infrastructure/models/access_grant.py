"""SQLAlchemy ORM model for the access_grants table."""

from datetime import datetime

from sqlalchemy import DateTime, Index, String, text
from sqlalchemy.orm import Mapped, mapped_column

from infrastructure.database.models import Base, TimestampMixin


class AccessGrantModel(Base, TimestampMixin):
    """ORM model for access_grants table.

    Removed rows are kept as history. A new grant for the same
    (user, instance, tier) is a new row.

    Partial Unique Index:
    - At most one non-removed grant per (user_id, system_instance_id, access_tier_id)
    """

    __tablename__ = "access_grants"

    id: Mapped[str] = mapped_column(String(26), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    system_instance_id: Mapped[str] = mapped_column(String(255), nullable=False)
    access_tier_id: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    granted_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    granted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    removed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        Index(
            "idx_access_grants_current_unique",
            "user_id",
            "system_instance_id",
            "access_tier_id",
            unique=True,
            postgresql_where=text("status <> 'removed'"),
            sqlite_where=text("status <> 'removed'"),
        ),
        Index(
            "idx_access_grants_user_pair",
            "user_id",
            "system_instance_id",
            "access_tier_id",
        ),
    )

    def __repr__(self) -> str:
        """Return string representation."""
        return (
            f"<AccessGrantModel(id={self.id}, user_id={self.user_id}, "
            f"system_instance_id={self.system_instance_id}, "
            f"access_tier_id={self.access_tier_id}, status={self.status})>"
        )
