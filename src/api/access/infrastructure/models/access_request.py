"""SQLAlchemy ORM models for the access_requests and access_request_items tables.

A request row holds who asked for what on whose behalf. Its status is not
stored; it is derived from the statuses of its item rows.
"""

from datetime import datetime

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from infrastructure.database.models import Base, TimestampMixin


class AccessRequestModel(Base, TimestampMixin):
    """ORM model for access_requests table.

    Notes:
    - User ids are VARCHAR(255) to match catalog identifiers
    - copied_from_user_id is set when the request mirrors another user's grants
    """

    __tablename__ = "access_requests"

    id: Mapped[str] = mapped_column(String(26), primary_key=True)
    requester_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    target_user_id: Mapped[str] = mapped_column(
        String(255), nullable=False, index=True
    )
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    copied_from_user_id: Mapped[str | None] = mapped_column(
        String(255), nullable=True
    )

    def __repr__(self) -> str:
        """Return string representation."""
        return (
            f"<AccessRequestModel(id={self.id}, requester_id={self.requester_id}, "
            f"target_user_id={self.target_user_id})>"
        )


class AccessRequestItemModel(Base, TimestampMixin):
    """ORM model for access_request_items table.

    Item status changes are written with a conditional update on the
    previous status, so two deciders racing on the same item cannot both win.

    Foreign Key Constraints:
    - access_request_id references access_requests.id with CASCADE delete
    - access_grant_id references access_grants.id with RESTRICT delete
    """

    __tablename__ = "access_request_items"

    id: Mapped[str] = mapped_column(String(26), primary_key=True)
    access_request_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("access_requests.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    system_instance_id: Mapped[str] = mapped_column(String(255), nullable=False)
    access_tier_id: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    decided_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    decided_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    access_grant_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("access_grants.id", ondelete="RESTRICT"),
        nullable=True,
    )

    __table_args__ = (
        UniqueConstraint(
            "access_request_id",
            "system_instance_id",
            "access_tier_id",
            name="uq_access_request_items_request_pair",
        ),
        Index(
            "idx_access_request_items_request_position",
            "access_request_id",
            "position",
        ),
    )

    def __repr__(self) -> str:
        """Return string representation."""
        return (
            f"<AccessRequestItemModel(id={self.id}, "
            f"access_request_id={self.access_request_id}, status={self.status})>"
        )
