from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.chms.models import Base, SerializerMixin


class Communication(SerializerMixin, Base):
    __tablename__ = "communications"
    __table_args__ = (
        Index("idx_communications_group", "target_group_id"),
        Index("idx_communications_member", "target_member_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)

    sent_by_member_id: Mapped[int | None] = mapped_column(ForeignKey("members.id", ondelete="SET NULL"), nullable=True)
    sent_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    # Audience: a group, a single member, or neither (system notice).
    target_group_id: Mapped[int | None] = mapped_column(ForeignKey("church_groups.id", ondelete="CASCADE"), nullable=True)
    target_member_id: Mapped[int | None] = mapped_column(ForeignKey("members.id", ondelete="CASCADE"), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    deliveries: Mapped[list["CommunicationDelivery"]] = relationship(
        back_populates="communication",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
    )


class CommunicationDelivery(SerializerMixin, Base):
    __tablename__ = "communication_deliveries"
    __table_args__ = (
        Index("idx_deliveries_status", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    communication_id: Mapped[int] = mapped_column(ForeignKey("communications.id", ondelete="CASCADE"), nullable=False)
    member_id: Mapped[int] = mapped_column(ForeignKey("members.id", ondelete="CASCADE"), nullable=False)
    channel: Mapped[str] = mapped_column(String(16), nullable=False)  # Email, SMS, InApp
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="Pending")  # Pending, Sent, Failed
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    error_message: Mapped[str | None] = mapped_column(String(512), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    communication: Mapped[Communication] = relationship(back_populates="deliveries")
