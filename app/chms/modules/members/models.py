from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.chms.models import Base, SerializerMixin


class Member(SerializerMixin, Base):
    __tablename__ = "members"
    __table_args__ = (
        Index("idx_members_family_name", "family_name"),
        Index("idx_members_branch", "branch_id"),
        Index("idx_members_status", "membership_status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    family_name: Mapped[str] = mapped_column(String(100), nullable=False)
    other_names: Mapped[str | None] = mapped_column(String(100), nullable=True)
    gender: Mapped[str] = mapped_column(String(16), nullable=False, default="Male")
    date_of_birth: Mapped[date | None] = mapped_column(Date, nullable=True)
    email_address: Mapped[str] = mapped_column(String(320), nullable=False)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    occupation: Mapped[str | None] = mapped_column(String(128), nullable=True, default="Not Applicable")

    branch_id: Mapped[int] = mapped_column(ForeignKey("branches.id"), nullable=False, default=1)
    membership_status: Mapped[str] = mapped_column(String(16), nullable=False, default="Active")  # Active, Inactive
    registration_date: Mapped[date] = mapped_column(Date, nullable=False, default=date.today)

    photo_storage_key: Mapped[str | None] = mapped_column(String(512), nullable=True)

    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    phones: Mapped[list["MemberPhone"]] = relationship(
        back_populates="member",
        cascade="all, delete-orphan",
        order_by="MemberPhone.id",
        lazy="selectin",
    )

    @property
    def full_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.other_names, self.family_name) if p)


class MemberPhone(SerializerMixin, Base):
    __tablename__ = "member_phones"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    member_id: Mapped[int] = mapped_column(ForeignKey("members.id", ondelete="CASCADE"), nullable=False, index=True)
    phone_number: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    phone_type: Mapped[str] = mapped_column(String(16), nullable=False, default="Mobile")  # Mobile, Home, Work, Other
    is_primary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    member: Mapped[Member] = relationship(back_populates="phones")
