"""initial church management schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-16

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "0001_initial"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _created_at(name: str = "created_at") -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=False), nullable=False, server_default=sa.func.current_timestamp())


def _ts(name: str) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=False), nullable=True)


def _user_fk(name: str) -> sa.Column:
    return sa.Column(name, sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)


def upgrade() -> None:
    # ---------- Core ----------
    op.create_table(
        "branches",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=128), nullable=False, unique=True),
        sa.Column("address", sa.Text(), nullable=True),
        _created_at(),
    )

    op.create_table(
        "members",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("first_name", sa.String(length=100), nullable=False),
        sa.Column("family_name", sa.String(length=100), nullable=False),
        sa.Column("other_names", sa.String(length=100), nullable=True),
        sa.Column("gender", sa.String(length=16), nullable=False, server_default="Male"),
        sa.Column("date_of_birth", sa.Date(), nullable=True),
        sa.Column("email_address", sa.String(length=320), nullable=False),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("occupation", sa.String(length=128), nullable=True),
        sa.Column("branch_id", sa.Integer(), sa.ForeignKey("branches.id"), nullable=False),
        sa.Column("membership_status", sa.String(length=16), nullable=False, server_default="Active"),
        sa.Column("registration_date", sa.Date(), nullable=False, server_default=sa.func.current_date()),
        sa.Column("photo_storage_key", sa.String(length=512), nullable=True),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        _ts("deleted_at"),
        _created_at(),
        _created_at("updated_at"),
    )
    op.create_index("idx_members_family_name", "members", ["family_name"])
    op.create_index("idx_members_branch", "members", ["branch_id"])
    op.create_index("idx_members_status", "members", ["membership_status"])

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("username", sa.String(length=64), nullable=False, unique=True),
        sa.Column("email", sa.String(length=320), nullable=True),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("member_id", sa.Integer(), sa.ForeignKey("members.id", ondelete="SET NULL"), nullable=True, unique=True),
        _ts("last_login_at"),
        _created_at(),
    )

    op.create_table(
        "roles",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("key", sa.String(length=64), nullable=False, unique=True),
        sa.Column("name", sa.String(length=128), nullable=False),
        _created_at(),
    )
    op.create_table(
        "permissions",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("key", sa.String(length=128), nullable=False, unique=True),
        sa.Column("name", sa.String(length=128), nullable=False),
        _created_at(),
    )
    op.create_table(
        "user_roles",
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("role_id", sa.Integer(), sa.ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    )
    op.create_table(
        "role_permissions",
        sa.Column("role_id", sa.Integer(), sa.ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("permission_id", sa.Integer(), sa.ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True),
    )

    op.create_table(
        "audit_log",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        _created_at(),
        sa.Column("request_id", sa.String(length=64), nullable=True),
        _user_fk("actor_user_id"),
        sa.Column("actor_username", sa.String(length=64), nullable=True),
        sa.Column("action", sa.String(length=128), nullable=False),
        sa.Column("entity_type", sa.String(length=128), nullable=True),
        sa.Column("entity_id", sa.String(length=128), nullable=True),
        sa.Column("reason", sa.String(length=512), nullable=True),
        sa.Column("changes_json", sa.Text(), nullable=True),
        sa.Column("metadata_json", sa.Text(), nullable=True),
        sa.Column("ip_address", sa.String(length=64), nullable=True),
        sa.Column("user_agent", sa.String(length=512), nullable=True),
    )
    op.create_index("idx_audit_log_entity", "audit_log", ["entity_type", "entity_id"])
    op.create_index("idx_audit_log_actor", "audit_log", ["actor_user_id"])
    op.create_index("idx_audit_log_created_at", "audit_log", ["created_at"])

    op.create_table(
        "login_log",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("username", sa.String(length=64), nullable=False),
        sa.Column("success", sa.Boolean(), nullable=False),
        sa.Column("ip_address", sa.String(length=64), nullable=True),
        sa.Column("user_agent", sa.String(length=512), nullable=True),
        _created_at(),
    )

    # ---------- Members / families ----------
    op.create_table(
        "member_phones",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("member_id", sa.Integer(), sa.ForeignKey("members.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("phone_number", sa.String(length=32), nullable=False, unique=True),
        sa.Column("phone_type", sa.String(length=16), nullable=False, server_default="Mobile"),
        sa.Column("is_primary", sa.Boolean(), nullable=False, server_default=sa.false()),
        _created_at(),
    )

    op.create_table(
        "families",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False, unique=True),
        sa.Column("head_id", sa.Integer(), sa.ForeignKey("members.id"), nullable=False),
        sa.Column("branch_id", sa.Integer(), sa.ForeignKey("branches.id"), nullable=False),
        _created_at(),
        _created_at("updated_at"),
    )
    op.create_table(
        "family_members",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("family_id", sa.Integer(), sa.ForeignKey("families.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("member_id", sa.Integer(), sa.ForeignKey("members.id", ondelete="CASCADE"), nullable=False, unique=True),
        sa.Column("role", sa.String(length=16), nullable=False),
        _created_at("joined_at"),
    )

    # ---------- Groups / communications ----------
    op.create_table(
        "group_types",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False, unique=True),
        sa.Column("description", sa.Text(), nullable=True),
        _created_at(),
    )
    op.create_table(
        "church_groups",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False, unique=True),
        sa.Column("leader_id", sa.Integer(), sa.ForeignKey("members.id"), nullable=False, index=True),
        sa.Column("type_id", sa.Integer(), sa.ForeignKey("group_types.id"), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        _created_at(),
        _created_at("updated_at"),
    )
    op.create_table(
        "group_members",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("group_id", sa.Integer(), sa.ForeignKey("church_groups.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("member_id", sa.Integer(), sa.ForeignKey("members.id", ondelete="CASCADE"), nullable=False, index=True),
        _created_at("joined_at"),
        sa.UniqueConstraint("group_id", "member_id", name="uq_group_members_group_member"),
    )

    op.create_table(
        "communications",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("sent_by_member_id", sa.Integer(), sa.ForeignKey("members.id", ondelete="SET NULL"), nullable=True),
        _user_fk("sent_by_user_id"),
        sa.Column("target_group_id", sa.Integer(), sa.ForeignKey("church_groups.id", ondelete="CASCADE"), nullable=True),
        sa.Column("target_member_id", sa.Integer(), sa.ForeignKey("members.id", ondelete="CASCADE"), nullable=True),
        _created_at(),
    )
    op.create_index("idx_communications_group", "communications", ["target_group_id"])
    op.create_index("idx_communications_member", "communications", ["target_member_id"])

    op.create_table(
        "communication_deliveries",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("communication_id", sa.Integer(), sa.ForeignKey("communications.id", ondelete="CASCADE"), nullable=False),
        sa.Column("member_id", sa.Integer(), sa.ForeignKey("members.id", ondelete="CASCADE"), nullable=False),
        sa.Column("channel", sa.String(length=16), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="Pending"),
        _ts("delivered_at"),
        sa.Column("error_message", sa.String(length=512), nullable=True),
        _created_at(),
    )
    op.create_index("idx_deliveries_status", "communication_deliveries", ["status"])

    # ---------- Membership types ----------
    op.create_table(
        "membership_types",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False, unique=True),
        sa.Column("description", sa.Text(), nullable=True),
        _created_at(),
        _created_at("updated_at"),
    )
    op.create_table(
        "member_membership_types",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("member_id", sa.Integer(), sa.ForeignKey("members.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("membership_type_id", sa.Integer(), sa.ForeignKey("membership_types.id"), nullable=False, index=True),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=True),
        _created_at(),
    )

    # ---------- Finance ----------
    op.create_table(
        "fiscal_years",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("branch_id", sa.Integer(), sa.ForeignKey("branches.id"), nullable=False, index=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="Active"),
        _ts("closed_at"),
        _created_at(),
    )
    op.create_table(
        "expense_categories",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False, unique=True),
        sa.Column("description", sa.Text(), nullable=True),
        _created_at(),
    )
    op.create_table(
        "expenses",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("purpose", sa.Text(), nullable=True),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("expense_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="Pending"),
        sa.Column("member_id", sa.Integer(), sa.ForeignKey("members.id"), nullable=False, index=True),
        sa.Column("fiscal_year_id", sa.Integer(), sa.ForeignKey("fiscal_years.id"), nullable=False, index=True),
        sa.Column("category_id", sa.Integer(), sa.ForeignKey("expense_categories.id"), nullable=False, index=True),
        _user_fk("created_by_user_id"),
        _user_fk("reviewed_by_user_id"),
        _ts("reviewed_at"),
        sa.Column("review_remarks", sa.Text(), nullable=True),
        _created_at(),
    )
    op.create_table(
        "budgets",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("fiscal_year_id", sa.Integer(), sa.ForeignKey("fiscal_years.id"), nullable=False, index=True),
        sa.Column("category_id", sa.Integer(), sa.ForeignKey("expense_categories.id"), nullable=False),
        sa.Column("branch_id", sa.Integer(), sa.ForeignKey("branches.id"), nullable=False, index=True),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="Draft"),
        _user_fk("created_by_user_id"),
        _ts("submitted_at"),
        _user_fk("reviewed_by_user_id"),
        _ts("reviewed_at"),
        sa.Column("review_remarks", sa.Text(), nullable=True),
        _created_at(),
        _created_at("updated_at"),
        sa.UniqueConstraint("fiscal_year_id", "category_id", "branch_id", name="uq_budgets_year_category_branch"),
    )

    op.create_table(
        "contribution_types",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False, unique=True),
        sa.Column("description", sa.Text(), nullable=True),
    )
    op.create_table(
        "payment_options",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False, unique=True),
    )
    op.create_table(
        "contributions",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("contribution_date", sa.Date(), nullable=False, index=True),
        sa.Column("contribution_type_id", sa.Integer(), sa.ForeignKey("contribution_types.id"), nullable=False, index=True),
        sa.Column("payment_option_id", sa.Integer(), sa.ForeignKey("payment_options.id"), nullable=False),
        sa.Column("member_id", sa.Integer(), sa.ForeignKey("members.id"), nullable=False, index=True),
        sa.Column("fiscal_year_id", sa.Integer(), sa.ForeignKey("fiscal_years.id"), nullable=False, index=True),
        sa.Column("description", sa.String(length=500), nullable=True),
        _user_fk("recorded_by_user_id"),
        _created_at("recorded_at"),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        _ts("deleted_at"),
    )

    # ---------- Events / volunteers ----------
    op.create_table(
        "events",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=150), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("event_date", sa.Date(), nullable=False, index=True),
        sa.Column("event_time", sa.Time(), nullable=True),
        sa.Column("location", sa.String(length=255), nullable=True),
        sa.Column("branch_id", sa.Integer(), sa.ForeignKey("branches.id"), nullable=False, index=True),
        sa.Column("created_by_member_id", sa.Integer(), sa.ForeignKey("members.id", ondelete="SET NULL"), nullable=True),
        _user_fk("created_by_user_id"),
        _created_at(),
        _created_at("updated_at"),
    )
    op.create_table(
        "volunteer_roles",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False, unique=True),
        sa.Column("description", sa.String(length=500), nullable=True),
        _created_at(),
    )
    op.create_table(
        "event_volunteers",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("member_id", sa.Integer(), sa.ForeignKey("members.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("role_id", sa.Integer(), sa.ForeignKey("volunteer_roles.id", ondelete="SET NULL"), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="Pending"),
        sa.Column("notes", sa.String(length=500), nullable=True),
        _user_fk("assigned_by_user_id"),
        _created_at("assigned_at"),
        _ts("responded_at"),
        _ts("completed_at"),
        sa.UniqueConstraint("event_id", "member_id", name="uq_event_volunteers_event_member"),
    )


def downgrade() -> None:
    for table in (
        "event_volunteers",
        "volunteer_roles",
        "events",
        "contributions",
        "payment_options",
        "contribution_types",
        "budgets",
        "expenses",
        "expense_categories",
        "fiscal_years",
        "member_membership_types",
        "membership_types",
        "communication_deliveries",
        "communications",
        "group_members",
        "church_groups",
        "group_types",
        "family_members",
        "families",
        "member_phones",
        "login_log",
        "audit_log",
        "role_permissions",
        "user_roles",
        "permissions",
        "roles",
        "users",
        "members",
        "branches",
    ):
        op.drop_table(table)
