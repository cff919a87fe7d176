"""
Central constants for the ChMS application.
"""
from __future__ import annotations

# (key, display name) seeded by scripts/init_db.py and granted to the admin role.
PERMISSIONS: tuple[tuple[str, str], ...] = (
    ("admin.view", "Admin: view shell"),
    ("branches.manage", "Branches: manage"),
    ("audit.view", "Audit log: view"),
    ("members.view", "Members: view"),
    ("members.create", "Members: register"),
    ("members.edit", "Members: edit"),
    ("members.delete", "Members: delete"),
    ("families.view", "Families: view"),
    ("families.manage", "Families: manage"),
    ("groups.view", "Groups: view"),
    ("groups.manage", "Groups: manage"),
    ("groups.message", "Groups: send messages"),
    ("communications.send", "Communications: dispatch queue"),
    ("membership_types.view", "Membership types: view"),
    ("membership_types.manage", "Membership types: manage"),
    ("permissions.view", "Permissions: view"),
    ("permissions.manage", "Permissions: manage roles and permissions"),
    ("events.view", "Events: view"),
    ("events.manage", "Events: manage"),
    ("attendance.record", "Attendance: record"),
    ("engagement.view", "Member engagement: view"),
    ("dashboard.view", "Dashboard: view"),
    ("volunteers.view", "Volunteers: view"),
    ("volunteers.manage", "Volunteers: manage"),
    ("finance.view", "Finance: view"),
    ("finance.manage", "Finance: manage fiscal years and categories"),
    ("expenses.create", "Expenses: create"),
    ("expenses.approve", "Expenses: approve"),
    ("budgets.view", "Budgets: view"),
    ("budgets.create", "Budgets: create"),
    ("budgets.edit", "Budgets: edit and submit"),
    ("budgets.delete", "Budgets: delete"),
    ("budgets.approve", "Budgets: approve"),
    ("contributions.view", "Contributions: view"),
    ("contributions.create", "Contributions: create"),
    ("contributions.edit", "Contributions: edit"),
    ("contributions.delete", "Contributions: delete and restore"),
    ("reports.view", "Financial reports: view"),
)

MEMBER_STATUS_ACTIVE = "Active"
MEMBER_STATUS_INACTIVE = "Inactive"

PHONE_TYPES = ("Mobile", "Home", "Work", "Other")

FAMILY_ROLE_HEAD = "Head"
FAMILY_ROLES = (FAMILY_ROLE_HEAD, "Spouse", "Child", "Other")

FISCAL_YEAR_ACTIVE = "Active"
FISCAL_YEAR_CLOSED = "Closed"

BUDGET_DRAFT = "Draft"
BUDGET_SUBMITTED = "Submitted"
BUDGET_APPROVED = "Approved"
BUDGET_REJECTED = "Rejected"

EXPENSE_PENDING = "Pending"
EXPENSE_APPROVED = "Approved"
EXPENSE_REJECTED = "Rejected"

ATTENDANCE_PRESENT = "Present"
ATTENDANCE_STATUSES = (ATTENDANCE_PRESENT, "Absent", "Excused")

VOLUNTEER_PENDING = "Pending"
VOLUNTEER_CONFIRMED = "Confirmed"
VOLUNTEER_DECLINED = "Declined"
VOLUNTEER_COMPLETED = "Completed"

CHANNEL_EMAIL = "Email"
CHANNEL_SMS = "SMS"
CHANNEL_IN_APP = "InApp"
CHANNELS = (CHANNEL_EMAIL, CHANNEL_SMS, CHANNEL_IN_APP)

DELIVERY_PENDING = "Pending"
DELIVERY_SENT = "Sent"
DELIVERY_FAILED = "Failed"

# Lookup rows seeded on a fresh database.
DEFAULT_BRANCH_NAME = "Main"
DEFAULT_CONTRIBUTION_TYPES = ("Tithe", "Offering", "Thanksgiving", "Pledge", "Donation")
DEFAULT_PAYMENT_OPTIONS = ("Cash", "Mobile Money", "Bank Transfer", "Cheque", "Card")
DEFAULT_GROUP_TYPES = ("Ministry", "Fellowship", "Choir", "Bible Study")
