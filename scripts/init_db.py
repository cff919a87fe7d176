import os
import sys
from pathlib import Path

from werkzeug.security import generate_password_hash

# Ensure repo root is on sys.path when running as a script.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.chms.constants import (  # noqa: E402
    DEFAULT_BRANCH_NAME,
    DEFAULT_CONTRIBUTION_TYPES,
    DEFAULT_GROUP_TYPES,
    DEFAULT_PAYMENT_OPTIONS,
    PERMISSIONS,
)
from app.chms.models import Branch, Permission, Role, User  # noqa: E402
from app.chms.modules.contributions.models import ContributionType, PaymentOption  # noqa: E402
from app.chms.modules.groups.models import GroupType  # noqa: E402
from scripts._db_utils import script_session  # noqa: E402

# Granted to every registered member's login.
MEMBER_ROLE_PERMISSIONS = ("events.view",)


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed permissions/roles/admin user and lookup rows in an idempotent way.
    Does NOT overwrite an existing admin user's password.
    """
    admin_username = (os.environ.get("ADMIN_USERNAME") or "admin").strip()
    admin_email = (os.environ.get("ADMIN_EMAIL") or "").strip().lower() or None
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me"

    with script_session(database_url) as s:
        # Permissions (idempotent)
        perms: dict[str, Permission] = {}
        for key, name in PERMISSIONS:
            p = s.query(Permission).filter(Permission.key == key).one_or_none()
            if not p:
                p = Permission(key=key, name=name)
                s.add(p)
            perms[key] = p

        # Roles
        role_admin = s.query(Role).filter(Role.key == "admin").one_or_none()
        if not role_admin:
            role_admin = Role(key="admin", name="Administrator")
            s.add(role_admin)
        for p in perms.values():
            if p not in role_admin.permissions:
                role_admin.permissions.append(p)

        role_member = s.query(Role).filter(Role.key == "member").one_or_none()
        if not role_member:
            role_member = Role(key="member", name="Member")
            s.add(role_member)
        for key in MEMBER_ROLE_PERMISSIONS:
            if perms[key] not in role_member.permissions:
                role_member.permissions.append(perms[key])

        # Admin user
        user = s.query(User).filter(User.username == admin_username).one_or_none()
        if not user:
            user = User(
                username=admin_username,
                email=admin_email,
                password_hash=generate_password_hash(admin_password),
                is_active=True,
            )
            s.add(user)
        if role_admin not in user.roles:
            user.roles.append(role_admin)

        # Lookups
        if not s.query(Branch).filter(Branch.name == DEFAULT_BRANCH_NAME).one_or_none():
            s.add(Branch(name=DEFAULT_BRANCH_NAME))
        for name in DEFAULT_CONTRIBUTION_TYPES:
            if not s.query(ContributionType).filter(ContributionType.name == name).one_or_none():
                s.add(ContributionType(name=name))
        for name in DEFAULT_PAYMENT_OPTIONS:
            if not s.query(PaymentOption).filter(PaymentOption.name == name).one_or_none():
                s.add(PaymentOption(name=name))
        for name in DEFAULT_GROUP_TYPES:
            if not s.query(GroupType).filter(GroupType.name == name).one_or_none():
                s.add(GroupType(name=name))

    print("Initialized database (seed_only).")
    print(f"Admin username: {admin_username}")
    print("Admin password: (from ADMIN_PASSWORD)")


def main() -> None:
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
