"""
Permissions and roles.

Rows live in the core RBAC tables (app.chms.models); this module manages them.
"""
