"""
Families module.

A family is created around its head of household; the head link is a family_members
row with role Head. A member belongs to at most one family (unique member_id).
"""
