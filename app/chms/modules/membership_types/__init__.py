"""
Membership types module.

A member holds at most one open membership type at a time; assignment windows
never overlap.
"""
