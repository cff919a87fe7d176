"""
Members module.

- Registration creates the member, its login account and its phone numbers in one transaction
- Members are soft-deleted; a family head or group leader must be replaced first
- Phone numbers are globally unique and each member has at most one primary number
"""
