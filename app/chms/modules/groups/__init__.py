"""
Groups module.

Ministries, fellowships and other church groups. Membership changes and group
messages are recorded as communications; a group's leader cannot be removed as a member.
"""
