"""
Volunteers module.

Assignments move Pending -> Confirmed/Declined (answered by the volunteer) and
Confirmed -> Completed once the service is done.
"""
