"""
Budgets module.

One budget line per (fiscal year, expense category, branch). Lines move
Draft -> Submitted -> Approved/Rejected; a rejected line can be edited and
resubmitted, an approved line is frozen.
"""
