"""
Finance module: fiscal years, expense categories, expenses and the financial reports.
"""
