"""
Contributions module: tithes, offerings and other giving, plus the contribution
type and payment option lookups.
"""
