"""
Authorization feature: decisions and scoped entity sets for callers.
"""
