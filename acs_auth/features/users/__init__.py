"""
Users, authentication and role assignments.
"""
