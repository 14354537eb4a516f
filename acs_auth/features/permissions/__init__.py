"""
Permission grammar and role catalog.

Roles are named bundles of scoped permission strings bound to one hierarchy
level; the built-in system roles are re-asserted at startup.
"""
