"""
Organizational hierarchy: Union, Conference, Church, Team and Service
entities with materialized paths and a leaf-first delete guard.
"""
