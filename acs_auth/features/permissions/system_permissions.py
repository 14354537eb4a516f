"""
Built-in permission registry.

Re-asserted together with the system roles at every startup. Every entry of
a system role must be registered here with the scope it is granted with.
"""

ENTITY_SCOPES = ["own", "assigned", "subordinate", "all"]
TEAM_SCOPES = ["acs", "acs_team"]


# (name, display name, description, icon, display order)
SYSTEM_CATEGORIES = [
    ("users", "User Management", "Manage user accounts and assignments", "users", 10),
    ("organizations", "Organizations", "Unions, conferences, churches and teams", "building", 20),
    ("services", "Services", "Community services and their publication", "hand-heart", 30),
    ("stories", "Stories", "Testimonies and stories", "book-open", 40),
    ("roles", "Roles", "Role definitions", "shield", 50),
    ("dashboard", "Dashboard", "Dashboard access", "layout-dashboard", 60),
    ("analytics", "Analytics", "Reports and exports", "bar-chart", 70),
    ("system", "System", "System administration", "settings", 900),
]


# (key, category, label, allowed scopes)
SYSTEM_PERMISSIONS = [
    # Users
    ("users.create", "users", "Create users", ENTITY_SCOPES + TEAM_SCOPES),
    ("users.read", "users", "View users", ["self"] + ENTITY_SCOPES + TEAM_SCOPES),
    ("users.update", "users", "Update users", ["self"] + ENTITY_SCOPES + TEAM_SCOPES),
    ("users.delete", "users", "Delete users", ENTITY_SCOPES),
    ("users.assign_role", "users", "Assign roles to users", ENTITY_SCOPES),

    # Organizations
    ("organizations.create", "organizations", "Create organizations", ENTITY_SCOPES),
    ("organizations.read", "organizations", "View organizations", ENTITY_SCOPES + ["public"]),
    ("organizations.update", "organizations", "Update organizations", ENTITY_SCOPES),
    ("organizations.delete", "organizations", "Delete organizations", ENTITY_SCOPES),

    # Services
    ("services.create", "services", "Create services", ENTITY_SCOPES + TEAM_SCOPES),
    ("services.read", "services", "View services", ENTITY_SCOPES + TEAM_SCOPES + ["public"]),
    ("services.update", "services", "Update services", ENTITY_SCOPES + TEAM_SCOPES),
    ("services.delete", "services", "Delete services", ENTITY_SCOPES + TEAM_SCOPES),
    ("services.manage", "services", "Manage services", ENTITY_SCOPES + TEAM_SCOPES),
    ("services.publish", "services", "Publish services", ENTITY_SCOPES + TEAM_SCOPES),
    ("services.archive", "services", "Archive services", ENTITY_SCOPES + TEAM_SCOPES),

    # Stories
    ("stories.create", "stories", "Create stories", ENTITY_SCOPES + TEAM_SCOPES),
    ("stories.read", "stories", "View stories", ENTITY_SCOPES + TEAM_SCOPES + ["public"]),
    ("stories.update", "stories", "Update stories", ENTITY_SCOPES + TEAM_SCOPES),
    ("stories.delete", "stories", "Delete stories", ENTITY_SCOPES + TEAM_SCOPES),
    ("stories.manage", "stories", "Manage stories", ENTITY_SCOPES + TEAM_SCOPES),

    # Roles and dashboard are not hierarchy resources
    ("roles.read", "roles", "View roles", []),
    ("roles.create", "roles", "Create roles", []),
    ("roles.update", "roles", "Update roles", []),
    ("roles.delete", "roles", "Delete roles", []),
    ("dashboard.view", "dashboard", "View dashboard", []),

    # Analytics
    ("analytics.read", "analytics", "View analytics", ENTITY_SCOPES),
    ("analytics.export", "analytics", "Export analytics", ENTITY_SCOPES),

    # System
    ("system.configure", "system", "Configure the system", []),
]
