"""
Built-in role definitions.

Re-asserted by RoleCatalog.create_system_roles() at every startup. Unscoped
permissions apply to the assigned entity only, so broad roles spell out
their subordinate scope.
"""


SYSTEM_ROLES: list[dict] = [
    {
        "name": "super_admin",
        "display_name": "Super Administrator",
        "level": "union",
        "permissions": ["*"],
        "description": "Full system access including system administration",
    },
    {
        "name": "union_admin",
        "display_name": "Union Administrator",
        "level": "union",
        "permissions": [
            "users.*:subordinate",
            "organizations.*:subordinate",
            "roles.*",
            "services.*:subordinate",
            "stories.*:subordinate",
            "dashboard.view",
            "analytics.read:subordinate",
            "analytics.export:subordinate",
        ],
        "description": "Administrative access for union level without system permissions",
    },
    {
        "name": "conference_admin",
        "display_name": "Conference Administrator",
        "level": "conference",
        "permissions": [
            "organizations.read:subordinate",
            "organizations.create:subordinate",
            "organizations.update:subordinate",
            "users.read:subordinate",
            "users.create:subordinate",
            "users.update:subordinate",
            "users.assign_role:subordinate",
            "roles.read",
            "services.create:subordinate",
            "services.read:subordinate",
            "services.update:subordinate",
            "services.delete:subordinate",
            "services.manage:subordinate",
            "services.publish:subordinate",
            "services.archive:subordinate",
            "stories.create:subordinate",
            "stories.read:subordinate",
            "stories.update:subordinate",
            "stories.delete:subordinate",
            "stories.manage:subordinate",
            "dashboard.view",
            "analytics.read:subordinate",
        ],
        "description": "Administrative access for conference level",
    },
    {
        "name": "church_pastor",
        "display_name": "Church Pastor",
        "level": "church",
        "permissions": [
            "organizations.read:own",
            "organizations.update:own",
            "users.read:own",
            "users.create:own",
            "users.update:own",
            "users.assign_role:own",
            "roles.read",
            "services.create:own",
            "services.read:own",
            "services.update:own",
            "services.delete:own",
            "services.manage:own",
            "services.publish:own",
            "services.archive:own",
            "stories.create:own",
            "stories.read:own",
            "stories.update:own",
            "stories.delete:own",
            "stories.manage:own",
            "dashboard.view",
            "analytics.read:own",
        ],
        "description": "Full access within own church",
    },
    {
        "name": "church_acs_leader",
        "display_name": "Church ACS Leader",
        "level": "church",
        "permissions": [
            "users.read:acs_team",
            "users.create:acs_team",
            "users.update:acs_team",
            "services.create:acs",
            "services.read:acs",
            "services.update:acs",
            "services.manage:acs",
            "services.publish:acs",
            "stories.create:acs",
            "stories.read:acs",
            "stories.update:acs",
            "stories.manage:acs",
            "dashboard.view",
        ],
        "description": "ACS team leadership role",
    },
    {
        "name": "church_team_member",
        "display_name": "Church Team Member",
        "level": "church",
        "permissions": [
            "users.read:acs_team",
            "services.read:acs",
            "stories.read:acs",
        ],
        "description": "Basic team member access",
    },
    {
        "name": "church_viewer",
        "display_name": "Church Viewer",
        "level": "church",
        "permissions": ["services.read:public", "stories.read:public"],
        "description": "Read-only access to public information",
    },
]

SYSTEM_ROLE_NAMES = frozenset(role["name"] for role in SYSTEM_ROLES)
