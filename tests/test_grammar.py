"""Tests for the permission string grammar."""

import pytest

from acs_auth.core.exceptions import ValidationError
from acs_auth.features.permissions import grammar
from acs_auth.features.permissions.grammar import Permission, Scope


class TestMatches:
    """Test cases for grammar.matches."""

    @pytest.mark.parametrize("required", ["users.create", "services.delete", "anything.at_all"])
    def test_global_wildcard_matches_everything(self, required):
        assert grammar.matches(["*"], required)
        assert grammar.matches(["all"], required)

    def test_verbatim_entry(self):
        assert grammar.matches(["roles.read"], "roles.read")
        assert not grammar.matches(["roles.read"], "roles.update")

    @pytest.mark.parametrize("action", ["read", "create", "assign_role", "delete"])
    def test_resource_wildcard_covers_every_action(self, action):
        assert grammar.matches(["users.*"], f"users.{action}")

    def test_resource_wildcard_does_not_leak_to_other_resources(self):
        assert not grammar.matches(["users.*"], "services.read")

    def test_scope_is_ignored_when_matching(self):
        assert grammar.matches(["users.create:subordinate"], "users.create")
        assert grammar.matches(["services.read:public"], "services.read")

    def test_scoped_resource_wildcard(self):
        assert grammar.matches(["organizations.*:subordinate"], "organizations.delete")

    def test_no_match(self):
        granted = ["services.read:public", "stories.read:public"]
        assert not grammar.matches(granted, "services.update")
        assert not grammar.matches([], "services.read")

    def test_resource_prefix_is_not_a_match(self):
        assert not grammar.matches(["user.read"], "users.read")


class TestPermissionParse:
    """Test cases for Permission.parse."""

    def test_parse_scoped(self):
        permission = Permission.parse("users.create:subordinate")
        assert permission.resource == "users"
        assert permission.action == "create"
        assert permission.scope is Scope.SUBORDINATE
        assert str(permission) == "users.create:subordinate"

    def test_unscoped_defaults_to_own(self):
        permission = Permission.parse("organizations.update")
        assert permission.scope is None
        assert permission.effective_scope is Scope.OWN

    def test_global(self):
        permission = Permission.parse("*")
        assert permission.is_global
        assert permission.effective_scope is Scope.ALL
        assert permission.covers("users", "delete")

    @pytest.mark.parametrize("value", [
        "",
        "users",
        "users.",
        ".read",
        "Users.read",
        "users.read:everywhere",
        "users.read:",
        "users.read:own:extra",
        "users-admin.read",
        "**",
    ])
    def test_malformed(self, value):
        with pytest.raises(ValidationError):
            Permission.parse(value)


class TestValidation:
    """Test cases for permission list validation."""

    def test_valid_list_is_deduplicated_in_order(self):
        values = ["users.read", "roles.read", "users.read", "*"]
        assert grammar.validate_permissions(values) == ["users.read", "roles.read", "*"]

    def test_all_invalid_entries_are_named(self):
        with pytest.raises(ValidationError) as exc_info:
            grammar.validate_permissions(["users.read", "bad", "users.read:nowhere", "roles.*"])

        assert exc_info.value.errors == ["bad", "users.read:nowhere"]
        assert "bad" in exc_info.value.message
        assert exc_info.value.to_dict()["errorCode"] == "VALIDATION_ERROR"

    def test_every_scope_is_accepted(self):
        for scope in Scope:
            assert grammar.is_valid(f"stories.read:{scope.value}")


class TestGrantedScopes:
    """Test cases for grammar.granted_scopes."""

    def test_collects_every_covering_scope(self):
        granted = ["users.read:acs_team", "users.*:subordinate", "services.read:acs"]
        assert grammar.granted_scopes(granted, "users.read") == [Scope.ACS_TEAM, Scope.SUBORDINATE]

    def test_unscoped_and_global(self):
        assert grammar.granted_scopes(["roles.read"], "roles.read") == [Scope.OWN]
        assert grammar.granted_scopes(["*"], "roles.delete") == [Scope.ALL]

    def test_malformed_entries_never_widen_access(self):
        assert grammar.granted_scopes(["users.read:galaxy"], "users.read") == []
