"""
Permission catalogue tests.
"""

import pytest

from authz.core.auth import (
    DEFAULT_ROLE_PERMISSIONS,
    RESOURCES,
    Permission,
    PermissionAction,
    Role,
    all_permissions,
    permission_id,
)
from authz.core.auth.permissions import normalize_permission_id, parse_action
from authz.core.errors import UnknownPermission


def test_permission_id_format():
    assert permission_id("events", PermissionAction.DELETE) == "events.delete"
    assert permission_id("events", "delete") == "events.delete"
    assert Permission("news", PermissionAction.MODERATE).id == "news.moderate"


def test_parse_permission():
    permission = Permission.parse("forum.moderate")
    assert permission.resource == "forum"
    assert permission.action is PermissionAction.MODERATE


@pytest.mark.parametrize("value", ["events", "events.", ".read", "events.approve", ""])
def test_parse_rejects_malformed_ids(value: str):
    with pytest.raises(UnknownPermission):
        Permission.parse(value)


def test_normalize_permission_id():
    assert normalize_permission_id("Events.DELETE") == "Events.delete"
    assert normalize_permission_id("users.manage") == "users.manage"


def test_unknown_action():
    with pytest.raises(UnknownPermission):
        parse_action("APPROVE")


def test_catalogue_covers_every_resource_and_action():
    ids = {p.id for p in all_permissions()}
    assert len(ids) == len(RESOURCES) * len(PermissionAction)
    assert "admin.execute" in ids


def test_default_table_only_references_catalogue():
    catalogue = {p.id for p in all_permissions()}
    for role, ids in DEFAULT_ROLE_PERMISSIONS.items():
        assert ids <= catalogue, role


def test_default_table_shape():
    """Every role has an entry; SUPER_ADMIN is the implicit wildcard."""
    assert set(DEFAULT_ROLE_PERMISSIONS) == set(Role)
    assert DEFAULT_ROLE_PERMISSIONS[Role.SUPER_ADMIN] == frozenset()
    assert DEFAULT_ROLE_PERMISSIONS[Role.GUEST] == {"events.read", "news.read"}
    assert "donations.create" in DEFAULT_ROLE_PERMISSIONS[Role.CLIENT]
    assert "events.delete" not in DEFAULT_ROLE_PERMISSIONS[Role.EDITOR]
