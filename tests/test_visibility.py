from types import SimpleNamespace

from storefront.services.visibility import (
    ANONYMOUS,
    Requester,
    can_modify,
    is_tree_visible,
    is_visible,
)

ADMIN = Requester(user_id=1, is_admin=True)
OWNER = Requester(user_id=2)
STRANGER = Requester(user_id=3)


def row(**kw):
    base = dict(user_id=2, is_public=True, hidden=False)
    base.update(kw)
    return SimpleNamespace(**base)


def test_public_rows_visible_to_everyone():
    r = row()
    assert all(is_visible(r, who) for who in (ADMIN, OWNER, STRANGER, ANONYMOUS))


def test_legacy_null_is_public_counts_as_public():
    assert is_visible(row(is_public=None), ANONYMOUS)


def test_private_and_hidden_rows_only_for_owner_and_admin():
    for r in (row(is_public=False), row(hidden=True)):
        assert is_visible(r, ADMIN)
        assert is_visible(r, OWNER)
        assert not is_visible(r, STRANGER)
        assert not is_visible(r, ANONYMOUS)


def test_tree_drops_hidden_even_for_admin():
    assert not is_tree_visible(row(hidden=True), ADMIN)
    assert is_tree_visible(row(is_public=False), ADMIN)
    assert not is_tree_visible(row(is_public=False), STRANGER)


def test_only_owner_or_admin_can_modify():
    r = row()
    assert can_modify(r, ADMIN)
    assert can_modify(r, OWNER)
    assert not can_modify(r, STRANGER)
    assert not can_modify(row(user_id=None), ANONYMOUS)
