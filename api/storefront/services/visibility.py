# storefront/services/visibility.py
"""
Row visibility for products and categories.

- admin: everything
- owner (row.user_id == requester): everything they own
- others: is_public true/NULL (legacy) and hidden not true

The category tree uses a stricter variant that drops hidden rows for admins too.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import and_, or_


@dataclass(frozen=True)
class Requester:
    user_id: Optional[int] = None
    is_admin: bool = False

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None


ANONYMOUS = Requester()


def _owns(row, requester: Requester) -> bool:
    return requester.user_id is not None and row.user_id == requester.user_id


def _publicly_visible(row) -> bool:
    return row.is_public is not False and row.hidden is not True


def is_visible(row, requester: Requester) -> bool:
    if requester.is_admin:
        return True
    if _owns(row, requester):
        return True
    return _publicly_visible(row)


def is_tree_visible(row, requester: Requester) -> bool:
    if row.hidden is True:
        return False
    return is_visible(row, requester)


def can_modify(row, requester: Requester) -> bool:
    return requester.is_admin or _owns(row, requester)


def visibility_filter(model, requester: Requester):
    """SQL equivalent of is_visible(); None means no filter (admin)."""
    if requester.is_admin:
        return None
    public = and_(
        or_(model.is_public.is_(None), model.is_public.is_(True)),
        or_(model.hidden.is_(None), model.hidden.is_(False)),
    )
    if requester.user_id is None:
        return public
    return or_(model.user_id == requester.user_id, public)
