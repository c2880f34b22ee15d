"""
Identity directory adapter.

The store only consumes it: to denormalize owner/user display names and
emails, and to check that a sharing target exists.
"""

import logging
from typing import Optional, Sequence

from ..models import User
from ..repository import UnitOfWork, UnitOfWorkFactory
from ..schemas import Page, UserProfile
from ..util.pagination import clamp_limit, page_count, page_window
from .common import require_caller

logger = logging.getLogger(__name__)


class UserDirectory:
    def __init__(self, uow_factory: UnitOfWorkFactory):
        self._uow = uow_factory

    def resolve(self, user_id: str, uow: Optional[UnitOfWork] = None) -> Optional[UserProfile]:
        """Look up a user; reuses ``uow`` when called inside a transaction."""
        if uow is not None:
            user = uow.users.get(user_id)
            return UserProfile.model_validate(user) if user else None
        with self._uow() as own:
            user = own.users.get(user_id)
            return UserProfile.model_validate(user) if user else None

    def display_name(self, user_id: str, uow: Optional[UnitOfWork] = None) -> str:
        profile = self.resolve(user_id, uow)
        return profile.display_name if profile else "Unknown"

    def register(
        self, user_id: str, username: str, name: Optional[str] = None, email: Optional[str] = None
    ) -> UserProfile:
        with self._uow() as uow:
            user = uow.users.add(User(id=user_id, username=username, name=name, email=email))
            uow.commit()
        logger.info("registered directory user %s (%s)", user_id, username)
        return UserProfile.model_validate(user)

    def search(
        self,
        term: str,
        caller_id: str,
        exclude: Sequence[str] = (),
        page: int = 1,
        limit: Optional[int] = None,
    ) -> Page:
        """Find sharing candidates by username, name or email; never returns the caller."""
        require_caller(caller_id, "search users")
        limit = clamp_limit(limit, default=10)
        page, offset = page_window(page, limit)
        with self._uow() as uow:
            users, total = uow.users.search(term, [*exclude, caller_id], offset=offset, limit=limit)
        return Page(
            items=[UserProfile.model_validate(u) for u in users],
            total=total,
            page=page,
            limit=limit,
            pages=page_count(total, limit),
        )
