"""
User directory boundary: who can receive a push and with which preferences.
"""
from __future__ import annotations

import abc
from typing import Any, Optional

from pydantic import ValidationError
from sqlalchemy import select

from shared.models.domain import FavoriteTeam, NotificationPreferences, Recipient
from shared.models.orm import UserORM
from shared.utils.database import DatabaseManager
from shared.utils.logging import get_logger

logger = get_logger(__name__)


class UserDirectory(abc.ABC):
    @abc.abstractmethod
    async def list_push_recipients(self) -> list[Recipient]:
        """Every user with a registered push address."""

    @abc.abstractmethod
    async def get_recipient(self, user_id: str) -> Optional[Recipient]:
        ...


def _favorite_teams(raw: Any, user_id: str) -> list[FavoriteTeam]:
    teams: list[FavoriteTeam] = []
    for item in raw if isinstance(raw, list) else []:
        try:
            teams.append(FavoriteTeam.model_validate(item))
        except ValidationError:
            logger.debug("favorite_team_skipped", user_id=user_id, value=str(item)[:80])
    return teams


def recipient_from_row(row: UserORM) -> Recipient:
    try:
        prefs = NotificationPreferences.model_validate(row.notification_preferences or {})
    except ValidationError:
        logger.warning("notification_preferences_invalid", user_id=row.id)
        prefs = NotificationPreferences()
    return Recipient(
        user_id=row.id,
        push_token=row.push_token,
        preferences=prefs,
        favorite_teams=_favorite_teams(row.favorite_teams, row.id),
        favorite_match_ids=[str(m) for m in (row.favorite_match_ids or [])],
    )


class SQLUserDirectory(UserDirectory):
    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    async def list_push_recipients(self) -> list[Recipient]:
        stmt = select(UserORM).where(UserORM.push_token.is_not(None), UserORM.push_token != "")
        async with self._db.read_session() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [recipient_from_row(r) for r in rows]

    async def get_recipient(self, user_id: str) -> Optional[Recipient]:
        async with self._db.read_session() as session:
            row = (await session.execute(
                select(UserORM).where(UserORM.id == user_id)
            )).scalar_one_or_none()
        return recipient_from_row(row) if row else None
