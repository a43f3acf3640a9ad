"""
Notification Dispatcher.

Resolves the recipients of a payload, applies per-user preferences and the
favourites-only restriction, marks favourite-team pushes, and delivers in
provider-sized batches with bounded concurrency.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Optional

from shared.config import Settings, get_settings
from shared.models.domain import Audience, NotificationPayload, PushMessage, Recipient
from shared.models.enums import AudienceKind
from shared.utils.logging import get_logger
from shared.utils.metrics import NOTIFICATIONS_FAILED, NOTIFICATIONS_SENT

from notifications.gateway import PushGateway, is_valid_push_token
from notifications.recipients import UserDirectory

logger = get_logger(__name__)

FAVORITE_MARKER = "⭐ "


def extract_numeric_id(value: Any) -> Optional[int]:
    """
    Trailing numeric segment of a provider id
    (``SportRadar_Soccer_Team_1234`` -> 1234); plain numbers pass through.
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return value
    if not isinstance(value, str) or not value:
        return None
    for part in reversed(value.split("_")):
        if part.isdigit():
            return int(part)
    return None


def involves_favorite(recipient: Recipient, audience: Audience) -> bool:
    team_ids = [t for t in (audience.home_team_id, audience.away_team_id) if t]
    if not team_ids:
        return False
    numeric_ids = {n for n in (extract_numeric_id(t) for t in team_ids) if n is not None}
    for team in recipient.favorite_teams:
        if team.msn_id and team.msn_id in team_ids:
            return True
        if team.id is not None and team.id in numeric_ids:
            return True
    return False


@dataclass
class DispatchResult:
    recipients: int = 0
    sent: int = 0
    failed: int = 0
    batches: int = 0


class NotificationDispatcher:
    def __init__(
        self,
        directory: UserDirectory,
        gateway: PushGateway,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._directory = directory
        self._gateway = gateway
        self._batch_size = max(1, min(self._settings.push_batch_size, gateway.max_batch_size))
        self._max_in_flight = max(1, self._settings.push_max_concurrent_batches)

    async def dispatch(self, payload: NotificationPayload) -> DispatchResult:
        if payload.audience.kind == AudienceKind.USER:
            return await self.notify_user(payload)
        return await self.broadcast(payload)

    # ── Recipient selection ─────────────────────────────────────────────
    def _message_for(self, payload: NotificationPayload, recipient: Recipient) -> Optional[PushMessage]:
        """The personalised message for one broadcast recipient, or None if filtered out."""
        prefs = recipient.preferences
        if not prefs.allows(payload.type):
            return None

        audience = payload.audience
        favorite = involves_favorite(recipient, audience)
        if prefs.favorites_only and not favorite:
            marked = audience.match_id is not None and audience.match_id in recipient.favorite_match_ids
            if not marked:
                return None

        title = f"{FAVORITE_MARKER}{payload.title}" if favorite else payload.title
        return self._push(recipient.push_token or "", title, payload)

    def _push(self, token: str, title: str, payload: NotificationPayload) -> PushMessage:
        return PushMessage(
            to=token,
            title=title,
            body=payload.body,
            data=payload.data,
            channel_id=self._settings.push_channel_id,
        )

    async def broadcast(self, payload: NotificationPayload) -> DispatchResult:
        recipients = await self._directory.list_push_recipients()
        messages: list[PushMessage] = []
        invalid = 0
        for recipient in recipients:
            if not is_valid_push_token(recipient.push_token):
                invalid += 1
                continue
            message = self._message_for(payload, recipient)
            if message is not None:
                messages.append(message)

        if invalid:
            logger.debug("push_tokens_invalid", count=invalid, type=payload.type.value)
        if not messages:
            logger.info("broadcast_no_recipients", type=payload.type.value, match_id=payload.audience.match_id)
            return DispatchResult()
        return await self._deliver(payload, messages)

    async def notify_user(self, payload: NotificationPayload) -> DispatchResult:
        user_id = payload.audience.user_id
        if not user_id:
            return DispatchResult()
        recipient = await self._directory.get_recipient(user_id)
        if recipient is None or not is_valid_push_token(recipient.push_token):
            return DispatchResult()
        message = self._push(recipient.push_token or "", payload.title, payload)
        return await self._deliver(payload, [message])

    # ── Delivery ────────────────────────────────────────────────────────
    async def _deliver(self, payload: NotificationPayload, messages: list[PushMessage]) -> DispatchResult:
        batches = [
            messages[i : i + self._batch_size] for i in range(0, len(messages), self._batch_size)
        ]
        semaphore = asyncio.Semaphore(self._max_in_flight)
        type_label = payload.type.value

        async def send_batch(index: int, batch: list[PushMessage]) -> tuple[int, int]:
            async with semaphore:
                try:
                    report = await self._gateway.send(batch)
                except Exception as exc:
                    logger.error(
                        "push_batch_failed",
                        type=type_label,
                        batch=index,
                        size=len(batch),
                        error=str(exc),
                    )
                    return 0, len(batch)
                return report.accepted, report.rejected

        outcomes = await asyncio.gather(
            *(send_batch(i, b) for i, b in enumerate(batches)),
            return_exceptions=True,
        )

        result = DispatchResult(recipients=len(messages), batches=len(batches))
        for batch, outcome in zip(batches, outcomes):
            if isinstance(outcome, BaseException):
                result.failed += len(batch)
                continue
            sent, failed = outcome
            result.sent += sent
            result.failed += failed

        NOTIFICATIONS_SENT.labels(type=type_label).inc(result.sent)
        NOTIFICATIONS_FAILED.labels(type=type_label).inc(result.failed)
        logger.info(
            "notification_dispatched",
            type=type_label,
            title=payload.title,
            recipients=result.recipients,
            sent=result.sent,
            failed=result.failed,
            batches=result.batches,
        )
        return result
