"""
Notification delivery boundary (Expo push service).

One ``send`` call is one provider batch. A transport or HTTP failure raises so
the dispatcher can count the whole batch as failed; per-message rejections
come back in the report.
"""
from __future__ import annotations

import abc
import re
from dataclasses import dataclass, field
from typing import Optional

from shared.config import Settings, get_settings
from shared.models.domain import PushMessage
from shared.utils.http_client import ProviderHTTPClient
from shared.utils.logging import get_logger

logger = get_logger(__name__)

_EXPO_TOKEN = re.compile(r"^Expo(nent)?PushToken\[.+\]$")


def is_valid_push_token(token: Optional[str]) -> bool:
    return bool(token) and bool(_EXPO_TOKEN.match(token or ""))


@dataclass
class DeliveryReport:
    accepted: int = 0
    rejected: int = 0
    errors: list[str] = field(default_factory=list)


class PushGateway(abc.ABC):
    max_batch_size: int = 100

    async def start(self) -> None:
        pass

    async def close(self) -> None:
        pass

    @abc.abstractmethod
    async def send(self, messages: list[PushMessage]) -> DeliveryReport:
        ...


class ExpoPushGateway(PushGateway):
    def __init__(
        self,
        http_client: Optional[ProviderHTTPClient] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        headers = {"Accept": "application/json", "Accept-Encoding": "gzip, deflate"}
        if self._settings.expo_access_token:
            headers["Authorization"] = f"Bearer {self._settings.expo_access_token}"
        self._http = http_client or ProviderHTTPClient(
            provider_name="expo_push",
            headers=headers,
            max_retries=2,
            rotate_user_agent=False,
        )
        self.max_batch_size = self._settings.push_batch_size

    async def start(self) -> None:
        await self._http.start()

    async def close(self) -> None:
        await self._http.close()

    async def send(self, messages: list[PushMessage]) -> DeliveryReport:
        if not messages:
            return DeliveryReport()
        body = [m.model_dump(by_alias=True) for m in messages]
        resp = await self._http.post(self._settings.expo_push_url, json_body=body)
        tickets = resp.json().get("data") or []

        report = DeliveryReport()
        for ticket in tickets:
            if isinstance(ticket, dict) and ticket.get("status") == "error":
                report.rejected += 1
                detail = (ticket.get("details") or {}).get("error") or ticket.get("message") or "unknown"
                report.errors.append(str(detail))
            else:
                report.accepted += 1
        # Tickets missing from the response count as rejected
        report.rejected += max(0, len(messages) - len(tickets))
        if report.rejected:
            logger.warning("push_tickets_rejected", rejected=report.rejected, errors=report.errors[:5])
        return report
