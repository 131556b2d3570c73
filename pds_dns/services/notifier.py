import asyncio
import logging
from typing import Iterable, List, Optional

import httpx

from pds_dns.core.config import settings
from pds_dns.models.verification_db import ServiceType
from pds_dns.models.verification_schema import NotificationPayload

logger = logging.getLogger(__name__)


class WebhookNotifier:
    """
    Posts terminal verification outcomes to the integrated services.
    Best effort: every URL is tried up to ``retries`` times, failures are logged
    and never propagate to the state machine.
    """

    def __init__(
        self,
        urls: Optional[Iterable[str]] = None,
        service_types: Optional[Iterable[str]] = None,
        timeout: float = None,
        retries: int = None,
        backoff: float = 0.5,
        transport: httpx.AsyncBaseTransport = None,
    ):
        self.urls: List[str] = list(urls if urls is not None else settings.NOTIFY_WEBHOOK_URLS)
        self.service_types = {
            ServiceType(s) for s in (service_types if service_types is not None else settings.NOTIFY_SERVICE_TYPES)
        }
        self.timeout = timeout if timeout is not None else settings.NOTIFY_TIMEOUT
        self.retries = max(1, retries if retries is not None else settings.NOTIFY_RETRIES)
        self.backoff = backoff
        self.transport = transport

    def wants(self, service_type: ServiceType) -> bool:
        return ServiceType(service_type) in self.service_types and bool(self.urls)

    async def notify(self, payload: NotificationPayload, service_type: ServiceType) -> bool:
        if not self.wants(service_type):
            logger.debug(f"Skipping notification for service type {ServiceType(service_type).value}")
            return False

        body = payload.model_dump(mode="json")
        delivered = False
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            for url in self.urls:
                if await self._post(client, url, body):
                    delivered = True
        return delivered

    async def _post(self, client: httpx.AsyncClient, url: str, body: dict) -> bool:
        for attempt in range(1, self.retries + 1):
            try:
                response = await client.post(url, json=body)
                response.raise_for_status()
                logger.info(
                    f"Notified {url} about verification {body['verification_id']}: {body['status']}"
                )
                return True
            except httpx.HTTPError as e:
                logger.warning(f"Notification to {url} failed (attempt {attempt}/{self.retries}): {e!r}")
                if attempt < self.retries and self.backoff:
                    await asyncio.sleep(self.backoff * attempt)
        logger.error(f"Giving up notifying {url} about verification {body['verification_id']}")
        return False
