"""
HTTP Transport

Executes `RequestDescriptor`s against the backend with httpx. Owns everything
the activity pipeline treats as external: URL resolution, auth headers,
retries, timeouts and status-code handling.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from conversation_engine.collaborators import ServiceCatalog
from conversation_engine.config import Settings, get_settings
from conversation_engine.kernel.errors import ConversationNotIdentifiedError, TransportError
from conversation_engine.transport.http import RetryPolicy, request_with_retry
from conversation_engine.transport.models import RequestDescriptor, TransportResponse

logger = structlog.get_logger()


def _decode_body(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


class HttpTransport:
    """
    Transport collaborator built on `httpx.AsyncClient`.

    Pass a long-lived `client` to reuse connections; otherwise a client is
    opened per request.
    """

    def __init__(
        self,
        catalog: ServiceCatalog,
        settings: Settings | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self._catalog = catalog
        self._settings = settings or get_settings()
        self._client = client
        self._retry_policy = RetryPolicy.from_settings(self._settings)

    async def _resolve_url(self, descriptor: RequestDescriptor) -> str:
        if descriptor.uri:
            return descriptor.uri
        if descriptor.service and descriptor.resource:
            base_url = await self._catalog.get_service_url(descriptor.service)
            return f"{base_url}/{descriptor.resource.lstrip('/')}"
        raise ConversationNotIdentifiedError(
            meta={"service": descriptor.service, "resource": descriptor.resource},
        )

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._settings.access_token:
            headers["Authorization"] = f"Bearer {self._settings.access_token}"
        return headers

    async def _send(self, client: httpx.AsyncClient, descriptor: RequestDescriptor, url: str) -> httpx.Response:
        kwargs: dict[str, Any] = {
            "headers": self._headers(),
            "params": {k: v for k, v in descriptor.qs.items() if v is not None},
        }
        if descriptor.body is not None:
            kwargs["json"] = descriptor.body

        return await request_with_retry(
            client,
            descriptor.method,
            url,
            policy=self._retry_policy,
            service=descriptor.service,
            **kwargs,
        )

    async def request(self, descriptor: RequestDescriptor) -> TransportResponse:
        url = await self._resolve_url(descriptor)

        if self._client is not None:
            response = await self._send(self._client, descriptor, url)
        else:
            async with httpx.AsyncClient(timeout=self._settings.http_timeout_seconds) as client:
                response = await self._send(client, descriptor, url)

        body = _decode_body(response)
        if response.status_code >= 400:
            logger.warning(
                "Conversation request failed",
                method=descriptor.method,
                url=url,
                status_code=response.status_code,
            )
            raise TransportError(
                status_code=response.status_code,
                message=f"{descriptor.method} {url} failed with status {response.status_code}",
                body=body,
            )

        logger.debug(
            "Conversation request completed",
            method=descriptor.method,
            url=url,
            status_code=response.status_code,
        )
        return TransportResponse(status_code=response.status_code, body=body)

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
