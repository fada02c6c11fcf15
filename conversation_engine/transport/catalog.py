"""Service URL lookup backed by settings."""

from __future__ import annotations

from conversation_engine.config import Settings, get_settings
from conversation_engine.kernel.errors import UnknownServiceError


class StaticServiceCatalog:
    """
    Resolves a service name (e.g. "conversation") to its base URL.

    Explicit `service_urls` entries override the dedicated
    `conversation_service_url` setting.
    """

    def __init__(self, settings: Settings | None = None):
        settings = settings or get_settings()
        self._urls: dict[str, str] = {"conversation": settings.conversation_service_url}
        self._urls.update(settings.service_urls)

    async def get_service_url(self, service: str) -> str:
        url = self._urls.get(service)
        if not url:
            raise UnknownServiceError(
                message=f"No base URL configured for service {service!r}",
                meta={"service": service},
            )
        return url.rstrip("/")
