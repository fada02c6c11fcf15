"""
Collaborator Interfaces

Contracts for the services the activity pipeline depends on but does not
implement: request execution, service discovery, identity resolution, key
management and the host's event bus.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from conversation_engine.activities.models import Key
    from conversation_engine.transport.models import RequestDescriptor, TransportResponse


class Transport(Protocol):
    """Executes requests. Failures raise `TransportError` carrying `status_code`."""

    async def request(self, descriptor: RequestDescriptor) -> TransportResponse: ...


class ServiceCatalog(Protocol):
    async def get_service_url(self, service: str) -> str: ...


class IdentityResolver(Protocol):
    """Maps participant references to stable user UUIDs."""

    async def as_uuid(self, participant: Any, *, create: bool = False) -> str: ...

    async def record_uuid(self, participant: dict[str, Any]) -> None: ...


class KeyManager(Protocol):
    """Mints unbound encryption keys."""

    async def create_unbound_keys(self, *, count: int) -> Key | Sequence[Key]: ...


class ActivityHook(Protocol):
    """A caller-supplied partial activity that builds its own base record.

    `prepare` may be sync or async and returns the base activity dict.
    """

    def prepare(self, params: dict[str, Any]) -> Any: ...


class EventSink(Protocol):
    def trigger(self, event_name: str, *args: Any) -> None: ...
