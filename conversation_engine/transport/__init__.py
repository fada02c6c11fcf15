"""Backend transport: request descriptors, httpx execution, service lookup."""

from conversation_engine.transport.catalog import StaticServiceCatalog
from conversation_engine.transport.client import HttpTransport
from conversation_engine.transport.models import RequestDescriptor, TransportResponse

__all__ = [
    "HttpTransport",
    "RequestDescriptor",
    "StaticServiceCatalog",
    "TransportResponse",
]
