"""Gateway collaborators — outbound voice/messaging operations."""

from callbridge.gateway.base import Gateway, GatewayError
from callbridge.gateway.http import HttpGateway

__all__ = ["Gateway", "GatewayError", "HttpGateway"]
