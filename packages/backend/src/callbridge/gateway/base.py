"""Gateway base — the outbound half of the telephony/messaging provider.

Learn: callbridge never speaks a provider's wire format. Everything
provider-specific (TwiML, call-control commands, message APIs, signature
checks) lives behind this interface. The engine only needs four verbs:

- speak: say something on a live call, optionally listening for a reply
- send: deliver an SMS / WhatsApp message
- initiate: place a new outbound call
- hangup: end a live call

Any failure to reach the counterpart raises GatewayError. Callers treat
it as "the user is gone" and take their fallback path.
"""

from abc import ABC, abstractmethod

from callbridge.models import Channel


class GatewayError(Exception):
    """Raised when the gateway could not deliver an outbound operation."""


class Gateway(ABC):
    """Abstract outbound gateway."""

    @abstractmethod
    async def speak(self, correlation_id: str, text: str, wait_for_reply: bool) -> None:
        """Speak on a live call. With wait_for_reply the next utterance is gathered."""

    @abstractmethod
    async def send(self, channel: Channel, address: str, text: str) -> str:
        """Send a message on a messaging channel. Returns the provider message id."""

    @abstractmethod
    async def initiate(self, address: str, text: str) -> str:
        """Place a call that opens with `text`. Returns the call's correlation id."""

    @abstractmethod
    async def hangup(self, correlation_id: str) -> None:
        """End a live call."""

    async def aclose(self) -> None:
        """Release connections. Override when the gateway holds any."""
