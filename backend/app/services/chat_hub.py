"""Composition of the live chat core: registry, transport, presence, relay, gate."""

from app.services.connection_registry import ConnectionRegistry
from app.services.message_relay import MessageRelay
from app.services.outbound import OutboundTransport
from app.services.presence_service import PresenceBroadcaster
from app.services.rate_limiter import SendThrottle
from app.services.session_gate import SessionGate


class ChatHub:
    """Own one registry and wire every live component to it."""

    def __init__(self, session_factory=None) -> None:
        self.registry = ConnectionRegistry()
        self.transport = OutboundTransport()
        self.throttle = SendThrottle()
        self.presence = PresenceBroadcaster(self.registry, self.transport)
        self.relay = MessageRelay(
            self.registry, self.transport, session_factory, throttle=self.throttle
        )
        self.gate = SessionGate(session_factory)


# Single instance shared across the application.
chat_hub = ChatHub()
