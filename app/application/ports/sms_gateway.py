from typing import Protocol


class SMSDeliveryError(Exception):
    """The gateway did not accept the message."""


class SMSGateway(Protocol):
    def send(self, to: str, body: str) -> str:
        """Dispatch ``body`` to ``to`` and return the gateway message id."""
        ...
