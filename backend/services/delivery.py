from dataclasses import dataclass


@dataclass
class DeliveryResult:
    """Outcome of handing a message to an external provider."""

    success: bool
    message_id: str | None = None
    error: str | None = None
