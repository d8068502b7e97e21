from relaybox.relay.errors import InvalidPayloadError, MissingKeyError, RelayError, TransportError
from relaybox.relay.service import Delivery, RelayService
from relaybox.relay.sweeper import ExpirySweeper

__all__ = [
    "Delivery",
    "ExpirySweeper",
    "InvalidPayloadError",
    "MissingKeyError",
    "RelayError",
    "RelayService",
    "TransportError",
]
