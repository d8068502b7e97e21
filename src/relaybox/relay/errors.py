class RelayError(Exception):
    """Base class for errors raised by the relay."""


class MissingKeyError(RelayError):
    """The client key is absent or empty. Nothing was stored or delivered."""

    def __init__(self, message: str = "Missing localip") -> None:
        super().__init__(message)
        self.message = message


class InvalidPayloadError(RelayError):
    """The inbound record could not be parsed into a JSON object."""

    def __init__(self, message: str = "Invalid data format") -> None:
        super().__init__(message)
        self.message = message


class TransportError(RelayError):
    """Sending over a push channel failed."""
