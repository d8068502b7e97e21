from starlette.requests import HTTPConnection

from relaybox.relay import RelayService


def get_relay(conn: HTTPConnection) -> RelayService:
    """The process-wide relay, created by the application lifespan."""
    return conn.app.state.relay
