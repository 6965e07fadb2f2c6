"""FastAPI dependencies shared by the routers."""

from fastapi import Request

from ..relay import RelayService


def get_relay(request: Request) -> RelayService:
    """The relay service the app was started with."""
    return request.app.state.relay
