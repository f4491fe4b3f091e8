"""Shared FastAPI dependencies."""
from fastapi import Request

from kcli.services.broker import ClusterClient


def get_client(request: Request) -> ClusterClient:
    """Broker client created at startup and kept on `app.state`."""
    return request.app.state.client
