"""Gateway routing between local handlers and external upstreams."""

from .local_handlers import local_health, make_selftest_handler, register_default_handlers
from .models import GatewayRequest, LocalDispatch, ProxyOutcome, RouteOutcome
from .router import HOP_BY_HOP_HEADERS, REMOTE_CAPABILITIES, GatewayRouter, LocalHandler

__all__ = [
    "HOP_BY_HOP_HEADERS",
    "REMOTE_CAPABILITIES",
    "GatewayRequest",
    "GatewayRouter",
    "LocalDispatch",
    "LocalHandler",
    "ProxyOutcome",
    "RouteOutcome",
    "local_health",
    "make_selftest_handler",
    "register_default_handlers",
]
