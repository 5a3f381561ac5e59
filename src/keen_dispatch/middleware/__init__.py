"""Request-reporting middleware producing events for the dispatcher."""

from .models import RequestEvent
from .wsgi_middleware import EventMiddleware

__all__ = ["EventMiddleware", "RequestEvent"]
