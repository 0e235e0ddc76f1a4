"""
API Module
"""
from .deps import Services, build_services, get_services
from .errors import register_exception_handlers
from .middleware import RequestLoggingMiddleware

__all__ = [
    "Services",
    "build_services",
    "get_services",
    "register_exception_handlers",
    "RequestLoggingMiddleware",
]
