"""Subdomain-routing reverse proxy."""

from .app import create_proxy_app
from .forwarder import RouteForwarder
from .identifiers import extract_subdomain, generate_passcode, generate_share_id
from .models import ProxyEvent, ProxyHealth, Route
from .server import DynamicProxy
from .table import RouteTable

__all__ = [
    "DynamicProxy",
    "RouteTable",
    "RouteForwarder",
    "Route",
    "ProxyEvent",
    "ProxyHealth",
    "create_proxy_app",
    "extract_subdomain",
    "generate_passcode",
    "generate_share_id",
]
