"""
Transports connecting the SDK to a nodeos HTTP API.
"""
from .transport import NodeTransport, get_http_transport, get_stub_transport, get_transport
from .http_transport import HttpTransport
from .stub_transport import StubTransport

__all__ = [
    'NodeTransport',
    'HttpTransport',
    'StubTransport',
    'get_transport',
    'get_http_transport',
    'get_stub_transport',
]
