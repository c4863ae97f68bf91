# Reverse-proxy support
#
# client.py   Retrying JSON client for the upstream OpenAI-compatible backend

from .client import BackendClient, BackendError, ProxyError, TransportError, Unavailable

__all__ = ["BackendClient", "BackendError", "ProxyError", "TransportError", "Unavailable"]
