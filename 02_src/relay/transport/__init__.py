"""Transport module."""

from .transport import HttpTransport, ITransport

__all__ = ["ITransport", "HttpTransport"]
