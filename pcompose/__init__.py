"""Shell command helpers, an HTTP/WebSocket process control API, its client and command line."""

__version__ = "0.1.0"

__all__ = ["__version__"]