"""Live file previews for terminal file browsers."""

__version__ = "0.1.0"
