"""Swedish voice-intent painting estimates."""

__version__ = "0.1.0"
