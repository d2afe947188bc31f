"""Conversational agent that fills web forms by driving a real browser."""

__all__ = ["__version__"]

__version__ = "0.1.0"
