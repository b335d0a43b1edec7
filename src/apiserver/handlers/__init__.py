"""
Request handlers.

Handlers take an HTTPRequest and return a RouteResult. They never touch
the connection, and they reach shared state only through objects handed
to them at construction (the Registry).
"""

from .users import UserHandlers

__all__ = ["UserHandlers"]
