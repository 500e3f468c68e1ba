"""
services/introspection/errors.py
--------------------------------
Exceptions raised by the live introspection service.
"""


class IntrospectionError(Exception):
    """Raised when a database cannot be reached or read."""


class StaleHandleError(IntrospectionError):
    """
    Raised when a connection handle no longer names a live registry slot:
    the connection was released, swept for idleness, or never existed.
    """
