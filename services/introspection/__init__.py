"""services/introspection/__init__.py"""
from services.introspection.connection_registry import (
    ConnectionHandle,
    ConnectionRegistry,
    get_connection_registry,
)
from services.introspection.errors import IntrospectionError, StaleHandleError
from services.introspection.introspector import (
    introspect,
    introspect_schema,
    list_databases,
    list_tables,
    test_connection,
)

__all__ = [
    "ConnectionHandle",
    "ConnectionRegistry",
    "get_connection_registry",
    "IntrospectionError",
    "StaleHandleError",
    "introspect",
    "introspect_schema",
    "list_databases",
    "list_tables",
    "test_connection",
]
