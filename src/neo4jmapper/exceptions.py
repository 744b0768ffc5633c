"""
Neo4jMapper error taxonomy.

Driver failures raised while a statement runs (``neo4j.exceptions.*``) are
not wrapped; they reach the caller unchanged.
"""


class Neo4jMapperError(Exception):
    """Base class for every error raised by neo4jmapper."""


class ValidationError(Neo4jMapperError, ValueError):
    """A Property value is not one of the values its type allows."""

    def __init__(self, type_name: str, value: object):
        self.type_name = type_name
        self.value = value
        super().__init__(f'"{value}" is not a valid {type_name} value')


class NotFoundError(Neo4jMapperError, LookupError):
    """A statement that had to produce a row produced none."""


class SchemaError(Neo4jMapperError, TypeError):
    """A type, relationship target or filter does not fit the schema."""


class TransportError(Neo4jMapperError, ConnectionError):
    """The persistence boundary is not connected or could not connect."""
