# src/neo4jmapper/__init__.py
"""
Neo4jMapper - Declarative object-graph mapping for Neo4j

Neo4jMapper maps Pydantic V2 node models onto Cypher:
- Entities, Properties and plain Nodes with multi-label inheritance
- Relationship fields with replace-on-save semantics
- One idempotent script per save, load or delete call
- Lazy Deferred references for list relations
- An async GraphEngine over the official Neo4j driver

Example:
    ```python
    from typing import Any
    from neo4jmapper import Entity, Property, Relationship, Schema, GraphMapper
    from neo4jmapper import create_graph_engine_from_settings

    class Species(Property):
        allowed = ("cat", "dog")

    class Animal(Entity):
        species: Any = Relationship(Species)

    class Person(Entity):
        pets: Any = Relationship(Animal, list=True, optional=True)

    schema = Schema([Person])

    async with create_graph_engine_from_settings() as engine:
        mapper = GraphMapper(schema, engine)
        uuid = await mapper.save(Person(pets=[Animal(species="dog")]))
        person = await mapper.load(Person, {"uuid": uuid})
        dog = await mapper.resolve(person.pets[0])
    ```
"""

from neo4jmapper.exceptions import (
    Neo4jMapperError,
    NotFoundError,
    SchemaError,
    TransportError,
    ValidationError,
)
from neo4jmapper.config import Neo4jSettings, load_settings

from neo4jmapper.core.query import Query, QueryRunner

from neo4jmapper.orm.nodes import Deferred, Entity, Node, NodeKind, Property, kind_of
from neo4jmapper.orm.relationships import Relationship
from neo4jmapper.orm.schema import Schema, TypeDescriptor
from neo4jmapper.orm.save import build_save_query, save
from neo4jmapper.orm.load import UNBOUNDED, build_load_query, load
from neo4jmapper.orm.delete import build_delete_query, delete
from neo4jmapper.orm.mapper import GraphMapper

# Engine for Neo4j connections
from neo4jmapper.orm.engine import (
    GraphEngine,
    create_graph_engine,
    create_graph_engine_from_settings,
)

__version__ = "0.1.0"

__all__ = [
    # Schema model
    "Node",
    "Entity",
    "Property",
    "Deferred",
    "NodeKind",
    "kind_of",
    "Relationship",
    "Schema",
    "TypeDescriptor",

    # Query building and operations
    "Query",
    "QueryRunner",
    "save",
    "load",
    "delete",
    "build_save_query",
    "build_load_query",
    "build_delete_query",
    "UNBOUNDED",
    "GraphMapper",

    # Engine and configuration
    "GraphEngine",
    "create_graph_engine",
    "create_graph_engine_from_settings",
    "Neo4jSettings",
    "load_settings",

    # Errors
    "Neo4jMapperError",
    "ValidationError",
    "NotFoundError",
    "SchemaError",
    "TransportError",

    "__version__",
]
