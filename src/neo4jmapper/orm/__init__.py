# src/neo4jmapper/orm/__init__.py
"""
Neo4jMapper ORM Module

Schema descriptors, the registry, the recursive save/load/delete paths and
the Neo4j engine they run against.
"""

from neo4jmapper.orm.nodes import (
    Deferred,
    Entity,
    Node,
    NodeKind,
    Property,
    kind_of,
)
from neo4jmapper.orm.relationships import Relationship
from neo4jmapper.orm.schema import Schema, TypeDescriptor
from neo4jmapper.orm.save import build_save_query, save
from neo4jmapper.orm.load import UNBOUNDED, build_load_query, load
from neo4jmapper.orm.delete import build_delete_query, delete
from neo4jmapper.orm.mapper import GraphMapper

from neo4jmapper.orm.engine import (
    GraphEngine,
    create_graph_engine,
    create_graph_engine_from_settings,
)

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

    # Operations
    "save",
    "load",
    "delete",
    "build_save_query",
    "build_load_query",
    "build_delete_query",
    "UNBOUNDED",
    "GraphMapper",

    # Engine
    "GraphEngine",
    "create_graph_engine",
    "create_graph_engine_from_settings",
]
