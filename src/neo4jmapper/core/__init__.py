# src/neo4jmapper/core/__init__.py
"""
Neo4jMapper Core Module

Cypher script assembly shared by the save, load and delete paths.
"""

from neo4jmapper.core.query import Projection, Query, QueryRunner

__all__ = [
    "Query",
    "QueryRunner",
    "Projection",
]
