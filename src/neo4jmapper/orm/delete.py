"""
Neo4jMapper delete path

Detach-deletes one node by its identifying attribute, then deletes those of
its former neighbours that are left without any relationship. Orphans further
away are not followed.
"""

from __future__ import annotations

import logging
from typing import Union

from neo4jmapper.core.query import Query, QueryRunner
from neo4jmapper.exceptions import SchemaError
from neo4jmapper.orm.nodes import Deferred, Node, NodeKind, kind_of
from neo4jmapper.orm.schema import Schema

logger = logging.getLogger(__name__)


def build_delete_query(schema: Schema, node: Union[Node, Deferred]) -> Query:
    """Delete script for ``node`` without running it."""
    kind = kind_of(node)
    if kind is NodeKind.SCALAR:
        raise SchemaError(f"Only nodes and references can be deleted, got {node!r}")

    if kind is NodeKind.DEFERRED:
        descriptor = schema.describe(node.target)
        identity = node.identity
    else:
        descriptor = schema.describe(type(node))
        identity = node.get_value()

    if identity is None:
        raise SchemaError(f"Cannot delete {descriptor.name} without {descriptor.value_name}")
    if descriptor.kind is NodeKind.PROPERTY:
        identity = descriptor.node_type.encode(identity)

    query = Query()
    root = query.add_node(node)
    neighbour = query.add_temp()
    neighbours = query.add_temp()
    candidate = query.add_temp()
    orphans = query.add_temp()
    orphan = query.add_temp()

    key = {descriptor.value_name: query.add_argument(identity)}
    query.write(f"MATCH {query.node_pattern(root, descriptor.label, key)}")
    query.write(f"OPTIONAL MATCH ({root})--({neighbour}) WHERE {neighbour} <> {root}")

    query.context.append(root)
    query.carry(f"collect(DISTINCT {neighbour}) AS {neighbours}")
    query.write(f"DETACH DELETE {root}")

    query.context.clear()
    query.carry(f"[{candidate} IN {neighbours} WHERE NOT ({candidate})--()] AS {orphans}")
    query.write(f"FOREACH ({orphan} IN {orphans} | DELETE {orphan})")
    query.write(f"RETURN 1 + size({orphans}) AS count")
    return query


async def delete(schema: Schema, node: Union[Node, Deferred], runner: QueryRunner) -> int:
    """
    Delete ``node`` and the neighbours it leaves orphaned.

    Returns:
        Total number of deleted nodes; 0 when the node did not exist.
    """
    query = build_delete_query(schema, node)
    records = await query.run(runner)
    count = records[0]["count"] if records else 0
    logger.debug("Deleted %d node(s)", count)
    return count
