"""
Neo4jMapper save path

Translates an in-memory object graph into one idempotent Cypher script.
Nodes are upserted on their identifying attribute; every declared relation of
a saved node is first cleared and then re-created from the current field
values, so relation fields have replace semantics.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from neo4jmapper.core.query import UUIDS, Query, QueryRunner
from neo4jmapper.exceptions import NotFoundError, SchemaError
from neo4jmapper.orm.nodes import Deferred, Entity, Node, NodeKind, kind_of
from neo4jmapper.orm.relationships import Relationship
from neo4jmapper.orm.schema import Schema, TypeDescriptor, as_list

logger = logging.getLogger(__name__)

# Column carrying the identifiers generated by the script, in slot order.
GENERATED = "generated"


class SaveQueryBuilder:
    """
    Depth-first walk over one root entity.

    Each Python instance is emitted once; further references to the same
    instance (including cycles) reuse its alias.
    """

    def __init__(self, schema: Schema):
        self.schema = schema
        self.query = Query()
        self._aliases: Dict[int, str] = {}

    def build(self, root: Node) -> Query:
        if kind_of(root) in (NodeKind.SCALAR, NodeKind.DEFERRED):
            raise SchemaError(f"Only node instances can be saved, got {root!r}")

        alias = self._upsert(root)
        value_name = root.get_value_name()
        returned = f"RETURN {alias}.{value_name} AS {value_name}"
        if self.query.uuid_count:
            returned += f", {UUIDS} AS {GENERATED}"
        self.query.write(returned)
        return self.query

    def _upsert(self, node: Any) -> str:
        seen = self._aliases.get(id(node))
        if seen is not None:
            return seen

        query = self.query
        kind = kind_of(node)

        if kind is NodeKind.DEFERRED:
            descriptor = self.schema.describe(node.target)
            alias = query.add_node(node)
            key = {descriptor.value_name: query.add_argument(node.identity)}
            query.carry()
            query.write(f"MATCH {query.node_pattern(alias, descriptor.label, key)}")
        else:
            descriptor = self.schema.describe(type(node))
            alias = query.add_node(node)
            key = self._identity(descriptor, node)
            keyword = "MERGE" if key else "CREATE"
            query.write(f"{keyword} {query.node_pattern(alias, descriptor.label, key)}")

        self._aliases[id(node)] = alias
        query.context.append(alias)

        if kind is not NodeKind.DEFERRED:
            for field_name, relationship in descriptor.relationships.items():
                self._connect(alias, relationship, getattr(node, field_name, None))

        return alias

    def _identity(self, descriptor: TypeDescriptor, node: Node) -> Optional[Dict[str, str]]:
        """Rendered ``{property: expression}`` the node is merged on."""
        value = node.get_value()

        if descriptor.kind is NodeKind.ENTITY:
            expr = self.query.add_argument(value) if value else self.query.add_uuid(node)
            return {descriptor.value_name: expr}

        if descriptor.kind is NodeKind.PROPERTY:
            value = descriptor.node_type.encode(value)

        if value is None:
            return None
        return {descriptor.value_name: self.query.add_argument(value)}

    def _connect(self, alias: str, relationship: Relationship, values: Any) -> None:
        query = self.query
        target = self.schema.describe(relationship.target)

        # Replace semantics: drop every existing edge of this relation first.
        stale = query.add_temp()
        query.carry()
        query.write(
            f"OPTIONAL MATCH ({alias})-[{stale}:{relationship.label}]->"
            f"({target.label_pattern})"
        )
        query.write(f"DELETE {stale}")
        query.carry(distinct=True)

        for value in as_list(values):
            if kind_of(value) is NodeKind.SCALAR:
                if target.kind is NodeKind.PROPERTY:
                    value = target.node_type.coerce(value)
                elif target.kind is NodeKind.ENTITY:
                    # a bare identity, as singular Entity relations are loaded
                    value = Deferred(target.node_type, {target.value_name: value})
                else:
                    raise SchemaError(
                        f"Bare value {value!r} given for a relation to {target.name}, "
                        "which is a plain Node without an identity"
                    )

            child = self._upsert(value)
            if child not in query.context:
                query.context.append(child)

            edge = query.add_relationship()
            query.write(f"MERGE ({alias})-[{edge}:{relationship.label}]->({child})")


def _assign_generated(owners: List[Any], generated: List[str]) -> None:
    """Write each generated identifier back to the Entity that claimed its slot."""
    for owner, uuid in zip(owners, generated):
        if isinstance(owner, Entity) and not owner.uuid:
            owner.uuid = uuid


def build_save_query(schema: Schema, root: Node) -> Query:
    """Save script for ``root`` without running it."""
    return SaveQueryBuilder(schema).build(root)


async def save(schema: Schema, root: Node, runner: QueryRunner) -> Any:
    """
    Persist ``root`` and everything reachable through its relation fields.

    Args:
        schema: Registry the root's type belongs to.
        root: Entity (or other node) to save.
        runner: Persistence boundary.

    Returns:
        The identifying value of the saved root. Every saved Entity that had
        no uuid, the root included, gets its generated one assigned.

    Raises:
        ValidationError: A Property value is not allowed; nothing was sent.
        NotFoundError: The script produced no row, i.e. a Deferred reference
            points to a node that does not exist.
    """
    query = build_save_query(schema, root)
    records = await query.run(runner)
    if not records:
        raise NotFoundError(f"Saving {type(root).__name__} matched no rows")

    record = records[0]
    if query.uuid_count:
        _assign_generated(query.uuid_owners, record[GENERATED])

    value_name = root.get_value_name()
    value = record[value_name]
    if isinstance(root, Entity) and not root.uuid:
        root.uuid = value

    logger.debug("Saved %s %s=%r", type(root).__name__, value_name, value)
    return value
