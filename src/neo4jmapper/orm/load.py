"""
Neo4jMapper load path

Builds one traversal script per load call. Each structural level matches its
node, projects every relation field into a temporary and folds the fields
into a single map literal tagged with the node's discriminant. Relations to
Entities and Properties are terminal: singular ones project the identifying
value, list ones project lightweight Deferred records, so the size of a
result never depends on how large the related subgraphs are.

Example:
    ```
    MATCH (n0:Person:Entity:Node {uuid: $a0})
    OPTIONAL MATCH (n0)-[:HAS]->(n1:Animal:Entity:Node)
    WITH n0, [t1 IN collect(n1) | {uuid: t1.uuid, class: ..., __class: 'Deferred'}] AS t0
    WITH {__class: ..., uuid: n0.uuid, pets: t0} AS t2
    RETURN t2 AS data LIMIT 1
    ```
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Type, Union

from neo4jmapper.core.query import Query, QueryRunner
from neo4jmapper.exceptions import NotFoundError, SchemaError
from neo4jmapper.orm.nodes import Deferred, Node, NodeKind, kind_of
from neo4jmapper.orm.schema import CLASS_KEY, DEFERRED_TAG, Schema, TypeDescriptor

logger = logging.getLogger(__name__)

# Pass as ``limit`` to return every matching node.
UNBOUNDED = None


class LoadQueryBuilder:
    """Recursive builder of the traversal script for one target type."""

    def __init__(
        self,
        schema: Schema,
        target: Type[Node],
        filter: Optional[Mapping[str, Any]] = None,
        limit: Optional[int] = 1,
    ):
        if limit is not None and (not isinstance(limit, int) or limit < 1):
            raise ValueError(f"limit must be a positive integer or None, got {limit!r}")

        self.schema = schema
        self.target = target
        self.filter: Dict[str, Any] = dict(filter or {})
        self.limit = limit
        self.query = Query()
        # structural types on the current projection path
        self._path: List[str] = []

    def build(self) -> Query:
        query = self.query
        descriptor = self.schema.describe(self.target)

        root = query.add_node()
        key = {}
        identity = self.filter.get(descriptor.value_name)
        if identity is not None:
            key[descriptor.value_name] = query.add_argument(_identity_of(identity))
        query.write(f"MATCH {query.node_pattern(root, descriptor.label, key)}")

        conditions = self._relation_conditions(descriptor, root)
        if conditions:
            query.write(f"WHERE {' AND '.join(conditions)}")

        data = self._project(descriptor, root, nullable=False)

        statement = f"RETURN {data} AS data"
        if self.limit is not None:
            statement += f" LIMIT {self.limit}"
        query.write(statement)
        return query

    def _relation_conditions(self, descriptor: TypeDescriptor, root: str) -> List[str]:
        """Existence constraints for filter entries that name relation fields."""
        conditions = []
        for field_name, value in self.filter.items():
            if field_name == descriptor.value_name:
                continue

            relationship = descriptor.relationships.get(field_name)
            if relationship is None:
                raise SchemaError(f"{descriptor.name} has no field '{field_name}' to filter on")

            target = self.schema.describe(relationship.target)
            value = _identity_of(value)
            if target.kind is NodeKind.PROPERTY:
                value = target.node_type.encode(value)

            pattern = self.query.node_pattern(
                "", target.label, {target.value_name: self.query.add_argument(value)}
            )
            conditions.append(f"({root})-[:{relationship.label}]->{pattern}")
        return conditions

    def _discriminant(self, alias: str) -> str:
        """Most specific registered label the matched node carries."""
        names = self.query.add_argument(self.schema.specificity())
        return f"coalesce(head([l IN {names} WHERE l IN labels({alias})]), labels({alias})[0])"

    def _project(self, descriptor: TypeDescriptor, alias: str, nullable: bool) -> str:
        """
        Project one level into a map literal.

        Args:
            descriptor: Type matched at this level.
            alias: Variable the node is bound to.
            nullable: The node came from an OPTIONAL MATCH and may be null.

        Returns:
            Temporary holding the level's map.

        Raises:
            SchemaError: A plain Node type reaches itself through plain Node
                relations, so the projection would never end.
        """
        query = self.query
        if descriptor.name in self._path:
            cycle = " -> ".join(self._path + [descriptor.name])
            raise SchemaError(
                f"{descriptor.name} is reached again through plain Node relations "
                f"({cycle}); point one of them at an Entity"
            )
        self._path.append(descriptor.name)

        scope_start = len(query.context)
        query.context.append(alias)

        entries = [
            f"{CLASS_KEY}: {self._discriminant(alias)}",
            f"{descriptor.value_name}: {alias}.{descriptor.value_name}",
        ]

        for field_name, relationship in descriptor.relationships.items():
            target = self.schema.describe(relationship.target)
            optional = relationship.optional or relationship.list or nullable

            child = query.add_node()
            match = "OPTIONAL MATCH" if optional else "MATCH"
            query.write(
                f"{match} ({alias})-[:{relationship.label}]->"
                f"{query.node_pattern(child, target.label)}"
            )

            if target.is_terminal:
                temp = query.add_temp()
                if relationship.list:
                    item = query.add_temp()
                    reference = (
                        f"{{{target.value_name}: {item}.{target.value_name}, "
                        f"class: {self._discriminant(item)}, {CLASS_KEY}: '{DEFERRED_TAG}'}}"
                    )
                    query.carry(f"[{item} IN collect({child}) | {reference}] AS {temp}")
                else:
                    query.carry(f"{child}.{target.value_name} AS {temp}")
            else:
                nested = self._project(target, child, nullable=optional)
                if relationship.list:
                    temp = query.add_temp()
                    query.carry(f"collect({nested}) AS {temp}")
                else:
                    temp = nested

            query.context.append(temp)
            entries.append(f"{field_name}: {temp}")

        del query.context[scope_start:]

        body = "{" + ", ".join(entries) + "}"
        if nullable:
            body = f"CASE WHEN {alias} IS NULL THEN NULL ELSE {body} END"

        temp = query.add_temp()
        query.carry(f"{body} AS {temp}")
        self._path.pop()
        return temp


def _identity_of(value: Any) -> Any:
    kind = kind_of(value)
    if kind is NodeKind.DEFERRED:
        return value.identity
    if kind is NodeKind.SCALAR:
        return value
    return value.get_value()


def build_load_query(
    schema: Schema,
    target: Type[Node],
    filter: Optional[Mapping[str, Any]] = None,
    limit: Optional[int] = 1,
) -> Query:
    """Load script for ``target`` without running it."""
    return LoadQueryBuilder(schema, target, filter, limit).build()


async def load(
    schema: Schema,
    target: Union[Type[Node], Deferred],
    runner: QueryRunner,
    filter: Optional[Mapping[str, Any]] = None,
    limit: Optional[int] = 1,
) -> Any:
    """
    Load nodes of ``target`` type.

    Args:
        schema: Registry used to build the script and rebuild the objects.
        target: Node type, or a Deferred whose type, filter and limit are used.
        runner: Persistence boundary.
        filter: Identifying value (under the type's value name) and/or
            identifying values of related nodes keyed by relation field.
        limit: Maximum number of results; ``UNBOUNDED`` (None) for all.

    Returns:
        One object when ``limit`` is 1, otherwise a (possibly empty) list.

    Raises:
        NotFoundError: ``limit`` is 1 and nothing matched.
    """
    if isinstance(target, Deferred):
        filter = target.filter
        limit = target.limit
        target = target.target

    query = build_load_query(schema, target, filter, limit)
    records = await query.run(runner)
    logger.debug("Loaded %d %s record(s)", len(records), target.__name__)

    if limit == 1:
        if not records:
            raise NotFoundError(f"No {target.__name__} matches {dict(filter or {})!r}")
        return schema.deep_deserialize(records[0]["data"])

    return [schema.deep_deserialize(record["data"]) for record in records]
