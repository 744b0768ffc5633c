"""
Neo4jMapper GraphMapper - registry-bound entry points

A GraphMapper binds one Schema to one persistence boundary. Every call builds
its own Query, runs it once and returns; calls share no state and may be
awaited concurrently.

Example:
    ```python
    schema = Schema([Person, Dog])
    async with create_graph_engine_from_settings() as engine:
        mapper = GraphMapper(schema, engine)

        uuid = await mapper.save(Person(name="Alice", pets=[Dog(), Dog()]))
        alice = await mapper.load(Person, {"uuid": uuid})
        first_pet = await mapper.resolve(alice.pets[0])
        removed = await mapper.delete(alice)
    ```
"""

from __future__ import annotations

from typing import Any, Mapping, Optional, Type, Union

from neo4jmapper.core.query import QueryRunner
from neo4jmapper.orm.delete import delete as delete_node
from neo4jmapper.orm.load import load as load_nodes
from neo4jmapper.orm.save import save as save_node
from neo4jmapper.orm.nodes import Deferred, Node
from neo4jmapper.orm.schema import Schema


class GraphMapper:
    """Save, load and delete schema-typed objects through one runner."""

    def __init__(self, schema: Schema, runner: QueryRunner):
        """
        Args:
            schema: Registry of the mapped types.
            runner: Persistence boundary, usually a connected GraphEngine.
        """
        self.schema = schema
        self.runner = runner

    async def save(self, entity: Node) -> Any:
        """Persist ``entity`` with its relations; returns its identifying value."""
        return await save_node(self.schema, entity, self.runner)

    async def load(
        self,
        target: Union[Type[Node], Deferred],
        filter: Optional[Mapping[str, Any]] = None,
        limit: Optional[int] = 1,
    ) -> Any:
        """One object for ``limit=1`` (NotFoundError if none), else a list."""
        return await load_nodes(self.schema, target, self.runner, filter, limit)

    async def resolve(self, reference: Deferred) -> Any:
        """Load what a Deferred reference points to."""
        return await load_nodes(self.schema, reference, self.runner)

    async def delete(self, node: Union[Node, Deferred]) -> int:
        """Delete ``node`` and its newly orphaned neighbours; returns the count."""
        return await delete_node(self.schema, node, self.runner)

    def __repr__(self) -> str:
        return f"GraphMapper({self.schema!r})"
