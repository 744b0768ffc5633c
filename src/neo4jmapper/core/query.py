"""
Neo4jMapper Query Builder

A Query accumulates one Cypher script for a single save, load or delete call.
It hands out unique aliases for nodes, relationships and temporaries,
deduplicates parameters by value, keeps the carry context (the variables that
every later ``WITH`` stage must re-assert to keep them in scope) and batches
all identifier requests into one generation directive at the top of the
script.

Example:
    ```python
    query = Query()
    n0 = query.add_node()
    query.write(f"MATCH {query.node_pattern(n0, ('Person', 'Entity', 'Node'))}")
    query.context.append(n0)
    query.carry(f"{n0}.uuid AS uuid")
    records = await query.run(engine)
    ```
"""

from __future__ import annotations

import logging
from typing import (
    Any,
    Dict,
    Hashable,
    List,
    Mapping,
    NamedTuple,
    Optional,
    Protocol,
    Sequence,
    Tuple,
    Union,
)

logger = logging.getLogger(__name__)

# Name of the list variable produced by the identifier directive.
UUIDS = "uuids"


class QueryRunner(Protocol):
    """The persistence boundary a Query is executed against."""

    async def run(self, statement: str, parameters: Dict[str, Any]) -> Sequence[Any]:
        ...


class Projection(NamedTuple):
    """A ``WITH`` stage; rendered lazily so the identifier list can be carried."""

    names: Tuple[str, ...]
    distinct: bool = False


def _cache_key(value: Any) -> Optional[Hashable]:
    """Key under which a literal is deduplicated, or None if it cannot be."""
    if isinstance(value, Mapping):
        items = []
        for key, item in value.items():
            frozen = _cache_key(item)
            if frozen is None:
                return None
            items.append((key, frozen))
        return ("map", tuple(sorted(items)))
    if isinstance(value, (list, tuple)):
        items = []
        for item in value:
            frozen = _cache_key(item)
            if frozen is None:
                return None
            items.append(frozen)
        return ("list", tuple(items))
    try:
        hash(value)
    except TypeError:
        return None
    # The type is part of the key: 1, 1.0, True and "1" must not share a name.
    return (type(value).__name__, value)


class Query:
    """
    Mutable build state of one Cypher script.

    A Query is created for one call, populated by that call's recursion,
    executed once and then discarded.
    """

    def __init__(self, statement: str = "", parameters: Optional[Dict[str, Any]] = None):
        """
        Args:
            statement: Raw Cypher to start the script with.
            parameters: Parameters the raw statement already refers to.
        """
        self.clauses: List[Union[str, Projection]] = [statement] if statement else []
        self.parameters: Dict[str, Any] = dict(parameters or {})

        # alias -> the instance (or None) it was allocated for
        self.nodes: Dict[str, Any] = {}

        # Variables still visible in the current projection stage.
        self.context: List[str] = []

        self._node_counter = 0
        self._relationship_counter = 0
        self._argument_counter = 0
        self._temp_counter = 0
        self._uuid_counter = 0

        # instance (or None) each identifier slot was claimed for, in slot order
        self.uuid_owners: List[Any] = []

        self._argument_names: Dict[Hashable, str] = {}

    # =============================================================================
    # ALIASES
    # =============================================================================

    def add_node(self, node: Any = None) -> str:
        """Allocate the next node alias (``n0``, ``n1``, ...)."""
        alias = f"n{self._node_counter}"
        self._node_counter += 1
        self.nodes[alias] = node
        return alias

    def peek_node(self) -> str:
        """Alias the next ``add_node`` call will return, without consuming it."""
        return f"n{self._node_counter}"

    def add_relationship(self) -> str:
        """Allocate the next relationship alias (``r0``, ``r1``, ...)."""
        alias = f"r{self._relationship_counter}"
        self._relationship_counter += 1
        return alias

    def add_temp(self) -> str:
        """Allocate the next temporary alias (``t0``, ``t1``, ...)."""
        alias = f"t{self._temp_counter}"
        self._temp_counter += 1
        return alias

    def add_uuid(self, owner: Any = None) -> str:
        """
        Claim the next slot of the batched identifier directive.

        Args:
            owner: Instance the identifier is generated for.

        Returns:
            An expression such as ``uuids[0]`` that evaluates to a fresh UUID.
        """
        slot = f"{UUIDS}[{self._uuid_counter}]"
        self._uuid_counter += 1
        self.uuid_owners.append(owner)
        return slot

    @property
    def uuid_count(self) -> int:
        """Number of identifiers requested so far."""
        return self._uuid_counter

    def add_argument(self, value: Any) -> str:
        """
        Bind a literal as a query parameter.

        Binding an equal value of the same type again returns the same name.

        Returns:
            The parameter reference, e.g. ``$a0``.
        """
        key = _cache_key(value)
        name = self._argument_names.get(key) if key is not None else None
        if name is None:
            name = f"a{self._argument_counter}"
            self._argument_counter += 1
            if key is not None:
                self._argument_names[key] = name
        self.parameters[name] = value
        return f"${name}"

    # =============================================================================
    # STATEMENT TEXT
    # =============================================================================

    def node_pattern(
        self,
        alias: str = "",
        label: Optional[Sequence[str]] = None,
        properties: Optional[Mapping[str, str]] = None,
    ) -> str:
        """
        Render a node pattern such as ``(n0:Person:Entity:Node {uuid: $a0})``.

        Args:
            alias: Variable name; empty for an anonymous node.
            label: Label names, most specific first.
            properties: Property name -> already rendered expression.
        """
        label_part = "".join(f":{name}" for name in label or ())
        props = ", ".join(f"{key}: {expr}" for key, expr in (properties or {}).items())
        props_part = f" {{{props}}}" if props else ""
        return f"({alias}{label_part}{props_part})"

    def write(self, clause: str) -> None:
        """Append a raw clause."""
        self.clauses.append(clause)

    def carry(self, *extra: str, distinct: bool = False) -> None:
        """
        Append a ``WITH`` stage re-asserting the carry context.

        Args:
            *extra: Further projection items, e.g. ``"n1.value AS t0"``.
            distinct: Collapse duplicate rows (``WITH DISTINCT``).
        """
        self.clauses.append(Projection(tuple(self.context) + extra, distinct))

    def render(self) -> str:
        """Build the final script text."""
        lines: List[str] = []
        carried: Tuple[str, ...] = ()

        if self._uuid_counter > 0:
            lines.append(f"UNWIND range(1, {self._uuid_counter}) AS uuid_slot")
            lines.append(f"WITH collect(randomUUID()) AS {UUIDS}")
            carried = (UUIDS,)

        for clause in self.clauses:
            if isinstance(clause, Projection):
                names = carried + clause.names
                if not names:
                    continue
                keyword = "WITH DISTINCT" if clause.distinct else "WITH"
                lines.append(f"{keyword} {', '.join(names)}")
            else:
                lines.append(clause)

        return "\n".join(lines)

    @property
    def statement(self) -> str:
        return self.render()

    # =============================================================================
    # EXECUTION
    # =============================================================================

    async def run(self, runner: QueryRunner) -> List[Any]:
        """
        Execute the script once.

        Args:
            runner: Persistence boundary (e.g. a connected GraphEngine).

        Returns:
            The raw records.
        """
        statement = self.render()
        logger.debug("Running:\n%s\nArgs: %s", statement, self.parameters)
        records = await runner.run(statement, dict(self.parameters))
        return list(records)

    def __repr__(self) -> str:
        return (
            f"Query(nodes={self._node_counter}, temps={self._temp_counter}, "
            f"arguments={self._argument_counter}, uuids={self._uuid_counter})"
        )
