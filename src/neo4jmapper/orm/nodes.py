"""
Neo4jMapper Node model - Pydantic V2 schema descriptors

Every graph node type derives from ``Node``. A type's label is the tuple of
class names from the concrete type down to ``Node``; it is computed once, when
the class is created, together with the ancestor set used for is-a tests.

Example:
    ```python
    class Species(Property):
        allowed = ("cat", "dog")

    class Animal(Entity):
        species: Any = Relationship(Species)

    class Person(Entity):
        pets: Any = Relationship(Animal, list=True)

    Person.get_label()          # ('Person', 'Entity', 'Node')
    Person.is_a(Entity)         # True
    ```
"""

from __future__ import annotations

from enum import Enum
from typing import (
    Any,
    ClassVar,
    Collection,
    Dict,
    FrozenSet,
    Mapping,
    Optional,
    Tuple,
    Type,
    TypeVar,
    Union,
    TYPE_CHECKING,
)

from pydantic import BaseModel, ConfigDict, Field

from neo4jmapper.exceptions import SchemaError, ValidationError
from neo4jmapper.orm.relationships import Relationship

if TYPE_CHECKING:
    from neo4jmapper.orm.schema import Schema


NodeType = TypeVar("NodeType", bound="Node")


class NodeKind(str, Enum):
    """Tag carried by every value that can sit in a relationship field."""

    NODE = "node"
    ENTITY = "entity"
    PROPERTY = "property"
    DEFERRED = "deferred"
    SCALAR = "scalar"


class NodeMeta(type(BaseModel)):
    """
    Metaclass for Node types.

    Pulls Relationship descriptors out of the class namespace before Pydantic
    sees them (the field keeps a ``None`` default) and precomputes the label
    and ancestor set of the new type.
    """

    def __new__(
        mcs,
        name: str,
        bases: tuple[type, ...],
        namespace: dict[str, Any],
        **kwargs: Any,
    ) -> NodeMeta:
        declared: Dict[str, Relationship] = {}
        for key, value in list(namespace.items()):
            if isinstance(value, Relationship):
                declared[key] = value
                namespace[key] = None

        cls = super().__new__(mcs, name, bases, namespace, **kwargs)

        relationships: Dict[str, Relationship] = {}
        for base in reversed(bases):
            relationships.update(getattr(base, "__node_relationships__", {}))
        relationships.update(declared)
        cls.__node_relationships__ = relationships

        label = tuple(klass.__name__ for klass in cls.__mro__ if isinstance(klass, NodeMeta))
        cls.__node_label__ = label
        cls.__node_ancestors__ = frozenset(label)

        return cls


class Node(BaseModel, metaclass=NodeMeta):
    """
    Abstract graph node.

    Subclasses name their identifying attribute in ``__value_name__`` and
    declare relationships as annotated fields defaulting to a Relationship.
    """

    __value_name__: ClassVar[str] = "value"
    __kind__: ClassVar[NodeKind] = NodeKind.NODE

    __node_label__: ClassVar[Tuple[str, ...]]
    __node_ancestors__: ClassVar[FrozenSet[str]]
    __node_relationships__: ClassVar[Dict[str, Relationship]]

    model_config = ConfigDict(
        validate_assignment=True,
        arbitrary_types_allowed=True,
        extra="ignore",
    )

    @classmethod
    def get_value_name(cls) -> str:
        return cls.__value_name__

    def get_value(self) -> Any:
        """Current value of the identifying attribute (None when unset)."""
        return getattr(self, self.get_value_name(), None)

    @classmethod
    def get_label(cls) -> Tuple[str, ...]:
        return cls.__node_label__

    @classmethod
    def label_pattern(cls) -> str:
        """Label as written in a Cypher pattern, e.g. ``:Person:Entity:Node``."""
        return "".join(f":{name}" for name in cls.__node_label__)

    @classmethod
    def is_a(cls, other: Union[str, Type[Node]]) -> bool:
        """True if ``other`` is this type or one of its Node ancestors."""
        name = other if isinstance(other, str) else other.__name__
        return name in cls.__node_ancestors__

    @classmethod
    def relationships(cls) -> Dict[str, Relationship]:
        """Field name -> Relationship for every relation field, inherited ones first."""
        return dict(cls.__node_relationships__)

    @classmethod
    def is_terminal(cls) -> bool:
        """Entities and Properties are never expanded into sub-projections on load."""
        return cls.__kind__ in (NodeKind.ENTITY, NodeKind.PROPERTY)

    @classmethod
    def deserialize(cls: Type[NodeType], data: Mapping[str, Any]) -> NodeType:
        """Build an instance from a reconstructed record, ignoring unknown keys."""
        fields = {key: value for key, value in data.items() if key in cls.model_fields}
        return cls(**fields)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.get_value_name()}={self.get_value()!r})"


class Entity(Node):
    """A node with its own identity; the unit of save, load and delete."""

    __value_name__ = "uuid"
    __kind__ = NodeKind.ENTITY

    uuid: Optional[str] = Field(
        default=None,
        description="Identity of the entity; None until it is first saved",
    )


class Property(Node):
    """
    A node wrapping one scalar.

    Set ``allowed`` on a subclass to restrict the values it accepts.
    """

    __kind__ = NodeKind.PROPERTY

    allowed: ClassVar[Optional[Collection[Any]]] = None

    value: Any = Field(default=None, description="The wrapped scalar")

    @classmethod
    def encode(cls, value: Any) -> Any:
        """
        Turn a Python value into its stored form.

        Raises:
            ValidationError: If ``allowed`` is set and does not contain the value.
        """
        if cls.allowed is not None and value not in cls.allowed:
            raise ValidationError(cls.__name__, value)
        return value

    @classmethod
    def decode(cls, value: Any) -> Any:
        """Turn a stored value back into its Python form."""
        return value

    @classmethod
    def coerce(cls: Type[NodeType], value: Any) -> NodeType:
        """Wrap a bare scalar into this Property type."""
        return cls(**{cls.get_value_name(): value})


class Deferred(BaseModel):
    """
    Unresolved reference to an existing node.

    Saving a Deferred only connects to the referenced node; loading returns
    list relations as Deferreds instead of expanding them.
    """

    __kind__: ClassVar[NodeKind] = NodeKind.DEFERRED

    target: Type[Node] = Field(..., description="Type of the referenced node")
    filter: Dict[str, Any] = Field(
        default_factory=dict,
        description="Identifying attribute of the referenced node",
    )
    limit: Optional[int] = Field(
        default=1,
        ge=1,
        description="Maximum number of nodes to resolve; None for no limit",
    )

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def __init__(
        self,
        target: Optional[Type[Node]] = None,
        filter: Optional[Dict[str, Any]] = None,
        **data: Any,
    ) -> None:
        if target is not None:
            data["target"] = target
        if filter is not None:
            data["filter"] = filter
        super().__init__(**data)

    @classmethod
    def of(cls, node: Node) -> Deferred:
        """Reference an instance that is already persisted."""
        return cls(type(node), {node.get_value_name(): node.get_value()})

    @property
    def identity(self) -> Any:
        """Identifying value the reference points at."""
        return self.filter.get(self.target.get_value_name())

    def serialize(self) -> Dict[str, Any]:
        return {
            "class": self.target.__name__,
            "filter": dict(self.filter),
            "limit": self.limit,
        }

    @classmethod
    def deserialize(cls, data: Mapping[str, Any], schema: Schema) -> Deferred:
        """Inverse of ``serialize``; the class name is resolved through ``schema``."""
        target = schema.resolve(data["class"])
        if target is None:
            raise SchemaError(f"Unknown node type: {data['class']}")
        return cls(target, dict(data.get("filter") or {}), limit=data.get("limit", 1))

    def __repr__(self) -> str:
        return f"Deferred({self.target.__name__}, {self.filter!r}, limit={self.limit})"


def kind_of(value: Any) -> NodeKind:
    """Tag of a relation value; bare Python values are ``NodeKind.SCALAR``."""
    if isinstance(value, (Node, Deferred)):
        return type(value).__kind__
    return NodeKind.SCALAR
