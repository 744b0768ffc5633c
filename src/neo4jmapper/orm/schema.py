"""
Neo4jMapper Schema registry

A Schema maps type names to Node types and their frozen TypeDescriptors. It
is built once by the application and passed explicitly to every save, load
and delete call; there is no process-wide registry. The schema also owns the
record wire shape: ``serialize`` produces it from instances and
``deep_deserialize`` reconstructs typed objects from it.

Example:
    ```python
    schema = Schema([Person, Dog])     # relationship targets register too
    schema.resolve("Animal")           # <class 'Animal'>
    schema.describe(Person).label      # ('Person', 'Entity', 'Node')
    ```
"""

from __future__ import annotations

import logging
from typing import (
    Any,
    Dict,
    FrozenSet,
    Iterable,
    Iterator,
    List,
    Mapping,
    Optional,
    Set,
    Tuple,
    Type,
    Union,
)

from pydantic import BaseModel, ConfigDict

from neo4jmapper.exceptions import SchemaError
from neo4jmapper.orm.nodes import Deferred, Node, NodeKind, kind_of
from neo4jmapper.orm.relationships import Relationship

logger = logging.getLogger(__name__)

# Key of the discriminant in every reconstructed record.
CLASS_KEY = "__class"

# Discriminant of lightweight references inside list relations.
DEFERRED_TAG = "Deferred"


def as_list(values: Any) -> List[Any]:
    """Relation field value as a list: None -> [], scalar -> [scalar]."""
    if values is None:
        return []
    if isinstance(values, (list, tuple)):
        return list(values)
    return [values]


class TypeDescriptor(BaseModel):
    """Everything the query builders need to know about one Node type."""

    name: str
    node_type: Type[Node]
    label: Tuple[str, ...]
    ancestors: FrozenSet[str]
    value_name: str
    kind: NodeKind
    relationships: Dict[str, Relationship]

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    @property
    def is_terminal(self) -> bool:
        return self.kind in (NodeKind.ENTITY, NodeKind.PROPERTY)

    @property
    def label_pattern(self) -> str:
        return "".join(f":{name}" for name in self.label)

    def is_a(self, other: Union[str, Type[Node]]) -> bool:
        name = other if isinstance(other, str) else other.__name__
        return name in self.ancestors


class Schema:
    """
    Registry of the Node types an application maps.

    Registering a type registers its relationship targets as well. Subtypes
    that may be returned polymorphically (e.g. ``Dog`` for an ``Animal``
    relation) have to be registered explicitly.
    """

    def __init__(self, classes: Iterable[Type[Node]] = ()):
        self._types: Dict[str, Type[Node]] = {}
        self._descriptors: Dict[str, TypeDescriptor] = {}
        self.register(*classes)

    # =============================================================================
    # REGISTRY
    # =============================================================================

    def register(self, *classes: Type[Node]) -> Schema:
        """
        Add Node types to the registry.

        Returns:
            Self for method chaining

        Raises:
            SchemaError: If a class is not a Node subtype or its name is taken
                by a different type.
        """
        for cls in classes:
            if not (isinstance(cls, type) and issubclass(cls, Node)):
                raise SchemaError(f"Only Node subclasses can be registered, got {cls!r}")

            name = cls.__name__
            existing = self._types.get(name)
            if existing is cls:
                continue
            if existing is not None:
                raise SchemaError(f"A different type is already registered as '{name}'")

            self._types[name] = cls
            self._descriptors.clear()

            for relationship in cls.relationships().values():
                if not isinstance(relationship.target, str):
                    self.register(relationship.target)

        return self

    def resolve(self, name: Any) -> Optional[Type[Node]]:
        """Type registered under ``name``, or None."""
        if not isinstance(name, str):
            return None
        return self._types.get(name)

    def describe(self, cls: Union[str, Type[Node]]) -> TypeDescriptor:
        """
        Descriptor of a type; unregistered Node classes are registered first.

        Raises:
            SchemaError: If a name is unknown or a relationship target name
                cannot be resolved.
        """
        if isinstance(cls, str):
            resolved = self.resolve(cls)
            if resolved is None:
                raise SchemaError(f"Unknown node type: {cls}")
            cls = resolved
        elif self._types.get(cls.__name__) is not cls:
            self.register(cls)

        descriptor = self._descriptors.get(cls.__name__)
        if descriptor is None:
            descriptor = self._build_descriptor(cls)
            self._descriptors[cls.__name__] = descriptor
        return descriptor

    def _build_descriptor(self, cls: Type[Node]) -> TypeDescriptor:
        relationships: Dict[str, Relationship] = {}
        for field_name, relationship in cls.relationships().items():
            target = relationship.target
            if isinstance(target, str):
                target = self.resolve(target)
                if target is None:
                    raise SchemaError(
                        f"{cls.__name__}.{field_name} points to unregistered type "
                        f"'{relationship.target}'"
                    )
                relationship = relationship.model_copy(update={"target": target})
            relationships[field_name] = relationship

        return TypeDescriptor(
            name=cls.__name__,
            node_type=cls,
            label=cls.get_label(),
            ancestors=frozenset(cls.get_label()),
            value_name=cls.get_value_name(),
            kind=cls.__kind__,
            relationships=relationships,
        )

    def specificity(self) -> List[str]:
        """Registered type names, most specific (longest label) first."""
        return sorted(self._types, key=lambda name: (-len(self._types[name].get_label()), name))

    def __contains__(self, item: Any) -> bool:
        name = item if isinstance(item, str) else getattr(item, "__name__", None)
        return name in self._types

    def __iter__(self) -> Iterator[Type[Node]]:
        return iter(self._types.values())

    def __len__(self) -> int:
        return len(self._types)

    def __repr__(self) -> str:
        return f"Schema({', '.join(sorted(self._types))})"

    # =============================================================================
    # SERIALIZATION
    # =============================================================================

    def serialize(self, node: Node) -> Dict[str, Any]:
        """
        Record of ``node`` in the shape a load returns.

        Singular relations to Entities and Properties become their identifying
        value, list relations become Deferred records and relations to plain
        Node types are nested records.

        Raises:
            SchemaError: A plain Node instance contains itself through its
                relations.
        """
        return self._serialize(node, set())

    def _serialize(self, node: Node, path: Set[int]) -> Dict[str, Any]:
        if id(node) in path:
            raise SchemaError(
                f"{type(node).__name__} instance contains itself through plain Node relations"
            )
        path.add(id(node))

        descriptor = self.describe(type(node))
        data: Dict[str, Any] = {
            CLASS_KEY: descriptor.name,
            descriptor.value_name: node.get_value(),
        }

        for field_name, relationship in descriptor.relationships.items():
            target = self.describe(relationship.target)
            value = getattr(node, field_name, None)

            if target.is_terminal:
                if relationship.list:
                    data[field_name] = [self._reference(target, item) for item in as_list(value)]
                else:
                    data[field_name] = self._identity(target, value)
            elif relationship.list:
                data[field_name] = [self._nested(item, path) for item in as_list(value)]
            else:
                data[field_name] = self._nested(value, path)

        path.discard(id(node))
        return data

    def _identity(self, target: TypeDescriptor, value: Any) -> Any:
        kind = kind_of(value)
        if kind is NodeKind.DEFERRED:
            return value.identity
        if kind is not NodeKind.SCALAR:
            value = value.get_value()
        if value is not None and target.kind is NodeKind.PROPERTY:
            value = target.node_type.encode(value)
        return value

    def _reference(self, target: TypeDescriptor, value: Any) -> Dict[str, Any]:
        kind = kind_of(value)
        if kind is NodeKind.DEFERRED:
            class_name = value.target.__name__
        elif kind is NodeKind.SCALAR:
            class_name = target.name
        else:
            class_name = type(value).__name__
        return {
            target.value_name: self._identity(target, value),
            "class": class_name,
            CLASS_KEY: DEFERRED_TAG,
        }

    def _nested(self, value: Any, path: Set[int]) -> Any:
        if isinstance(value, Node):
            return self._serialize(value, path)
        return value

    def deep_deserialize(self, data: Any) -> Any:
        """
        Reconstruct typed objects from a generic result structure.

        Sequences are mapped element-wise. Maps tagged ``Deferred`` become
        Deferred references, maps tagged with a registered type name become
        instances of that type, and any other map is returned as a plain dict.
        """
        if isinstance(data, (Node, Deferred)):
            return data

        if isinstance(data, (list, tuple)):
            return [self.deep_deserialize(item) for item in data]

        if isinstance(data, Mapping):
            fields = {key: self.deep_deserialize(value) for key, value in data.items()}
            discriminant = data.get(CLASS_KEY)

            if discriminant == DEFERRED_TAG:
                target = self.resolve(fields.get("class"))
                if target is None:
                    logger.debug("Leaving reference to unknown type %r unresolved", fields.get("class"))
                    return fields
                value_name = target.get_value_name()
                return Deferred(target, {value_name: fields.get(value_name)})

            if discriminant is not None:
                target = self.resolve(discriminant)
                if target is not None:
                    return self._reconstruct(target, fields)
                logger.debug("No registered type for discriminant %r", discriminant)

            return fields

        return data

    def _reconstruct(self, cls: Type[Node], fields: Dict[str, Any]) -> Node:
        descriptor = self.describe(cls)
        for field_name, relationship in descriptor.relationships.items():
            value = fields.get(field_name)
            if relationship.list or value is None or kind_of(value) is not NodeKind.SCALAR:
                continue
            target = self.describe(relationship.target)
            if target.kind is NodeKind.PROPERTY:
                fields[field_name] = target.node_type.decode(value)
        return cls.deserialize(fields)
