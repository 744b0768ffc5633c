"""
Neo4jMapper Relationship descriptor

A Relationship is assigned as the default of an annotated field on a Node
subclass. It tells the save path which edges to write for the field and the
load path which edges to traverse.
"""

from __future__ import annotations

import re
from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

_LABEL_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class Relationship(BaseModel):
    """
    Directed edge from the owning node to a node of type ``target``.

    Example:
        ```python
        class Person(Entity):
            name: Any = Relationship(Name)
            pets: Any = Relationship(Animal, label="OWNS", list=True)
            friends: Any = Relationship("Person", label="KNOWS", list=True)
        ```
    """

    target: Union[str, Any] = Field(
        ...,
        description="Node subclass at the end of the edge, or its registered name",
    )
    label: str = Field(default="HAS", description="Relationship type")
    optional: bool = Field(default=False, description="Absence must not drop the owner")
    list: bool = Field(default=False, description="The field holds a sequence of values")

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    def __init__(self, target: Any = None, **data: Any) -> None:
        if target is not None:
            data["target"] = target
        super().__init__(**data)

    @field_validator("target")
    @classmethod
    def validate_target(cls, v):
        """Targets are Node subclasses or names resolved by the schema later."""
        if isinstance(v, str):
            if not v.strip():
                raise ValueError("Relationship target name cannot be empty")
            return v.strip()

        from neo4jmapper.orm.nodes import Node

        if not (isinstance(v, type) and issubclass(v, Node)):
            raise ValueError(f"Relationship target must be a Node subclass, got {v!r}")
        return v

    @field_validator("label")
    @classmethod
    def validate_label(cls, v):
        """Accept ``HAS`` and ``:HAS``; reject anything that is not an identifier."""
        v = v.strip().lstrip(":")
        if not _LABEL_PATTERN.match(v):
            raise ValueError(f"Invalid relationship label: {v!r}")
        return v

    @property
    def target_name(self) -> str:
        return self.target if isinstance(self.target, str) else self.target.__name__

    def __repr__(self) -> str:
        flags = [flag for flag in ("optional", "list") if getattr(self, flag)]
        suffix = f", {', '.join(flags)}" if flags else ""
        return f"Relationship({self.target_name}, label='{self.label}'{suffix})"
