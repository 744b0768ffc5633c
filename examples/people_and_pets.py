#!/usr/bin/env python3
r"""
Neo4jMapper People and Pets Example

Defines a small schema, prints the Cypher each operation generates and, when
NEO4J_URI is set, runs the same operations against a live database.
"""

import asyncio
import logging
import os
from typing import Any

from neo4jmapper import (
    Entity,
    GraphMapper,
    Node,
    Property,
    Relationship,
    Schema,
    build_delete_query,
    build_load_query,
    build_save_query,
    create_graph_engine_from_settings,
)


# =============================================================================
# DEFINE SCHEMA
# =============================================================================

class Species(Property):
    """Kinds of animals the application knows about."""
    allowed = ("cat", "dog", "parrot")


class Name(Property):
    pass


class Animal(Entity):
    name: Any = Relationship(Name, optional=True)
    species: Any = Relationship(Species)


class Dog(Animal):
    pass


class City(Property):
    pass


class Address(Node):
    """Structural node: loaded inline with its owner."""
    city: Any = Relationship(City)


class Person(Entity):
    name: Any = Relationship(Name)
    address: Any = Relationship(Address, optional=True)
    pets: Any = Relationship(Animal, label="OWNS", list=True, optional=True)
    friends: Any = Relationship("Person", label="KNOWS", list=True, optional=True)


schema = Schema([Person, Dog])


def show(title: str, query) -> None:
    print(f"\n--- {title} ---")
    print(query.render())
    print(f"parameters: {query.parameters}")


async def main() -> bool:
    alice = Person(
        name="Alice",
        address=Address(city="Lyon"),
        pets=[Dog(name="Rex", species="dog"), Animal(name="Tom", species="cat")],
    )

    show("save", build_save_query(schema, alice))
    show("load", build_load_query(schema, Person, {"name": "Alice"}))

    if not os.environ.get("NEO4J_URI"):
        print("\nNEO4J_URI is not set; skipping the live run.")
        return True

    async with create_graph_engine_from_settings() as engine:
        mapper = GraphMapper(schema, engine)

        uuid = await mapper.save(alice)
        print(f"\nSaved Alice as {uuid}")

        loaded = await mapper.load(Person, {"uuid": uuid})
        print(f"Loaded {loaded!r} living in {loaded.address.city}")

        for reference in loaded.pets:
            pet = await mapper.resolve(reference)
            print(f"  owns {type(pet).__name__} {pet.name} ({pet.species})")

        show("delete", build_delete_query(schema, loaded))
        removed = await mapper.delete(loaded)
        print(f"Deleted {removed} node(s)")

    return True


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    success = asyncio.run(main())
    print("\nDone." if success else "\nDemo encountered errors.")
