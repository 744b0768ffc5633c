# tests/orm/test_save.py
"""
Tests for the save path: upsert keys, replace semantics for relations,
Deferred targets, cycles and identifier write-back.
"""

from typing import Any

import pytest

from neo4jmapper.exceptions import NotFoundError, SchemaError, ValidationError
from neo4jmapper.orm.nodes import Deferred, Entity, Node, Property
from neo4jmapper.orm.relationships import Relationship
from neo4jmapper.orm.save import build_save_query, save
from neo4jmapper.orm.schema import CLASS_KEY, Schema


class Species(Property):
    allowed = ("cat", "dog")


class Animal(Entity):
    species: Any = Relationship(Species, optional=True)


class Person(Entity):
    pets: Any = Relationship(Animal, list=True)


class Friend(Entity):
    friends: Any = Relationship("Friend", label="KNOWS", list=True, optional=True)


class Note(Node):
    pass


class Owner(Entity):
    pass


class Car(Entity):
    owner: Any = Relationship(Owner)


class Garage(Entity):
    notes: Any = Relationship(Note, list=True, optional=True)


@pytest.fixture
def schema():
    return Schema([Person, Friend, Note, Car, Garage])


# =============================================================================
# SCRIPT SHAPE
# =============================================================================

class TestSaveScript:

    def test_new_entities_draw_generated_identifiers(self, schema):
        first, second = Animal(), Animal()
        person = Person(pets=[first, second])
        query = build_save_query(schema, person)

        assert query.render() == "\n".join([
            "UNWIND range(1, 3) AS uuid_slot",
            "WITH collect(randomUUID()) AS uuids",
            "MERGE (n0:Person:Entity:Node {uuid: uuids[0]})",
            "WITH uuids, n0",
            "OPTIONAL MATCH (n0)-[t0:HAS]->(:Animal:Entity:Node)",
            "DELETE t0",
            "WITH DISTINCT uuids, n0",
            "MERGE (n1:Animal:Entity:Node {uuid: uuids[1]})",
            "WITH uuids, n0, n1",
            "OPTIONAL MATCH (n1)-[t1:HAS]->(:Species:Property:Node)",
            "DELETE t1",
            "WITH DISTINCT uuids, n0, n1",
            "MERGE (n0)-[r0:HAS]->(n1)",
            "MERGE (n2:Animal:Entity:Node {uuid: uuids[2]})",
            "WITH uuids, n0, n1, n2",
            "OPTIONAL MATCH (n2)-[t2:HAS]->(:Species:Property:Node)",
            "DELETE t2",
            "WITH DISTINCT uuids, n0, n1, n2",
            "MERGE (n0)-[r1:HAS]->(n2)",
            "RETURN n0.uuid AS uuid, uuids AS generated",
        ])
        assert query.parameters == {}
        assert [id(owner) for owner in query.uuid_owners] == [id(person), id(first), id(second)]

    def test_existing_entity_merges_on_its_uuid(self, schema):
        query = build_save_query(schema, Person(uuid="p1", pets=[]))

        assert query.render() == "\n".join([
            "MERGE (n0:Person:Entity:Node {uuid: $a0})",
            "WITH n0",
            "OPTIONAL MATCH (n0)-[t0:HAS]->(:Animal:Entity:Node)",
            "DELETE t0",
            "WITH DISTINCT n0",
            "RETURN n0.uuid AS uuid",
        ])
        assert query.parameters == {"a0": "p1"}

    def test_bare_value_becomes_property_node(self, schema):
        query = build_save_query(schema, Animal(uuid="a1", species="dog"))

        assert query.render() == "\n".join([
            "MERGE (n0:Animal:Entity:Node {uuid: $a0})",
            "WITH n0",
            "OPTIONAL MATCH (n0)-[t0:HAS]->(:Species:Property:Node)",
            "DELETE t0",
            "WITH DISTINCT n0",
            "MERGE (n1:Species:Property:Node {value: $a1})",
            "MERGE (n0)-[r0:HAS]->(n1)",
            "RETURN n0.uuid AS uuid",
        ])
        assert query.parameters == {"a0": "a1", "a1": "dog"}

    def test_property_instance_is_merged_on_its_value(self, schema):
        query = build_save_query(schema, Animal(uuid="a1", species=Species(value="cat")))
        assert "MERGE (n1:Species:Property:Node {value: $a1})" in query.render()
        assert query.parameters["a1"] == "cat"

    def test_disallowed_property_value_fails_before_running(self, schema):
        with pytest.raises(ValidationError, match='"bird" is not a valid Species value'):
            build_save_query(schema, Animal(uuid="a1", species="bird"))

    def test_deferred_target_is_matched_not_merged(self, schema):
        query = build_save_query(
            schema, Person(uuid="p1", pets=[Deferred(Animal, {"uuid": "a9"})])
        )

        assert query.render() == "\n".join([
            "MERGE (n0:Person:Entity:Node {uuid: $a0})",
            "WITH n0",
            "OPTIONAL MATCH (n0)-[t0:HAS]->(:Animal:Entity:Node)",
            "DELETE t0",
            "WITH DISTINCT n0",
            "WITH n0",
            "MATCH (n1:Animal:Entity:Node {uuid: $a1})",
            "MERGE (n0)-[r0:HAS]->(n1)",
            "RETURN n0.uuid AS uuid",
        ])
        assert query.parameters == {"a0": "p1", "a1": "a9"}

    def test_cycles_emit_each_instance_once(self, schema):
        alice = Friend(uuid="f1")
        bob = Friend(uuid="f2", friends=[alice])
        alice.friends = [bob]

        query = build_save_query(schema, alice)

        assert query.render() == "\n".join([
            "MERGE (n0:Friend:Entity:Node {uuid: $a0})",
            "WITH n0",
            "OPTIONAL MATCH (n0)-[t0:KNOWS]->(:Friend:Entity:Node)",
            "DELETE t0",
            "WITH DISTINCT n0",
            "MERGE (n1:Friend:Entity:Node {uuid: $a1})",
            "WITH n0, n1",
            "OPTIONAL MATCH (n1)-[t1:KNOWS]->(:Friend:Entity:Node)",
            "DELETE t1",
            "WITH DISTINCT n0, n1",
            "MERGE (n1)-[r0:KNOWS]->(n0)",
            "MERGE (n0)-[r1:KNOWS]->(n1)",
            "RETURN n0.uuid AS uuid",
        ])

    def test_shared_child_is_emitted_once(self, schema):
        pet = Animal(uuid="a1")
        query = build_save_query(schema, Person(uuid="p1", pets=[pet, pet]))
        statement = query.render()

        assert statement.count("MERGE (n1:Animal:Entity:Node {uuid: $a1})") == 1
        assert "MERGE (n0)-[r0:HAS]->(n1)" in statement
        assert "MERGE (n0)-[r1:HAS]->(n1)" in statement

    def test_plain_node_without_value_is_created(self, schema):
        query = build_save_query(schema, Note())
        assert query.render() == "CREATE (n0:Note:Node)\nRETURN n0.value AS value"

    def test_bare_identity_for_entity_relation_is_matched(self, schema):
        query = build_save_query(schema, Car(uuid="c1", owner="o1"))

        assert query.render() == "\n".join([
            "MERGE (n0:Car:Entity:Node {uuid: $a0})",
            "WITH n0",
            "OPTIONAL MATCH (n0)-[t0:HAS]->(:Owner:Entity:Node)",
            "DELETE t0",
            "WITH DISTINCT n0",
            "WITH n0",
            "MATCH (n1:Owner:Entity:Node {uuid: $a1})",
            "MERGE (n0)-[r0:HAS]->(n1)",
            "RETURN n0.uuid AS uuid",
        ])
        assert query.parameters == {"a0": "c1", "a1": "o1"}

    def test_loaded_singular_entity_relation_saves_again(self, schema):
        car = schema.deep_deserialize({CLASS_KEY: "Car", "uuid": "c1", "owner": "o1"})
        assert car.owner == "o1"

        query = build_save_query(schema, car)
        assert "MATCH (n1:Owner:Entity:Node {uuid: $a1})" in query.render()
        assert query.parameters == {"a0": "c1", "a1": "o1"}

    def test_bare_value_for_plain_node_relation_rejected(self, schema):
        with pytest.raises(SchemaError, match="plain Node"):
            build_save_query(schema, Garage(uuid="g1", notes=["x"]))

    def test_only_nodes_can_be_saved(self, schema):
        with pytest.raises(SchemaError):
            build_save_query(schema, "rex")

        with pytest.raises(SchemaError):
            build_save_query(schema, Deferred(Person, {"uuid": "p1"}))


# =============================================================================
# EXECUTION
# =============================================================================

@pytest.mark.asyncio
class TestSave:

    async def test_generated_uuid_is_written_back(self, schema, make_runner):
        runner = make_runner([{"uuid": "generated-1", "generated": ["generated-1"]}])
        person = Person(pets=[])

        uuid = await save(schema, person, runner)

        assert uuid == "generated-1"
        assert person.uuid == "generated-1"
        assert len(runner.calls) == 1
        assert runner.last_statement.startswith("UNWIND range(1, 1) AS uuid_slot")

    async def test_generated_uuids_reach_every_new_entity(self, schema, make_runner):
        runner = make_runner([{"uuid": "root-1", "generated": ["root-1", "child-1"]}])
        known, fresh = Animal(uuid="a1"), Animal()
        person = Person(pets=[known, fresh])

        await save(schema, person, runner)

        assert person.uuid == "root-1"
        assert fresh.uuid == "child-1"
        assert known.uuid == "a1"
        assert runner.last_statement.endswith("RETURN n0.uuid AS uuid, uuids AS generated")

    async def test_existing_uuid_is_kept(self, schema, make_runner):
        runner = make_runner([{"uuid": "p1"}])
        person = Person(uuid="p1")

        assert await save(schema, person, runner) == "p1"
        assert person.uuid == "p1"
        assert runner.last_parameters == {"a0": "p1"}

    async def test_no_row_means_a_reference_was_not_found(self, schema, runner):
        with pytest.raises(NotFoundError):
            await save(schema, Person(uuid="p1", pets=[Deferred(Animal, {"uuid": "gone"})]), runner)

    async def test_invalid_value_sends_nothing(self, schema, runner):
        with pytest.raises(ValidationError):
            await save(schema, Animal(uuid="a1", species="bird"), runner)

        assert runner.calls == []
