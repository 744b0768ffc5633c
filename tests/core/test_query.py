# tests/core/test_query.py
"""
Tests for the Query builder: alias allocation, parameter binding, carry
stages and the batched identifier directive.
"""

import logging

import pytest

from neo4jmapper.core.query import Projection, Query, UUIDS


# =============================================================================
# ALIASES
# =============================================================================

class TestAliases:

    def test_counters_are_independent(self):
        query = Query()
        assert query.add_node() == "n0"
        assert query.add_node() == "n1"
        assert query.add_relationship() == "r0"
        assert query.add_temp() == "t0"
        assert query.add_temp() == "t1"
        assert query.add_node() == "n2"
        assert query.add_relationship() == "r1"

    def test_peek_node_does_not_consume(self):
        query = Query()
        assert query.peek_node() == "n0"
        assert query.peek_node() == "n0"
        assert query.add_node() == "n0"
        assert query.peek_node() == "n1"

    def test_add_node_remembers_instance(self):
        query = Query()
        marker = object()
        alias = query.add_node(marker)
        assert query.nodes[alias] is marker

    def test_uuid_slots(self):
        query = Query()
        assert query.uuid_count == 0
        owner = object()
        assert query.add_uuid() == f"{UUIDS}[0]"
        assert query.add_uuid(owner) == f"{UUIDS}[1]"
        assert query.uuid_count == 2
        assert query.uuid_owners == [None, owner]


# =============================================================================
# ARGUMENTS
# =============================================================================

class TestArguments:

    def test_equal_values_share_a_name(self):
        query = Query()
        assert query.add_argument("alice") == "$a0"
        assert query.add_argument("bob") == "$a1"
        assert query.add_argument("alice") == "$a0"
        assert query.parameters == {"a0": "alice", "a1": "bob"}

    def test_values_of_different_types_never_share_a_name(self):
        query = Query()
        names = {query.add_argument(1), query.add_argument("1"), query.add_argument(True)}
        assert len(names) == 3
        assert query.parameters["a0"] == 1
        assert query.parameters["a1"] == "1"
        assert query.parameters["a2"] is True

    def test_lists_and_maps_are_deduplicated_by_content(self):
        query = Query()
        first = query.add_argument(["Dog", "Animal"])
        second = query.add_argument(["Dog", "Animal"])
        other = query.add_argument(["Animal", "Dog"])
        mapping = query.add_argument({"x": 1})
        assert first == second
        assert other != first
        assert query.add_argument({"x": 1}) == mapping

    def test_unhashable_values_get_fresh_names(self):
        query = Query()
        unhashable = [bytearray(b"a")]
        assert query.add_argument(unhashable) != query.add_argument(unhashable)

    def test_initial_statement_and_parameters(self):
        query = Query("MATCH (n) RETURN n", {"x": 1})
        assert query.render() == "MATCH (n) RETURN n"
        assert query.parameters == {"x": 1}


# =============================================================================
# RENDERING
# =============================================================================

class TestRendering:

    def test_node_pattern(self):
        query = Query()
        label = ("Person", "Entity", "Node")
        assert query.node_pattern("n0", label, {"uuid": "$a0"}) == \
            "(n0:Person:Entity:Node {uuid: $a0})"
        assert query.node_pattern("", label) == "(:Person:Entity:Node)"
        assert query.node_pattern("n1") == "(n1)"

    def test_carry_reasserts_context(self):
        query = Query()
        n0 = query.add_node()
        query.write(f"MATCH ({n0})")
        query.context.append(n0)
        query.carry(f"{n0}.uuid AS t0")
        query.carry(distinct=True)

        assert query.clauses[1] == Projection(("n0", "n0.uuid AS t0"), False)
        assert query.render() == "MATCH (n0)\nWITH n0, n0.uuid AS t0\nWITH DISTINCT n0"

    def test_empty_projection_is_skipped(self):
        query = Query()
        query.write("MATCH (n)")
        query.carry()
        query.write("RETURN 1")
        assert query.render() == "MATCH (n)\nRETURN 1"

    def test_identifier_directive_is_prepended_and_carried(self):
        query = Query()
        n0 = query.add_node()
        query.write(f"MERGE (n0 {{uuid: {query.add_uuid()}}})")
        query.context.append(n0)
        query.carry()
        query.write(f"MERGE (n1 {{uuid: {query.add_uuid()}}})")

        assert query.render() == "\n".join([
            "UNWIND range(1, 2) AS uuid_slot",
            "WITH collect(randomUUID()) AS uuids",
            "MERGE (n0 {uuid: uuids[0]})",
            "WITH uuids, n0",
            "MERGE (n1 {uuid: uuids[1]})",
        ])

    def test_statement_property_matches_render(self):
        query = Query()
        query.write("RETURN 1")
        assert query.statement == query.render()


# =============================================================================
# EXECUTION
# =============================================================================

@pytest.mark.asyncio
class TestExecution:

    async def test_run_sends_statement_and_parameters_once(self, make_runner, caplog):
        runner = make_runner([{"x": 1}])
        query = Query()
        query.write(f"RETURN {query.add_argument(1)} AS x")

        with caplog.at_level(logging.DEBUG, logger="neo4jmapper.core.query"):
            records = await query.run(runner)

        assert records == [{"x": 1}]
        assert len(runner.calls) == 1
        assert runner.last_statement == "RETURN $a0 AS x"
        assert runner.last_parameters == {"a0": 1}
        assert "Running:" in caplog.text
        assert "RETURN $a0 AS x" in caplog.text

    async def test_run_propagates_runner_errors(self):
        class FailingRunner:
            async def run(self, statement, parameters):
                raise RuntimeError("boom")

        query = Query("RETURN 1")
        with pytest.raises(RuntimeError, match="boom"):
            await query.run(FailingRunner())
