# tests/conftest.py
"""
Shared fixtures: a recording stand-in for the persistence boundary.
"""

from typing import Any, Dict, List, Optional, Sequence

import pytest


class RecordingRunner:
    """
    Records every statement it is asked to run and replays canned results.

    Each call pops the next entry of ``responses``; once they are used up
    every call returns no records.
    """

    def __init__(self, responses: Optional[List[Sequence[Any]]] = None):
        self.responses = list(responses or [])
        self.calls: List[Dict[str, Any]] = []

    async def run(self, statement: str, parameters: Dict[str, Any]) -> Sequence[Any]:
        self.calls.append({"statement": statement, "parameters": parameters})
        if self.responses:
            return self.responses.pop(0)
        return []

    @property
    def last_statement(self) -> str:
        return self.calls[-1]["statement"]

    @property
    def last_parameters(self) -> Dict[str, Any]:
        return self.calls[-1]["parameters"]


@pytest.fixture
def runner():
    """A runner that returns no records."""
    return RecordingRunner()


@pytest.fixture
def make_runner():
    """Factory for runners with canned responses."""
    def _make(*responses: Sequence[Any]) -> RecordingRunner:
        return RecordingRunner(list(responses))
    return _make
