from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Protocol


class IdGenerator(Protocol):
    def next_id(self, prefix: str) -> str: ...


class RandomIdGenerator:
    """Globally unique ids; the default outside of tests."""

    def next_id(self, prefix: str) -> str:
        return f"{prefix}_{uuid.uuid4().hex}"


@dataclass(slots=True)
class CounterIdGenerator:
    """
    Deterministic, monotonic ids scoped per prefix.
    - Same sequence of calls gives the same ids.
    """

    scope: str = "t"
    _counters: dict[str, int] = field(default_factory=dict, init=False, repr=False)

    def next_id(self, prefix: str) -> str:
        n = self._counters.get(prefix, 0) + 1
        self._counters[prefix] = n
        return f"{prefix}_{self.scope}_{n:08d}"
