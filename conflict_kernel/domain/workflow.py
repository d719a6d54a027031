"""
Declarative case lifecycles.

Appeals and adjustment requests each publish a ``Workflow``: the set of
states, the allowed moves between them and which states are final.  Services
ask ``require(from, to)`` before changing a status, so an illegal move is a
table miss that raises ``InvalidTransitionError``.

A definition is checked when it is built: every state it mentions must be
declared and nothing may leave a terminal state.
"""

from __future__ import annotations

from dataclasses import dataclass

from conflict_kernel.exceptions import InvalidTransitionError


@dataclass(frozen=True)
class Guard:
    """Named precondition, documented on the transition; the service evaluates it."""

    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None
    # Resolution may refund or pay out.
    moves_money: bool = False


@dataclass(frozen=True)
class Workflow:
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        def fail(problem: str) -> None:
            raise ValueError(f"{self.name}: {problem}")

        if self.initial_state not in self.states:
            fail(f"initial state {self.initial_state!r} is not declared")
        for t in self.transitions:
            if not {t.from_state, t.to_state} <= set(self.states):
                fail(f"{t.from_state}->{t.to_state} uses an unknown state")
            if t.from_state in self.terminal_states:
                fail(f"terminal state {t.from_state!r} has an outgoing transition")

    def is_terminal(self, state: str) -> bool:
        return state in self.terminal_states

    def targets_from(self, state: str) -> frozenset[str]:
        return frozenset(t.to_state for t in self.transitions if t.from_state == state)

    def require(self, from_state: str, to_state: str) -> Transition:
        match = next(
            (t for t in self.transitions
             if (t.from_state, t.to_state) == (from_state, to_state)),
            None,
        )
        if match is None:
            raise InvalidTransitionError(self.name, from_state, to_state)
        return match
