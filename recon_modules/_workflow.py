"""
Workflow definitions shared by the procurement and AP modules.

A ``Workflow`` is a declarative state machine: the services ask it whether
an action is allowed from the current state and which state it leads to,
instead of scattering status comparisons through their code.
"""

from dataclasses import dataclass
from typing import Any

from recon_kernel.exceptions import InvalidStateError


@dataclass(frozen=True)
class Guard:
    """A condition checked by the service before a transition."""
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition."""
    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None


@dataclass(frozen=True)
class Workflow:
    """A state machine definition."""
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def is_terminal(self, state: str) -> bool:
        return state in self.terminal_states

    def allowed_actions(self, state: str) -> tuple[str, ...]:
        return tuple(sorted({t.action for t in self.transitions if t.from_state == state}))

    def transition_for(
        self, state: str, action: str, to_state: str | None = None
    ) -> Transition | None:
        for t in self.transitions:
            if t.from_state == state and t.action == action:
                if to_state is None or t.to_state == to_state:
                    return t
        return None

    def require(
        self,
        state: str,
        action: str,
        entity_id: Any,
        to_state: str | None = None,
    ) -> Transition:
        """Return the transition or raise ``InvalidStateError``."""
        transition = self.transition_for(state, action, to_state)
        if transition is None:
            detail = "terminal state" if self.is_terminal(state) else (
                f"allowed actions: {', '.join(self.allowed_actions(state)) or 'none'}"
            )
            raise InvalidStateError(self.name, entity_id, state, action, detail)
        return transition
