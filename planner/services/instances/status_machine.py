# planner/services/instances/status_machine.py
# Transitions autorisées du statut d'une instance.

from __future__ import annotations

from planner.core.errors import StateError

# statut courant -> statuts atteignables
TRANSITIONS: dict[str, frozenset[str]] = {
    "active": frozenset({"paused", "completed"}),
    "paused": frozenset({"active", "completed"}),
    "completed": frozenset(),  # terminal
}

NON_TERMINAL = tuple(status for status, targets in TRANSITIONS.items() if targets)


def can_transition(current: str, target: str) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def check_transition(current: str, target: str) -> None:
    """Lève `StateError` si `current -> target` n'est pas permis."""
    if not can_transition(current, target):
        raise StateError(f"Cannot move instance from {current} to {target}", current=current, target=target)
