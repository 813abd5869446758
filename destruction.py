# destruction.py
import logging
from typing import Dict, Iterable, List, Optional, Tuple

import numpy as np

from celestial import (
    BodyMap,
    CelestialStatus,
    CelestialType,
    DestructionEvent,
    PhysicsState,
    SimulationStepResult,
    ring_system_id,
)
from config import config


class DestructionCascadeHandler:
    """Folds one integrator tick into the body map and settles destruction outcomes.

    Per tick:
    1.  Fresh physics states are merged into the matching ACTIVE bodies.
    2.  Destroyed planets, dwarf planets and gas giants drag their ring system
        (`ring-system-<owner id>`) along with them.
    3.  Every destroyed body gets a terminal status exactly once:
        ANNIHILATED when the surviving collider is a star or both colliders
        were destroyed, DESTROYED otherwise. Ring systems mirror the outcome
        of their owner's event.

    The handler is stateless; the input map is never modified.
    """

    def merge_physics_states(self, states: Iterable[PhysicsState], bodies: BodyMap) -> BodyMap:
        """Returns a copy of `bodies` with each state applied to its body.

        States for unknown ids are skipped with a warning (a body may be
        destroyed in the same tick it was created). States for bodies that
        are already terminal are ignored.
        """
        merged: BodyMap = dict(bodies)
        for state in states:
            body = merged.get(state.body_id)
            if body is None:
                logging.warning(f"Physics state for unknown body id '{state.body_id}' ignored.")
                continue
            if not body.is_active:
                logging.debug(f"Physics state for {body.status.value} body '{body.id}' ignored.")
                continue
            merged[body.id] = body.with_physics_state(state)
        return merged

    def collect_destruction_targets(self, destroyed_ids: Iterable[str],
                                    bodies: BodyMap) -> Tuple[List[str], Dict[str, str]]:
        """Expands the tick's destroyed ids with the ring systems of destroyed owners.

        Returns:
            Tuple[List[str], Dict[str, str]]: The ids to transition (destroyed ids
            first, sorted, then cascaded rings), and a ring id -> owner id map
            for the rings added by the cascade.
        """
        targets: List[str] = []
        ring_owners: Dict[str, str] = {}
        for body_id in sorted(set(destroyed_ids)):
            if body_id not in bodies:
                logging.warning(f"Destroyed id '{body_id}' does not match any known body; skipped.")
                continue
            targets.append(body_id)

        for owner_id in list(targets):
            if not bodies[owner_id].type.can_own_rings:
                continue
            ring_id = ring_system_id(owner_id)
            ring = bodies.get(ring_id)
            if ring is None or ring.type is not CelestialType.RING_SYSTEM:
                continue
            if ring.status.is_terminal or ring_id in targets:
                continue
            targets.append(ring_id)
            ring_owners[ring_id] = owner_id
            logging.debug(f"Ring system '{ring_id}' destroyed along with '{owner_id}'.")
        return targets, ring_owners

    def status_from_event(self, event: DestructionEvent, bodies: BodyMap) -> CelestialStatus:
        """ANNIHILATED if the survivor is a star or the collision was mutual, else DESTROYED."""
        if event.is_mutual:
            return CelestialStatus.ANNIHILATED
        survivor = bodies.get(event.survivor_id)
        if survivor is not None and survivor.type.is_star:
            return CelestialStatus.ANNIHILATED
        return CelestialStatus.DESTROYED

    def determine_final_status(self, body_id: str, bodies: BodyMap,
                               events_by_id: Dict[str, DestructionEvent],
                               destroyed_ids: Iterable[str],
                               ring_owner_id: Optional[str] = None) -> CelestialStatus:
        """Terminal status for `body_id`.

        Uses the body's own destruction event when there is one. A ring system
        with no event of its own inherits the outcome of its owner's event,
        provided the owner is among `destroyed_ids`. Anything else defaults to
        DESTROYED with a warning.
        """
        event = events_by_id.get(body_id)
        if event is not None:
            return self.status_from_event(event, bodies)

        body = bodies.get(body_id)
        if body is not None and body.type is CelestialType.RING_SYSTEM:
            owner_id = ring_owner_id or body.current_parent_id or body.parent_id
            if owner_id is not None and owner_id in set(destroyed_ids):
                owner_event = events_by_id.get(owner_id)
                if owner_event is not None:
                    return self.status_from_event(owner_event, bodies)

        logging.warning(f"No destruction event attributable to '{body_id}'; defaulting to {CelestialStatus.DESTROYED.value}.")
        return CelestialStatus.DESTROYED

    def apply(self, result: SimulationStepResult,
              bodies: BodyMap) -> Tuple[BodyMap, Dict[str, CelestialStatus], Dict[str, np.ndarray]]:
        """Consumes one `SimulationStepResult`.

        Returns:
            Tuple: (new body map, {id: final status} for bodies that became
            terminal this tick, acceleration snapshot keyed by body id).
        """
        merged = self.merge_physics_states(result.states, bodies)

        events_by_id: Dict[str, DestructionEvent] = {}
        for event in result.destruction_events:
            # First event per destroyed id wins
            events_by_id.setdefault(event.destroyed_id, event)

        targets, ring_owners = self.collect_destruction_targets(result.destroyed_ids, merged)
        transitions: Dict[str, CelestialStatus] = {}
        for body_id in targets:
            body = merged[body_id]
            if body.status.is_terminal:
                continue
            status = self.determine_final_status(body_id, merged, events_by_id, result.destroyed_ids,
                                                 ring_owners.get(body_id))
            merged[body_id] = body.with_status(status)
            transitions[body_id] = status

        if transitions:
            summary = ", ".join(f"{body_id}={status.value}" for body_id, status in transitions.items())
            logging.info(f"Destruction applied: {summary}")

        accelerations = {
            body_id: np.asarray(acceleration, dtype=float)
            for body_id, acceleration in result.accelerations.items()
        }
        return merged, transitions, accelerations


def mutual_destruction_events(first_id: str, second_id: str) -> Tuple[DestructionEvent, DestructionEvent]:
    """Event pair for a collision that destroyed both bodies."""
    sentinel = config.Destruction.MUTUAL_DESTRUCTION_ID
    return (DestructionEvent(destroyed_id=first_id, survivor_id=sentinel),
            DestructionEvent(destroyed_id=second_id, survivor_id=sentinel))
