# hierarchy_service.py
import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Callable, Dict, Mapping, Optional, Union

import numpy as np

from celestial import BodyMap, CelestialStatus, IntegratorMode, SimulationStepResult
from config import config
from destruction import DestructionCascadeHandler
from diagnostics import limiter
from hierarchy import (
    HierarchyReconciler,
    assert_hierarchy_well_formed,
    find_hierarchy_violations,
    format_hierarchy,
)
from parent_selection import find_main_star
from physics_utils import PhysicsError


@dataclass
class TickReport:
    """What one call to `OrbitalHierarchyService.step()` produced.

    Attributes:
        tick (int): Index of the tick that was processed (0-based).
        bodies (Mapping): Read-only view of the authoritative map after the tick.
        transitions (Dict[str, CelestialStatus]): Bodies that became terminal this tick.
        accelerations (Dict[str, np.ndarray]): Acceleration snapshot from the integrator.
        reassigned (Dict[str, Optional[str]]): ACTIVE bodies whose live parent
            changed, mapped to the new parent id (None when left parentless).
        maintenance_ran (bool): The periodic passes ran this tick.
        anchor_lost (bool): No main star could be identified after the tick.
        abandoned (bool): At least one reconciliation pass was discarded
            because it broke hierarchy invariants.
    """
    tick: int
    bodies: Mapping
    transitions: Dict[str, CelestialStatus] = field(default_factory=dict)
    accelerations: Dict[str, np.ndarray] = field(default_factory=dict)
    reassigned: Dict[str, Optional[str]] = field(default_factory=dict)
    maintenance_ran: bool = False
    anchor_lost: bool = False
    abandoned: bool = False


class OrbitalHierarchyService:
    """Owns the authoritative body map and keeps its hierarchy consistent tick by tick.

    Each `step()` runs, in order: destruction cascade, reactive orphan
    reassignment (only when something was destroyed), and the periodic
    passes every `maintenance_interval` ticks (tick 0 included). Every pass
    reads a snapshot and produces a whole new map; the map is swapped in only
    after the pass completed and did not introduce hierarchy violations.

    Attributes:
        tick_count (int): Number of ticks processed so far.
        anchor_lost (bool): True while no ACTIVE parentless star exists.
        accelerations (Dict[str, np.ndarray]): Latest acceleration snapshot.
    """

    def __init__(self, bodies: Mapping, integrator_mode: Union[IntegratorMode, str, None] = None,
                 maintenance_interval: Optional[int] = None):
        self._bodies: BodyMap = dict(bodies)
        self._reconciler = HierarchyReconciler(self._coerce_mode(integrator_mode))
        self._cascade = DestructionCascadeHandler()
        if maintenance_interval is None:
            maintenance_interval = config.Hierarchy.MAINTENANCE_INTERVAL_TICKS
        self.maintenance_interval = maintenance_interval
        if self.maintenance_interval <= 0:
            raise ValueError(f"maintenance_interval must be positive, got {self.maintenance_interval}")
        self.tick_count = 0
        self.accelerations: Dict[str, np.ndarray] = {}
        self.anchor_lost = find_main_star(self._bodies) is None

        for body_id, text in find_hierarchy_violations(self._bodies):
            logging.warning(f"Initial hierarchy: '{body_id}' {text}")
        logging.info(
            f"OrbitalHierarchyService initialized with {len(self._bodies)} bodies "
            f"({self._reconciler.integrator_mode.value} mode, maintenance every {self.maintenance_interval} ticks)."
        )

    @staticmethod
    def _coerce_mode(integrator_mode: Union[IntegratorMode, str, None]) -> IntegratorMode:
        if integrator_mode is None:
            return IntegratorMode.from_config()
        if isinstance(integrator_mode, IntegratorMode):
            return integrator_mode
        return IntegratorMode(integrator_mode)

    @property
    def bodies(self) -> Mapping:
        return MappingProxyType(self._bodies)

    @property
    def integrator_mode(self) -> IntegratorMode:
        return self._reconciler.integrator_mode

    def set_integrator_mode(self, integrator_mode: Union[IntegratorMode, str]) -> None:
        mode = self._coerce_mode(integrator_mode)
        if mode is not self._reconciler.integrator_mode:
            logging.info(f"Integrator mode changed: {self._reconciler.integrator_mode.value} -> {mode.value}")
        self._reconciler.integrator_mode = mode

    def _run_pass(self, name: str, before: BodyMap, reconcile: Callable[[BodyMap], BodyMap]):
        """Runs one reconciliation pass; returns (resulting map, abandoned flag)."""
        try:
            after = reconcile(before)
            remaining = assert_hierarchy_well_formed(before, after)
        except PhysicsError as e:
            logging.error(f"{name} pass abandoned at tick {self.tick_count}, previous hierarchy kept: {e}")
            return before, True
        for body_id, text in remaining:
            logging.warning(f"{name}: unresolved hierarchy issue, '{body_id}' {text}")
        return after, False

    def step(self, result: SimulationStepResult) -> TickReport:
        """Processes one integrator tick and swaps in the reconciled map."""
        tick = self.tick_count
        limiter.reset()

        cascaded, transitions, accelerations = self._cascade.apply(result, self._bodies)
        current = cascaded
        abandoned = False

        if transitions:
            destroyed_ids = list(transitions)
            current, failed = self._run_pass(
                "Orphan reassignment", current,
                lambda snapshot: self._reconciler.reassign_orphaned_objects(destroyed_ids, snapshot),
            )
            abandoned = abandoned or failed

        maintenance_ran = tick % self.maintenance_interval == 0
        if maintenance_ran:
            limiter.reset()
            current, failed = self._run_pass("Maintenance", current, self._reconciler.run_maintenance)
            abandoned = abandoned or failed

        reassigned = {
            body_id: body.current_parent_id
            for body_id, body in current.items()
            if body.is_active and body_id in cascaded
            and cascaded[body_id].current_parent_id != body.current_parent_id
        }
        if reassigned:
            logging.info(f"Tick {tick}: {len(reassigned)} bodies re-parented.")
            if config.Debug.HIERARCHY_REPORTS:
                logging.info(f"Hierarchy after tick {tick}:\n{format_hierarchy(current)}")

        self._bodies = current
        self.accelerations = accelerations
        self._update_anchor_state(tick)
        self.tick_count += 1

        return TickReport(
            tick=tick,
            bodies=self.bodies,
            transitions=transitions,
            accelerations=accelerations,
            reassigned=reassigned,
            maintenance_ran=maintenance_ran,
            anchor_lost=self.anchor_lost,
            abandoned=abandoned,
        )

    def run_maintenance(self) -> BodyMap:
        """Forces both periodic passes now, outside the regular cadence."""
        limiter.reset()
        self._bodies, _ = self._run_pass("Maintenance", self._bodies, self._reconciler.run_maintenance)
        self._update_anchor_state(self.tick_count)
        return dict(self._bodies)

    def _update_anchor_state(self, tick: int) -> None:
        anchor_lost = find_main_star(self._bodies) is None
        if anchor_lost and not self.anchor_lost:
            logging.critical(f"System anchor lost at tick {tick}: no active parentless star remains.")
        elif not anchor_lost and self.anchor_lost:
            logging.info(f"System anchor restored at tick {tick}.")
        self.anchor_lost = anchor_lost
