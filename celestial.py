# celestial.py
"""Data model shared by every stage of the hierarchy engine.

Bodies are immutable value objects. Every change (new parent, new status,
fresh physics state) goes through a `with_*` constructor that returns a new
`CelestialBody`, so a body map can be snapshotted by a shallow dict copy and
swapped atomically once a pass has finished.
"""
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, FrozenSet, Iterator, Optional, Tuple

import numpy as np

from config import config
from physics_utils import vector3


class CelestialType(Enum):
    STAR = "STAR"
    PLANET = "PLANET"
    GAS_GIANT = "GAS_GIANT"
    DWARF_PLANET = "DWARF_PLANET"
    MOON = "MOON"
    RING_SYSTEM = "RING_SYSTEM"
    ASTEROID_FIELD = "ASTEROID_FIELD"
    OORT_CLOUD = "OORT_CLOUD"

    @property
    def is_star(self) -> bool:
        return self is CelestialType.STAR

    @property
    def is_planetary(self) -> bool:
        """Planets and gas giants: the bodies that orbit stars and own moons."""
        return self in (CelestialType.PLANET, CelestialType.GAS_GIANT)

    @property
    def can_own_rings(self) -> bool:
        return self in (CelestialType.PLANET, CelestialType.DWARF_PLANET, CelestialType.GAS_GIANT)

    @property
    def is_capturable_satellite(self) -> bool:
        """Targets that planets and gas giants may take custody of."""
        return self in (CelestialType.MOON, CelestialType.ASTEROID_FIELD)


class CelestialStatus(Enum):
    ACTIVE = "active"
    DESTROYED = "destroyed"
    ANNIHILATED = "annihilated"

    @property
    def is_terminal(self) -> bool:
        return self is not CelestialStatus.ACTIVE


class IntegratorMode(Enum):
    """Numeric integrator reported by the external N-body step."""
    KEPLERIAN = "keplerian"
    SYMPLECTIC = "symplectic"
    VERLET = "verlet"

    @property
    def is_nbody(self) -> bool:
        """Only coupled N-body modes allow live re-evaluation of parents."""
        return self in (IntegratorMode.SYMPLECTIC, IntegratorMode.VERLET)

    @classmethod
    def from_config(cls) -> 'IntegratorMode':
        return cls(config.Physics.INTEGRATION_METHOD)


@dataclass(frozen=True, eq=False)
class PhysicsState:
    """Real-unit kinematic state of one body as produced by the integrator.

    Attributes:
        body_id: Id of the body this state belongs to.
        position_m: Position [x, y, z] in meters.
        velocity_mps: Velocity [vx, vy, vz] in meters per second.
        mass_kg: Mass reported by the integrator, None if it did not change it.
    """
    body_id: str
    position_m: np.ndarray
    velocity_mps: np.ndarray
    mass_kg: Optional[float] = None

    def __post_init__(self):
        for name in ('position_m', 'velocity_mps'):
            vector = vector3(getattr(self, name)).copy()
            vector.flags.writeable = False
            object.__setattr__(self, name, vector)


@dataclass(frozen=True)
class OrbitElements:
    """Keplerian elements; only the semi-major axis is used by the engine (Hill radius)."""
    semi_major_axis_m: float
    eccentricity: float = 0.0
    inclination_rad: float = 0.0
    longitude_of_ascending_node_rad: float = 0.0
    argument_of_periapsis_rad: float = 0.0
    mean_anomaly_rad: float = 0.0
    period_s: Optional[float] = None


@dataclass(frozen=True)
class CelestialBody:
    """A body in the global body map.

    `current_parent_id` is the live parent maintained by the engine;
    `parent_id` is the authored/nominal parent kept for reference. The engine
    re-parents by writing both, except when a body is left without a viable
    parent, in which case only the live parent is cleared.
    """
    id: str
    type: CelestialType
    mass_kg: float
    radius_m: float
    status: CelestialStatus = CelestialStatus.ACTIVE
    physics_state: Optional[PhysicsState] = None
    parent_id: Optional[str] = None
    current_parent_id: Optional[str] = None
    orbit: Optional[OrbitElements] = None
    is_main_star: bool = False

    @property
    def is_active(self) -> bool:
        return self.status is CelestialStatus.ACTIVE

    @property
    def is_parentless(self) -> bool:
        """No parent of any kind: a hierarchy root candidate when it is an ACTIVE star."""
        return self.parent_id is None and self.current_parent_id is None

    def has_parent(self, parent_id: str) -> bool:
        """True if either the authored or the live parent is `parent_id`."""
        return self.parent_id == parent_id or self.current_parent_id == parent_id

    def with_parent(self, parent_id: Optional[str]) -> 'CelestialBody':
        return replace(self, parent_id=parent_id, current_parent_id=parent_id)

    def without_live_parent(self) -> 'CelestialBody':
        return replace(self, current_parent_id=None)

    def with_status(self, status: CelestialStatus) -> 'CelestialBody':
        return replace(self, status=status)

    def with_physics_state(self, state: PhysicsState) -> 'CelestialBody':
        mass_kg = self.mass_kg if state.mass_kg is None else float(state.mass_kg)
        return replace(self, physics_state=state, mass_kg=mass_kg)

    def with_main_star_flag(self, is_main_star: bool) -> 'CelestialBody':
        return replace(self, is_main_star=is_main_star)

    def as_main_star(self) -> 'CelestialBody':
        return replace(self, parent_id=None, current_parent_id=None, is_main_star=True)


@dataclass(frozen=True, eq=False)
class DestructionEvent:
    """One destruction reported by the integrator, consumed once."""
    destroyed_id: str
    survivor_id: str
    impact_position: np.ndarray = field(default_factory=lambda: np.zeros(3))
    relative_velocity: np.ndarray = field(default_factory=lambda: np.zeros(3))
    destroyed_radius: float = 0.0

    @property
    def is_mutual(self) -> bool:
        return self.survivor_id == config.Destruction.MUTUAL_DESTRUCTION_ID


@dataclass(frozen=True, eq=False)
class SimulationStepResult:
    """Everything one integrator tick hands to the hierarchy engine."""
    states: Tuple[PhysicsState, ...] = ()
    destroyed_ids: FrozenSet[str] = frozenset()
    destruction_events: Tuple[DestructionEvent, ...] = ()
    accelerations: Dict[str, np.ndarray] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, 'states', tuple(self.states))
        object.__setattr__(self, 'destroyed_ids', frozenset(self.destroyed_ids))
        object.__setattr__(self, 'destruction_events', tuple(self.destruction_events))


BodyMap = Dict[str, CelestialBody]


def create_body(body_id: str, body_type: CelestialType, mass_kg: float, radius_m: float = 0.0,
                position_m=None, velocity_mps=None, parent_id: Optional[str] = None,
                orbit: Optional[OrbitElements] = None, is_main_star: bool = False) -> CelestialBody:
    """Creates an ACTIVE body whose live parent equals its authored parent.

    Position and velocity are optional; passing neither leaves the body without
    physics state (it will be skipped by the engine until state arrives).
    """
    physics_state = None
    if position_m is not None or velocity_mps is not None:
        physics_state = PhysicsState(
            body_id=body_id,
            position_m=position_m if position_m is not None else (0.0, 0.0, 0.0),
            velocity_mps=velocity_mps if velocity_mps is not None else (0.0, 0.0, 0.0),
            mass_kg=mass_kg,
        )
    return CelestialBody(
        id=body_id,
        type=body_type,
        mass_kg=float(mass_kg),
        radius_m=float(radius_m),
        physics_state=physics_state,
        parent_id=parent_id,
        current_parent_id=parent_id,
        orbit=orbit,
        is_main_star=is_main_star and body_type.is_star,
    )


def ring_system_id(owner_id: str) -> str:
    """Id under which the ring system owned by `owner_id` is registered."""
    return f"{config.Destruction.RING_SYSTEM_ID_PREFIX}{owner_id}"


def iter_active(bodies: BodyMap, *types: CelestialType) -> Iterator[CelestialBody]:
    """Yields ACTIVE bodies in map order, optionally restricted to `types`."""
    for body in bodies.values():
        if not body.is_active:
            continue
        if types and body.type not in types:
            continue
        yield body
