# seed_system.py
"""Builds the demo body map from `config.SolarSystem.BODY_DATA`.

Bodies are placed on circular, coplanar orbits around their central body,
each at its own phase angle so siblings are not lined up. Positions and
velocities are absolute SI vectors (the central body's state plus the
relative circular-orbit state).
"""
import logging
import math
from typing import Dict, List, Optional

import numpy as np

from celestial import BodyMap, CelestialType, OrbitElements, create_body, ring_system_id
from config import config, ConfigurationError

# Golden angle spreads successive bodies evenly around their parents
PHASE_STEP_RAD = math.pi * (3.0 - math.sqrt(5.0))


def _build_order(body_data: Dict[str, dict]) -> List[str]:
    """Body ids ordered so every central body precedes its satellites."""
    ordered: List[str] = []
    placed = set()
    pending = list(body_data)
    while pending:
        progressed = False
        for name in list(pending):
            central = body_data[name].get('central_body')
            if central is None or central in placed:
                ordered.append(name)
                placed.add(name)
                pending.remove(name)
                progressed = True
        if not progressed:
            raise ConfigurationError(f"Circular central_body references among {pending}.")
    return ordered


def _parse_type(name: str, data: dict) -> CelestialType:
    try:
        return CelestialType[data['type']]
    except KeyError:
        raise ConfigurationError(f"Unknown celestial type {data.get('type')!r} for body '{name}'.")


def circular_orbit_speed(central_mass_kg: float, radius_m: float) -> float:
    """v = sqrt(G M / r); 0.0 at the origin."""
    if radius_m <= 0:
        return 0.0
    return math.sqrt(config.Physics.GRAVITATIONAL_CONSTANT * central_mass_kg / radius_m)


def orbital_period(central_mass_kg: float, semi_major_axis_m: float) -> Optional[float]:
    if central_mass_kg <= 0 or semi_major_axis_m <= 0:
        return None
    return 2.0 * math.pi * math.sqrt(semi_major_axis_m ** 3 / (config.Physics.GRAVITATIONAL_CONSTANT * central_mass_kg))


def build_seed_system(body_data: Optional[Dict[str, dict]] = None) -> BodyMap:
    """Creates ACTIVE bodies (plus ring systems) with authored parents and physics state.

    Args:
        body_data: Seed dictionary in the `config.SolarSystem.BODY_DATA` format;
                   defaults to the configured demo system.

    Returns:
        BodyMap: Bodies keyed by id, in build order. The root star is flagged
                 as main star.

    Raises:
        ConfigurationError: On unknown types or unresolvable central bodies.
    """
    body_data = config.SolarSystem.BODY_DATA if body_data is None else body_data
    bodies: BodyMap = {}

    for index, name in enumerate(_build_order(body_data)):
        data = body_data[name]
        body_type = _parse_type(name, data)
        mass_kg = float(data['mass_kg'])
        radius_m = float(data.get('radius_km', 0.0)) * 1000.0
        central_name = data.get('central_body')

        if central_name is None:
            bodies[name] = create_body(
                name, body_type, mass_kg, radius_m,
                position_m=np.zeros(3), velocity_mps=np.zeros(3),
                is_main_star=body_type.is_star,
            )
            continue

        central = bodies[central_name]
        semi_major_axis_m = float(data.get('semi_major_axis_au', 0.0)) * config.Physics.AU_M
        phase = index * PHASE_STEP_RAD
        direction = np.array([math.cos(phase), math.sin(phase), 0.0])
        tangent = np.array([-math.sin(phase), math.cos(phase), 0.0])
        speed = circular_orbit_speed(central.mass_kg, semi_major_axis_m)

        position = central.physics_state.position_m + semi_major_axis_m * direction
        velocity = central.physics_state.velocity_mps + speed * tangent
        orbit = OrbitElements(
            semi_major_axis_m=semi_major_axis_m,
            mean_anomaly_rad=phase % (2.0 * math.pi),
            period_s=orbital_period(central.mass_kg, semi_major_axis_m),
        )
        bodies[name] = create_body(
            name, body_type, mass_kg, radius_m,
            position_m=position, velocity_mps=velocity,
            parent_id=central_name, orbit=orbit,
        )

        if data.get('has_rings'):
            if not body_type.can_own_rings:
                raise ConfigurationError(f"Body '{name}' of type {body_type.name} cannot own a ring system.")
            ring_id = ring_system_id(name)
            bodies[ring_id] = create_body(
                ring_id, CelestialType.RING_SYSTEM, 0.0, 2.0 * radius_m,
                position_m=position, velocity_mps=velocity,
                parent_id=name,
            )

    logging.info(f"Seed system built with {len(bodies)} bodies.")
    return bodies
