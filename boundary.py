# boundary.py
"""Hill-sphere and energy tests deciding whether a satellite stays with its primary.

Units: SI throughout (kg, m, m/s). Any NaN produced along the way makes the
corresponding test answer "not bound" / "cannot capture"; the offending body
is reported once per pass through the shared diagnostic limiter.
"""
import math
from typing import Optional

from celestial import BodyMap, CelestialBody, CelestialType, iter_active
from config import config
from diagnostics import limiter
from influence import distance, relative_speed
from physics_utils import safe_divide


def hill_sphere_radius(primary_mass_kg: float, semi_major_axis_m: Optional[float],
                       reference_mass_kg: float) -> float:
    """
    Hill radius r_H = a * (m_primary / (3 * m_reference))^(1/3).

    Args:
        primary_mass_kg: Mass of the body whose sphere of influence is computed.
        semi_major_axis_m: Semi-major axis of the primary around its reference
                           body. None defaults to 1 AU.
        reference_mass_kg: Mass of the body the primary itself orbits.

    Returns:
        float: Radius in meters. +inf if the reference mass is not positive
               (nothing competes with the primary), 0.0 for a massless primary.
    """
    a = config.Physics.AU_M if semi_major_axis_m is None else semi_major_axis_m
    if primary_mass_kg <= 0:
        return 0.0
    if reference_mass_kg <= 0:
        return math.inf
    return a * (primary_mass_kg / (3.0 * reference_mass_kg)) ** (1.0 / 3.0)


def semi_major_axis_of(body: CelestialBody) -> Optional[float]:
    """Authored semi-major axis of `body`, None when it has no orbit elements."""
    if body.orbit is None:
        return None
    return body.orbit.semi_major_axis_m


def primary_hill_radius(primary: CelestialBody, reference_mass_kg: float) -> float:
    return hill_sphere_radius(primary.mass_kg, semi_major_axis_of(primary), reference_mass_kg)


def escape_velocity(mass_kg: float, separation_m: float) -> float:
    """v_esc = sqrt(2 G M / r); +inf at zero separation, 0.0 for a massless body."""
    if mass_kg <= 0:
        return 0.0
    if separation_m <= 0:
        return math.inf
    return math.sqrt(2.0 * config.Physics.GRAVITATIONAL_CONSTANT * mass_kg / separation_m)


def gravitational_acceleration(mass_kg: float, separation_m: float) -> float:
    """|a| = G M / r^2, +inf at zero separation."""
    if separation_m == 0:
        return math.inf if mass_kg > 0 else 0.0
    return safe_divide(config.Physics.GRAVITATIONAL_CONSTANT * mass_kg, separation_m * separation_m,
                       epsilon=1e-300, default_on_zero_denom=math.inf)


def specific_orbital_energy(satellite: CelestialBody, primary: CelestialBody) -> float:
    """E = v_rel^2 / 2 - G m_primary / r (J/kg). Negative means a closed orbit."""
    separation = distance(satellite, primary)
    v_rel = relative_speed(satellite, primary)
    if separation == 0:
        return -math.inf
    return 0.5 * v_rel * v_rel - config.Physics.GRAVITATIONAL_CONSTANT * primary.mass_kg / separation


def is_bound(satellite: CelestialBody, primary: CelestialBody, reference_mass_kg: float,
             all_bodies: Optional[BodyMap] = None) -> bool:
    """
    Decides whether a moon is still gravitationally bound to its planet.

    The test is only defined for MOON satellites of PLANET/GAS_GIANT primaries;
    any other pairing, or a missing physics state, answers False.

    1. Zero separation, or outside the primary's Hill sphere -> not bound.
    2. Positive or non-finite specific orbital energy -> not bound.
    3. With `all_bodies` given, the context-aware check also fails the moon
       when any active star pulls on it more than
       `config.Hierarchy.STAR_DOMINANCE_FACTOR` times harder than its primary.
    """
    if satellite.physics_state is None or primary.physics_state is None:
        return False
    if satellite.type is not CelestialType.MOON:
        return False
    if not primary.type.is_planetary:
        return False

    separation = distance(satellite, primary)
    if separation == 0:
        limiter.warn_once("zero-separation", satellite.id,
                          f"'{satellite.id}' sits exactly on '{primary.id}'; treating it as unbound.")
        return False
    hill = primary_hill_radius(primary, reference_mass_kg)
    if not separation <= hill:
        if math.isnan(hill):
            limiter.warn_once("non-finite-hill", primary.id,
                              f"Hill radius of '{primary.id}' is not finite; treating '{satellite.id}' as unbound.")
        return False

    energy = specific_orbital_energy(satellite, primary)
    if not math.isfinite(energy):
        limiter.warn_once("non-finite-energy", satellite.id,
                          f"Orbital energy of '{satellite.id}' around '{primary.id}' is {energy}; treating it as unbound.")
        return False
    if energy > 0:
        return False

    if all_bodies is None:
        return True

    primary_pull = gravitational_acceleration(primary.mass_kg, separation)
    strongest_star_pull = 0.0
    for star in iter_active(all_bodies, CelestialType.STAR):
        if star.physics_state is None or not star.mass_kg:
            continue
        star_distance = distance(satellite, star)
        if star_distance == 0:
            continue
        pull = gravitational_acceleration(star.mass_kg, star_distance)
        if pull > strongest_star_pull:
            strongest_star_pull = pull
    return strongest_star_pull <= config.Hierarchy.STAR_DOMINANCE_FACTOR * primary_pull


def can_capture(capturer: CelestialBody, target: CelestialBody, primary_mass_kg: float) -> bool:
    """
    True if `capturer` can hold `target` as its satellite.

    Requires the capturer to be strictly more massive, the target to sit
    inside the capturer's Hill sphere (relative to `primary_mass_kg`), and the
    relative speed to be below the capturer's escape velocity at that distance.
    """
    if capturer.physics_state is None or target.physics_state is None:
        return False
    if capturer.mass_kg <= target.mass_kg:
        return False

    separation = distance(capturer, target)
    hill = primary_hill_radius(capturer, primary_mass_kg)
    if not separation <= hill:
        return False

    v_rel = relative_speed(capturer, target)
    return v_rel < escape_velocity(capturer.mass_kg, separation)
