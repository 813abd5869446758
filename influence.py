# influence.py
"""Distance and relative gravitational influence between two bodies.

The influence score is a ranking-only proxy for gravitational acceleration:
mass_source / distance_au^2. G and the target's own mass are dropped because
only the ordering among candidate sources is ever compared.
"""
import math

from celestial import CelestialBody
from config import config
from diagnostics import limiter
from physics_utils import is_finite_number, safe_divide, vector_norm


def _report_missing_physics(body: CelestialBody) -> None:
    limiter.warn_once(
        "missing-physics", body.id,
        f"Body '{body.id}' ({body.type.name}) has no physics state; treating it as infinitely far this pass."
    )


def distance(a: CelestialBody, b: CelestialBody) -> float:
    """Euclidean distance in meters; +inf if either body lacks physics state or the result is not finite."""
    for body in (a, b):
        if body.physics_state is None:
            _report_missing_physics(body)
            return math.inf
    separation = vector_norm(a.physics_state.position_m - b.physics_state.position_m)
    if not is_finite_number(separation):
        limiter.warn_once(
            "non-finite-distance", (a.id, b.id),
            f"Non-finite distance between '{a.id}' and '{b.id}'; treating them as infinitely far."
        )
        return math.inf
    return separation


def distance_au(a: CelestialBody, b: CelestialBody) -> float:
    return distance(a, b) / config.Physics.AU_M


def relative_speed(a: CelestialBody, b: CelestialBody) -> float:
    """|v_a - v_b| in m/s; NaN if either body lacks physics state."""
    if a.physics_state is None or b.physics_state is None:
        return math.nan
    return vector_norm(a.physics_state.velocity_mps - b.physics_state.velocity_mps)


def influence(source: CelestialBody, target: CelestialBody) -> float:
    """Unnormalized influence of `source` on `target`: mass_kg / distance_au^2.

    Returns 0.0 when the distance is zero or infinite, or when the source has no mass.
    """
    mass_kg = source.mass_kg or 0.0
    if mass_kg <= 0 or not is_finite_number(mass_kg):
        return 0.0
    d_au = distance_au(source, target)
    if d_au == 0 or math.isinf(d_au):
        return 0.0
    return safe_divide(mass_kg, d_au * d_au, epsilon=1e-300)
