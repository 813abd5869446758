# parent_selection.py
"""Choosing gravitational parents: nearest star, best parent, replacement main star.

All functions read the body map without modifying it and return ids.
Iteration follows the map's insertion order, which is also the tie-break
order; callers wanting reproducible ties should insert ids sorted.
"""
import math
from typing import Iterable, Optional

from celestial import BodyMap, CelestialBody, CelestialType, IntegratorMode, iter_active
from config import config
from diagnostics import limiter
from influence import distance, distance_au, influence
from physics_utils import is_finite_number


def _resolve_mode(integrator_mode: Optional[IntegratorMode]) -> IntegratorMode:
    return integrator_mode if integrator_mode is not None else IntegratorMode.from_config()


def find_main_star(all_bodies: BodyMap) -> Optional[CelestialBody]:
    """The hierarchy root: an ACTIVE parentless star, preferring one flagged `is_main_star`."""
    fallback = None
    for star in iter_active(all_bodies, CelestialType.STAR):
        if not star.is_parentless:
            continue
        if star.is_main_star:
            return star
        if fallback is None:
            fallback = star
    return fallback


def reference_star_mass(all_bodies: BodyMap) -> float:
    """Mass of the main star (or first active star) used as Hill-sphere reference."""
    main_star = find_main_star(all_bodies)
    if main_star is not None and main_star.mass_kg > 0:
        return main_star.mass_kg
    for star in iter_active(all_bodies, CelestialType.STAR):
        if star.mass_kg > 0:
            return star.mass_kg
    return config.Hierarchy.FALLBACK_STAR_MASS_KG


def find_nearest_star(body: CelestialBody, all_bodies: BodyMap) -> Optional[str]:
    """Id of the ACTIVE star closest to `body` (straight-line), None if no star has a finite distance."""
    nearest_id = None
    min_distance = math.inf
    for star in iter_active(all_bodies, CelestialType.STAR):
        if star.id == body.id:
            continue
        d = distance(body, star)
        if d < min_distance:
            min_distance = d
            nearest_id = star.id
    return nearest_id


def _is_candidate(candidate: CelestialBody, target: CelestialBody, excluded: set) -> bool:
    if candidate.id == target.id or candidate.id in excluded:
        return False
    if not candidate.is_active or candidate.physics_state is None:
        return False
    if candidate.type.is_star:
        return True
    if target.type.is_capturable_satellite:
        if candidate.type is CelestialType.GAS_GIANT:
            return True
        if candidate.type is CelestialType.PLANET and candidate.mass_kg > target.mass_kg:
            return True
    return False


def find_best_gravitational_parent(target: CelestialBody, all_bodies: BodyMap,
                                   exclude_ids: Iterable[str] = (),
                                   integrator_mode: Optional[IntegratorMode] = None) -> Optional[str]:
    """
    Id of the body with the strongest gravitational claim on `target`.

    Stars may parent anything. Gas giants, and planets heavier than the
    target, may additionally parent moons and asteroid fields.

    - Planets and gas giants choose among stars only, by raw influence with
      no distance penalty.
    - Every other target also considers planetary candidates, whose influence
      is multiplied by exp(-rate * d_au) once they are farther than the decay
      threshold, so a distant heavy planet cannot take a moon from a nearby
      smaller body.

    In a Keplerian integrator mode nothing is recomputed: the current live
    parent is returned if it is ACTIVE and not excluded, otherwise None.

    Returns:
        Optional[str]: Best parent id, or None if no candidate has positive influence.
    """
    excluded = set(exclude_ids)
    if not _resolve_mode(integrator_mode).is_nbody:
        parent_id = target.current_parent_id
        if parent_id is None or parent_id in excluded:
            return None
        parent = all_bodies.get(parent_id)
        if parent is not None and parent.is_active:
            return parent.id
        return None

    candidates = [c for c in all_bodies.values() if _is_candidate(c, target, excluded)]
    if target.type.is_planetary:
        candidates = [c for c in candidates if c.type.is_star]

    decay_threshold_au = config.Hierarchy.MOON_DECAY_THRESHOLD_AU
    decay_rate = config.Hierarchy.MOON_DECAY_RATE_PER_AU

    best_id = None
    max_influence = 0.0
    for candidate in candidates:
        score = influence(candidate, target)
        if not target.type.is_planetary and not candidate.type.is_star:
            d_au = distance_au(candidate, target)
            if d_au > decay_threshold_au:
                score *= math.exp(-decay_rate * d_au)
        # NaN never compares greater, so an invalid score can't win
        if score > max_influence:
            max_influence = score
            best_id = candidate.id
    return best_id


def find_new_main_star(all_bodies: BodyMap, exclude_star_ids: Iterable[str] = (),
                       integrator_mode: Optional[IntegratorMode] = None) -> Optional[str]:
    """
    Id of the most massive ACTIVE star not in `exclude_star_ids`.

    Always None in Keplerian mode, where the hierarchy root is authored
    externally and never promoted automatically.
    """
    if not _resolve_mode(integrator_mode).is_nbody:
        return None
    excluded = set(exclude_star_ids)
    best = None
    for star in iter_active(all_bodies, CelestialType.STAR):
        if star.id in excluded:
            continue
        if not is_finite_number(star.mass_kg) or star.mass_kg <= 0:
            limiter.warn_once("invalid-star-mass", star.id,
                              f"Star '{star.id}' has invalid mass {star.mass_kg}; not eligible as main star.")
            continue
        if best is None or star.mass_kg > best.mass_kg:
            best = star
    return best.id if best is not None else None
