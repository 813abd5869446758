# hierarchy.py
import logging
from typing import Dict, Iterable, List, Optional, Set, Tuple

from boundary import is_bound, primary_hill_radius, can_capture
from celestial import BodyMap, CelestialBody, CelestialType, IntegratorMode, iter_active
from config import config
from influence import distance, influence
from parent_selection import (
    find_best_gravitational_parent,
    find_main_star,
    find_nearest_star,
    find_new_main_star,
    reference_star_mass,
)
from physics_utils import PhysicsError

Violation = Tuple[str, str]


class HierarchyError(PhysicsError):
    """A reconciliation pass produced a hierarchy that breaks its own invariants.

    Raised by `assert_hierarchy_well_formed()`; the hierarchy service catches it,
    keeps the previous body map and logs the violations.

    Attributes:
        violations (List[Tuple[str, str]]): (body id, description) pairs.
    """
    def __init__(self, violations: List[Violation]):
        self.violations = list(violations)
        summary = "; ".join(f"{body_id}: {text}" for body_id, text in self.violations)
        super().__init__(f"Hierarchy invariants violated: {summary}")


class HierarchyReconciler:
    """Keeps parent/child ownership consistent with gravitational dominance.

    Runs in two contexts:
    -   **Reactive**: `reassign_orphaned_objects()` right after destruction has
        been applied, once per tick that destroyed something.
    -   **Periodic**: `check_and_reassign_escaped_moons()` and
        `check_and_reassign_planets_to_proper_stars()` every N ticks.

    Every method treats `all_bodies` as a read-only snapshot and returns a new
    map (or a dict of updated bodies); nothing is modified in place.

    Attributes:
        integrator_mode (IntegratorMode): Gates live recomputation of parents.
            Keplerian mode keeps existing parents and never promotes a new
            main star.
    """

    def __init__(self, integrator_mode: Optional[IntegratorMode] = None):
        self.integrator_mode = integrator_mode if integrator_mode is not None else IntegratorMode.from_config()

    # ------------------------------------------------------------------
    # Reactive reconciliation
    # ------------------------------------------------------------------
    def reassign_orphaned_objects(self, destroyed_ids: Iterable[str], all_bodies: BodyMap) -> BodyMap:
        """Re-parents everything whose parent was destroyed this tick.

        1.  If the main star died, the most massive surviving star is promoted
            (parents cleared, `is_main_star` set) and the stars that orbited a
            destroyed star are moved under it. With no replacement available
            the map is returned otherwise unchanged and the condition is
            logged as critical.
        2.  Planets and gas giants that orbited a destroyed star get their best
            gravitational parent among the surviving stars, or lose their live
            parent (flagged for inspection) if there is none.
        3.  Moons of destroyed planets go through the orphaned-moon protocol.
        4.  Any remaining active body still pointing at a destroyed parent
            gets its best gravitational parent.

        Args:
            destroyed_ids: Ids destroyed this tick.
            all_bodies: Current body map (destroyed bodies may already carry a
                terminal status).

        Returns:
            BodyMap: New map; untouched bodies are the same objects as in the input.
        """
        destroyed = sorted(set(destroyed_ids))
        updated: BodyMap = dict(all_bodies)
        if not destroyed:
            return updated

        destroyed_set = set(destroyed)
        destroyed_star_ids = [i for i in destroyed if i in all_bodies and all_bodies[i].type.is_star]
        destroyed_planet_ids = [i for i in destroyed if i in all_bodies and all_bodies[i].type.is_planetary]

        # --- Stars ---
        if destroyed_star_ids:
            destroyed_main = next(
                (i for i in destroyed_star_ids if all_bodies[i].is_main_star or all_bodies[i].is_parentless),
                None,
            )
            if destroyed_main is not None:
                if not self._promote_new_main_star(destroyed_main, destroyed_star_ids, updated):
                    return updated

            for body in list(updated.values()):
                if not body.is_active or not body.type.is_planetary:
                    continue
                if not any(body.has_parent(star_id) for star_id in destroyed_star_ids):
                    continue
                self._reparent_to_best(body, updated, destroyed_star_ids)

        # --- Planets (their moons) ---
        for planet_id in destroyed_planet_ids:
            moons = [
                body for body in iter_active(updated, CelestialType.MOON)
                if body.has_parent(planet_id)
            ]
            if moons:
                updated.update(self.reassign_orphaned_moons(moons, updated, planet_id))

        # --- Whatever still points at a destroyed parent ---
        for body in list(updated.values()):
            if not body.is_active or body.id in destroyed_set:
                continue
            if body.type is CelestialType.RING_SYSTEM or body.current_parent_id not in destroyed_set:
                continue
            self._reparent_to_best(body, updated, destroyed)

        return updated

    def _promote_new_main_star(self, destroyed_main: str, destroyed_star_ids: List[str], updated: BodyMap) -> bool:
        new_main_id = find_new_main_star(updated, destroyed_star_ids, self.integrator_mode)
        if new_main_id is None:
            if self.integrator_mode.is_nbody:
                logging.critical(
                    f"Main star '{destroyed_main}' destroyed and no stars remain in the system. "
                    "System anchor lost; star-dependent reconciliation suspended."
                )
            else:
                logging.critical(
                    f"Main star '{destroyed_main}' destroyed in {self.integrator_mode.value} mode; "
                    "no replacement is promoted automatically. System anchor lost."
                )
            return False

        for star in list(iter_active(updated, CelestialType.STAR)):
            if star.is_main_star and star.id != new_main_id:
                updated[star.id] = star.with_main_star_flag(False)
        updated[new_main_id] = updated[new_main_id].as_main_star()
        logging.info(f"Promoted star '{new_main_id}' to main star after '{destroyed_main}' was destroyed.")

        for star in list(iter_active(updated, CelestialType.STAR)):
            if star.id == new_main_id:
                continue
            if any(star.has_parent(star_id) for star_id in destroyed_star_ids):
                updated[star.id] = star.with_parent(new_main_id)
                logging.debug(f"Star '{star.id}' now orbits new main star '{new_main_id}'.")
        return True

    def _reparent_to_best(self, body: CelestialBody, updated: BodyMap, exclude_ids: Iterable[str]) -> None:
        best_id = find_best_gravitational_parent(body, updated, exclude_ids, self.integrator_mode)
        if best_id is not None:
            updated[body.id] = body.with_parent(best_id)
            logging.debug(f"{body.type.name} '{body.id}' re-parented to '{best_id}'.")
        else:
            updated[body.id] = body.without_live_parent()
            logging.warning(
                f"No viable gravitational parent for {body.type.name} '{body.id}' "
                f"(nominal parent '{body.parent_id}'); left without a live parent for inspection."
            )

    def reassign_orphaned_moons(self, moons: List[CelestialBody], all_bodies: BodyMap,
                                destroyed_primary_id: str) -> Dict[str, CelestialBody]:
        """Finds new parents for the moons of a destroyed planet.

        The most massive moon tries to capture each smaller sibling; captured
        moons orbit it, forming a new mutual system. The largest moon itself,
        and every sibling it could not capture, is handed to its nearest
        active star.

        Returns:
            Dict[str, CelestialBody]: Updated moons keyed by id. Moons for which
            no star could be found are absent (they keep their old parent).
        """
        updates: Dict[str, CelestialBody] = {}
        ordered = sorted(moons, key=lambda moon: moon.mass_kg, reverse=True)
        if not ordered:
            return updates

        if len(ordered) > 1:
            largest = ordered[0]
            primary_mass_kg = reference_star_mass(all_bodies)
            for moon in ordered[1:]:
                if can_capture(largest, moon, primary_mass_kg):
                    updates[moon.id] = moon.with_parent(largest.id)
                    logging.debug(f"Moon '{moon.id}' captured by '{largest.id}' after '{destroyed_primary_id}' was destroyed.")

        for moon in ordered:
            if moon.id in updates:
                continue
            star_id = find_nearest_star(moon, all_bodies)
            if star_id is None:
                logging.warning(f"Orphaned moon '{moon.id}' of '{destroyed_primary_id}' has no reachable star; left unchanged.")
                continue
            updates[moon.id] = moon.with_parent(star_id)
            logging.debug(f"Moon '{moon.id}' of destroyed '{destroyed_primary_id}' now orbits star '{star_id}'.")
        return updates

    # ------------------------------------------------------------------
    # Periodic reconciliation
    # ------------------------------------------------------------------
    def check_and_reassign_escaped_moons(self, all_bodies: BodyMap) -> BodyMap:
        """Hands moons that left their parent's Hill sphere to the nearest star.

        Needs a main star for the Hill-sphere reference mass; without one this
        is a no-op. A moon whose parent is gone or inactive is moved at once.
        A moon judged unbound is only moved once it is farther than
        `ESCAPE_HILL_HYSTERESIS` Hill radii from its parent, so moons hovering
        near the boundary do not flap. Moons orbiting a star are left alone.
        No-op in Keplerian mode, where orbits are fixed to their authored parent.
        """
        updated: BodyMap = dict(all_bodies)
        if not self.integrator_mode.is_nbody:
            return updated
        main_star = find_main_star(all_bodies)
        if main_star is None or not main_star.mass_kg:
            return updated
        reference_mass_kg = main_star.mass_kg
        hysteresis = config.Hierarchy.ESCAPE_HILL_HYSTERESIS

        for moon in iter_active(all_bodies, CelestialType.MOON):
            parent_id = moon.current_parent_id
            if parent_id is None:
                continue
            parent = all_bodies.get(parent_id)
            if parent is None or not parent.is_active:
                self._move_to_nearest_star(moon, all_bodies, updated, "parent is gone")
                continue
            if parent.type.is_star:
                continue
            if moon.physics_state is None or parent.physics_state is None:
                # distance() reports the missing state once per pass
                distance(moon, parent)
                continue

            if is_bound(moon, parent, reference_mass_kg, all_bodies):
                continue
            hill = primary_hill_radius(parent, reference_mass_kg)
            separation = distance(moon, parent)
            if separation > hysteresis * hill:
                self._move_to_nearest_star(
                    moon, all_bodies, updated,
                    f"{separation / hill:.2f} Hill radii from '{parent.id}'" if hill > 0 else f"outside '{parent.id}'",
                )
        return updated

    @staticmethod
    def _move_to_nearest_star(moon: CelestialBody, all_bodies: BodyMap, updated: BodyMap, reason: str) -> None:
        star_id = find_nearest_star(moon, all_bodies)
        if star_id is None:
            logging.warning(f"Moon '{moon.id}' escaped ({reason}) but no star is reachable; left unchanged.")
            return
        if star_id == moon.current_parent_id:
            return
        updated[moon.id] = moon.with_parent(star_id)
        logging.info(f"Moon '{moon.id}' escaped ({reason}); now orbits star '{star_id}'.")

    def check_and_reassign_planets_to_proper_stars(self, all_bodies: BodyMap) -> BodyMap:
        """Moves planets to the star that pulls hardest on them, with a hysteresis margin.

        Only meaningful with two or more active stars. A planet switches only
        when the best star's influence exceeds its current parent's by
        `PLANET_INFLUENCE_HYSTERESIS`. No-op in Keplerian mode.
        """
        updated: BodyMap = dict(all_bodies)
        if not self.integrator_mode.is_nbody:
            return updated
        stars = [star for star in iter_active(all_bodies, CelestialType.STAR) if star.physics_state is not None]
        if len(stars) < 2:
            return updated
        hysteresis = config.Hierarchy.PLANET_INFLUENCE_HYSTERESIS

        for planet in iter_active(all_bodies, CelestialType.PLANET, CelestialType.GAS_GIANT):
            if planet.physics_state is None or planet.current_parent_id is None:
                continue

            best = None
            max_influence = 0.0
            for star in stars:
                score = influence(star, planet)
                if score > max_influence:
                    max_influence = score
                    best = star
            if best is None or best.id == planet.current_parent_id:
                continue

            current_parent = all_bodies.get(planet.current_parent_id)
            if current_parent is not None and current_parent.is_active:
                current_influence = influence(current_parent, planet)
            else:
                current_influence = 0.0
            if max_influence > current_influence * hysteresis:
                updated[planet.id] = planet.with_parent(best.id)
                logging.info(
                    f"{planet.type.name} '{planet.id}' moved from '{planet.current_parent_id}' to star '{best.id}' "
                    f"(influence {max_influence:.3g} vs {current_influence:.3g})."
                )
        return updated

    def run_maintenance(self, all_bodies: BodyMap) -> BodyMap:
        """Both periodic passes, escaped moons first."""
        after_moons = self.check_and_reassign_escaped_moons(all_bodies)
        return self.check_and_reassign_planets_to_proper_stars(after_moons)


def find_hierarchy_violations(bodies: BodyMap) -> List[Violation]:
    """Lists every broken hierarchy invariant in `bodies`.

    - An ACTIVE body's live parent must exist, be ACTIVE and not be the body itself.
    - While any ACTIVE star exists, exactly one ACTIVE star is parentless and
      it carries `is_main_star`; no other star carries the flag.
    """
    violations: List[Violation] = []
    for body in iter_active(bodies):
        parent_id = body.current_parent_id
        if parent_id is None:
            continue
        if parent_id == body.id:
            violations.append((body.id, "is its own parent"))
        elif parent_id not in bodies:
            violations.append((body.id, f"parent '{parent_id}' does not exist"))
        elif not bodies[parent_id].is_active:
            violations.append((body.id, f"parent '{parent_id}' is {bodies[parent_id].status.value}"))

    stars = list(iter_active(bodies, CelestialType.STAR))
    if stars:
        roots = [star for star in stars if star.is_parentless]
        if len(roots) != 1:
            violations.append(("<system>", f"expected exactly one parentless star, found {len(roots)}"))
        for star in stars:
            if star.is_parentless and not star.is_main_star:
                violations.append((star.id, "parentless star is not flagged as main star"))
            elif star.is_main_star and not star.is_parentless:
                violations.append((star.id, "main star has a parent"))
    return violations


def assert_hierarchy_well_formed(before: BodyMap, after: BodyMap) -> List[Violation]:
    """Raises `HierarchyError` for violations present in `after` but not in `before`.

    Returns:
        List[Tuple[str, str]]: Violations inherited from `before` that the pass
        could not repair; callers log these rather than fail.
    """
    previous: Set[Violation] = set(find_hierarchy_violations(before))
    current = find_hierarchy_violations(after)
    introduced = [v for v in current if v not in previous]
    if introduced:
        raise HierarchyError(introduced)
    return current


def format_hierarchy(bodies: BodyMap) -> str:
    """Indented parent/child tree of ACTIVE bodies, roots first."""
    children: Dict[Optional[str], List[str]] = {}
    for body in iter_active(bodies):
        parent_id = body.current_parent_id
        if parent_id is not None and (parent_id not in bodies or not bodies[parent_id].is_active):
            parent_id = None
        children.setdefault(parent_id, []).append(body.id)

    lines: List[str] = []

    def walk(body_id: str, depth: int) -> None:
        body = bodies[body_id]
        marker = " *" if body.is_main_star else ""
        lines.append(f"{'  ' * depth}{body.id} ({body.type.name}){marker}")
        for child_id in sorted(children.get(body_id, [])):
            walk(child_id, depth + 1)

    for root_id in sorted(children.get(None, [])):
        walk(root_id, 0)
    return "\n".join(lines)
