import unittest

from boundary import hill_sphere_radius, is_bound
from celestial import CelestialStatus, CelestialType, IntegratorMode, OrbitElements, create_body
from config import AU_M
from diagnostics import limiter
from hierarchy import (
    HierarchyError,
    HierarchyReconciler,
    assert_hierarchy_well_formed,
    find_hierarchy_violations,
    format_hierarchy,
)

SUN_MASS = 2e30


def at_au(body_id, body_type, mass, x_au, y_au=0.0, parent_id=None, is_main_star=False, orbit_au=None):
    orbit = OrbitElements(semi_major_axis_m=orbit_au * AU_M) if orbit_au is not None else None
    return create_body(body_id, body_type, mass, position_m=[x_au * AU_M, y_au * AU_M, 0.0],
                       velocity_mps=[0.0, 0.0, 0.0], parent_id=parent_id, orbit=orbit,
                       is_main_star=is_main_star)


def at_offset(body_id, body_type, mass, anchor_x_au, offset_m, parent_id, speed_mps=0.0):
    return create_body(body_id, body_type, mass, position_m=[anchor_x_au * AU_M + offset_m, 0.0, 0.0],
                       velocity_mps=[0.0, speed_mps, 0.0], parent_id=parent_id)


def body_map(*bodies):
    return {body.id: body for body in bodies}


def destroy(bodies, *body_ids, status=CelestialStatus.DESTROYED):
    result = dict(bodies)
    for body_id in body_ids:
        result[body_id] = result[body_id].with_status(status)
    return result


class TestMainStarLoss(unittest.TestCase):
    """Main star destroyed; stars of 1.5e30 and 1.0e30 kg remain."""

    def setUp(self):
        limiter.reset()
        self.reconciler = HierarchyReconciler(IntegratorMode.VERLET)
        self.bodies = body_map(
            at_au('sun', CelestialType.STAR, SUN_MASS, 0.0, is_main_star=True),
            at_au('heavy', CelestialType.STAR, 1.5e30, 10.0, parent_id='sun'),
            at_au('light', CelestialType.STAR, 1.0e30, -10.0, parent_id='sun'),
            at_au('earth', CelestialType.PLANET, 6e24, 1.0, parent_id='sun', orbit_au=1.0),
            at_offset('luna', CelestialType.MOON, 7e22, 1.0, 3.84e8, parent_id='earth'),
        )

    def test_most_massive_survivor_becomes_main_star(self):
        result = self.reconciler.reassign_orphaned_objects(['sun'], destroy(self.bodies, 'sun'))
        heavy = result['heavy']
        self.assertTrue(heavy.is_main_star)
        self.assertIsNone(heavy.parent_id)
        self.assertIsNone(heavy.current_parent_id)
        self.assertFalse(result['light'].is_main_star)

    def test_bodies_of_old_main_star_are_repointed(self):
        result = self.reconciler.reassign_orphaned_objects(['sun'], destroy(self.bodies, 'sun'))
        self.assertEqual(result['light'].current_parent_id, 'heavy')
        self.assertEqual(result['light'].parent_id, 'heavy')
        # 1.5e30 / 9^2 beats 1.0e30 / 11^2
        self.assertEqual(result['earth'].current_parent_id, 'heavy')
        self.assertEqual(result['luna'].current_parent_id, 'earth')
        self.assertEqual(find_hierarchy_violations(result), [])

    def test_stale_main_star_flags_are_cleared(self):
        self.bodies['light'] = self.bodies['light'].with_main_star_flag(True)
        result = self.reconciler.reassign_orphaned_objects(['sun'], destroy(self.bodies, 'sun'))
        flagged = [body.id for body in result.values() if body.is_active and body.is_main_star]
        self.assertEqual(flagged, ['heavy'])

    def test_input_map_is_not_modified(self):
        before = destroy(self.bodies, 'sun')
        snapshot = dict(before)
        self.reconciler.reassign_orphaned_objects(['sun'], before)
        self.assertEqual(before, snapshot)
        self.assertFalse(before['heavy'].is_main_star)

    def test_no_star_left_is_reported_and_map_kept(self):
        only_sun = body_map(self.bodies['sun'], self.bodies['earth'], self.bodies['luna'])
        destroyed = destroy(only_sun, 'sun')
        with self.assertLogs(level='CRITICAL'):
            result = self.reconciler.reassign_orphaned_objects(['sun'], destroyed)
        self.assertEqual(result, destroyed)

    def test_keplerian_mode_does_not_promote(self):
        reconciler = HierarchyReconciler(IntegratorMode.KEPLERIAN)
        destroyed = destroy(self.bodies, 'sun')
        with self.assertLogs(level='CRITICAL'):
            result = reconciler.reassign_orphaned_objects(['sun'], destroyed)
        self.assertEqual(result, destroyed)
        self.assertFalse(any(body.is_main_star for body in result.values() if body.is_active))

    def test_idempotent_without_new_destruction(self):
        first = self.reconciler.reassign_orphaned_objects(['sun'], destroy(self.bodies, 'sun'))
        second = self.reconciler.reassign_orphaned_objects([], first)
        self.assertEqual(second, first)
        for body_id in first:
            self.assertIs(second[body_id], first[body_id])

    def test_repeating_the_same_destruction_changes_nothing(self):
        first = self.reconciler.reassign_orphaned_objects(['sun'], destroy(self.bodies, 'sun'))
        again = self.reconciler.reassign_orphaned_objects(['sun'], first)
        self.assertEqual(again, first)


class TestStarLossPlanets(unittest.TestCase):

    def setUp(self):
        limiter.reset()
        self.bodies = body_map(
            at_au('sun', CelestialType.STAR, SUN_MASS, 0.0, is_main_star=True),
            at_au('companion', CelestialType.STAR, 1e30, 40.0, parent_id='sun'),
            at_au('twin', CelestialType.STAR, 1e30, 30.0, 5.0, parent_id='sun'),
            at_au('tatooine', CelestialType.PLANET, 6e24, 39.0, parent_id='companion', orbit_au=1.0),
        )

    def test_planet_of_destroyed_star_gets_best_parent(self):
        reconciler = HierarchyReconciler(IntegratorMode.SYMPLECTIC)
        result = reconciler.reassign_orphaned_objects(['companion'], destroy(self.bodies, 'companion'))
        # twin: 1e30 / ~(9^2 + 5^2) outweighs sun: 2e30 / 39^2
        self.assertEqual(result['tatooine'].current_parent_id, 'twin')
        self.assertEqual(result['tatooine'].parent_id, 'twin')
        self.assertTrue(result['sun'].is_main_star)
        self.assertEqual(find_hierarchy_violations(result), [])

    def test_planet_without_viable_parent_is_flagged_not_deleted(self):
        reconciler = HierarchyReconciler(IntegratorMode.KEPLERIAN)
        with self.assertLogs(level='WARNING') as logs:
            result = reconciler.reassign_orphaned_objects(['companion'], destroy(self.bodies, 'companion'))
        planet = result['tatooine']
        self.assertTrue(planet.is_active)
        self.assertIsNone(planet.current_parent_id)
        self.assertEqual(planet.parent_id, 'companion')
        self.assertTrue(any('tatooine' in line for line in logs.output))
        self.assertEqual(find_hierarchy_violations(result), [])


class TestOrphanedMoons(unittest.TestCase):

    def setUp(self):
        limiter.reset()
        self.reconciler = HierarchyReconciler(IntegratorMode.VERLET)
        self.sun = at_au('sun', CelestialType.STAR, SUN_MASS, 0.0, is_main_star=True)
        self.far_star = at_au('far', CelestialType.STAR, 1e30, 50.0, parent_id='sun')
        self.planet = at_au('giant', CelestialType.GAS_GIANT, 1.9e27, 5.0, parent_id='sun', orbit_au=5.0)

    def test_largest_moon_captures_slow_neighbour(self):
        big = at_offset('big', CelestialType.MOON, 1.5e23, 5.0, 1.0e9, 'giant')
        near = at_offset('near', CelestialType.MOON, 5e22, 5.0, 1.1e9, 'giant', speed_mps=100.0)
        distant = at_offset('distant', CelestialType.MOON, 9e22, 5.0, -2.0e9, 'giant')
        bodies = destroy(body_map(self.sun, self.far_star, self.planet, big, near, distant), 'giant')

        result = self.reconciler.reassign_orphaned_objects(['giant'], bodies)
        self.assertEqual(result['near'].current_parent_id, 'big')
        self.assertEqual(result['big'].current_parent_id, 'sun')
        self.assertEqual(result['distant'].current_parent_id, 'sun')
        self.assertEqual(find_hierarchy_violations(result), [])

    def test_fast_neighbour_goes_to_its_own_star(self):
        big = at_offset('big', CelestialType.MOON, 1.5e23, 5.0, 1.0e9, 'giant')
        fast = at_offset('fast', CelestialType.MOON, 5e22, 5.0, 1.1e9, 'giant', speed_mps=5000.0)
        bodies = destroy(body_map(self.sun, self.far_star, self.planet, big, fast), 'giant')
        updates = self.reconciler.reassign_orphaned_moons([fast, big], bodies, 'giant')
        self.assertEqual(updates['fast'].current_parent_id, 'sun')
        self.assertEqual(updates['big'].current_parent_id, 'sun')

    def test_single_moon_goes_to_nearest_star(self):
        lone = at_au('lone', CelestialType.MOON, 7e22, 49.0, parent_id='giant')
        bodies = destroy(body_map(self.sun, self.far_star, self.planet, lone), 'giant')
        updates = self.reconciler.reassign_orphaned_moons([lone], bodies, 'giant')
        self.assertEqual(updates['lone'].current_parent_id, 'far')

    def test_no_moons_is_a_no_op(self):
        self.assertEqual(self.reconciler.reassign_orphaned_moons([], body_map(self.sun), 'giant'), {})

    def test_asteroid_field_of_destroyed_planet_is_rehomed(self):
        field = at_offset('belt', CelestialType.ASTEROID_FIELD, 1e20, 5.0, 1.0e9, 'giant')
        bodies = destroy(body_map(self.sun, self.far_star, self.planet, field), 'giant')
        result = self.reconciler.reassign_orphaned_objects(['giant'], bodies)
        self.assertEqual(result['belt'].current_parent_id, 'sun')
        self.assertEqual(find_hierarchy_violations(result), [])


class TestEscapedMoons(unittest.TestCase):
    """Planet has lost mass; its moon hovers around the shrunk Hill sphere."""

    def setUp(self):
        limiter.reset()
        self.reconciler = HierarchyReconciler(IntegratorMode.VERLET)
        self.sun = at_au('sun', CelestialType.STAR, SUN_MASS, 0.0, is_main_star=True)
        self.planet = at_au('planet', CelestialType.PLANET, 6e24 / 8, 1.0, parent_id='sun', orbit_au=1.0)
        self.hill = hill_sphere_radius(self.planet.mass_kg, AU_M, SUN_MASS)

    def bodies_with_moon_at(self, hill_multiple):
        moon = at_offset('moon', CelestialType.MOON, 7e22 / 8, 1.0, hill_multiple * self.hill, 'planet')
        return body_map(self.sun, self.planet, moon)

    def test_just_outside_hill_sphere_is_not_reassigned(self):
        bodies = self.bodies_with_moon_at(1.0001)
        self.assertFalse(is_bound(bodies['moon'], self.planet, SUN_MASS, bodies))
        result = self.reconciler.check_and_reassign_escaped_moons(bodies)
        self.assertEqual(result['moon'].current_parent_id, 'planet')

    def test_beyond_twice_hill_radius_is_reassigned(self):
        result = self.reconciler.check_and_reassign_escaped_moons(self.bodies_with_moon_at(2.05))
        self.assertEqual(result['moon'].current_parent_id, 'sun')
        self.assertEqual(result['moon'].parent_id, 'sun')

    def test_jitter_between_one_and_a_half_and_two_hill_radii_does_not_flap(self):
        parents = []
        for multiple in (1.5, 1.9, 1.6, 1.99, 1.7, 1.95, 1.5):
            result = self.reconciler.check_and_reassign_escaped_moons(self.bodies_with_moon_at(multiple))
            parents.append(result['moon'].current_parent_id)
        self.assertEqual(set(parents), {'planet'})

    def test_bound_moon_stays(self):
        result = self.reconciler.check_and_reassign_escaped_moons(self.bodies_with_moon_at(0.1))
        self.assertEqual(result['moon'].current_parent_id, 'planet')

    def test_moon_of_inactive_parent_moves_immediately(self):
        bodies = destroy(self.bodies_with_moon_at(0.3), 'planet')
        result = self.reconciler.check_and_reassign_escaped_moons(bodies)
        self.assertEqual(result['moon'].current_parent_id, 'sun')

    def test_moon_of_missing_parent_moves_immediately(self):
        bodies = self.bodies_with_moon_at(0.3)
        del bodies['planet']
        result = self.reconciler.check_and_reassign_escaped_moons(bodies)
        self.assertEqual(result['moon'].current_parent_id, 'sun')

    def test_no_main_star_is_a_no_op(self):
        bodies = destroy(self.bodies_with_moon_at(3.0), 'sun')
        result = self.reconciler.check_and_reassign_escaped_moons(bodies)
        self.assertEqual(result, bodies)

    def test_moon_without_physics_is_skipped(self):
        bodies = self.bodies_with_moon_at(3.0)
        bodies['moon'] = create_body('moon', CelestialType.MOON, 1e22, parent_id='planet')
        with self.assertLogs('hierarchy.numerics', level='WARNING'):
            result = self.reconciler.check_and_reassign_escaped_moons(bodies)
        self.assertEqual(result['moon'].current_parent_id, 'planet')

    def test_keplerian_mode_is_a_no_op(self):
        reconciler = HierarchyReconciler(IntegratorMode.KEPLERIAN)
        bodies = self.bodies_with_moon_at(3.0)
        bodies['planet2'] = at_au('planet2', CelestialType.PLANET, 6e24, -1.0, parent_id='sun')
        bodies = destroy(bodies, 'planet2')
        bodies['orphan'] = at_offset('orphan', CelestialType.MOON, 1e20, -1.0, 1e6, 'planet2')
        result = reconciler.check_and_reassign_escaped_moons(bodies)
        self.assertEqual(result['moon'].current_parent_id, 'planet')
        self.assertEqual(result['orphan'].current_parent_id, 'planet2')


class TestPlanetsToProperStars(unittest.TestCase):
    """Stars of 2e30 and 1e30 kg, 5 AU apart on the x axis."""

    def setUp(self):
        limiter.reset()
        self.reconciler = HierarchyReconciler(IntegratorMode.VERLET)
        self.large = at_au('large', CelestialType.STAR, 2e30, 0.0, is_main_star=True)
        self.small = at_au('small', CelestialType.STAR, 1e30, 5.0, parent_id='large')

    def with_planet(self, x_au, parent_id):
        planet = at_au('planet', CelestialType.PLANET, 6e24, x_au, parent_id=parent_id)
        return body_map(self.large, self.small, planet)

    def test_switches_when_margin_exceeds_hysteresis(self):
        # Large/small influence ratio at 2.5 AU: 2.0
        result = self.reconciler.check_and_reassign_planets_to_proper_stars(self.with_planet(2.5, 'small'))
        self.assertEqual(result['planet'].current_parent_id, 'large')

    def test_keeps_parent_within_hysteresis_band(self):
        # Ratio at 2.8 AU: ~1.24, below 1.5
        result = self.reconciler.check_and_reassign_planets_to_proper_stars(self.with_planet(2.8, 'small'))
        self.assertEqual(result['planet'].current_parent_id, 'small')
        # Ratio small/large at 3.0 AU: 1.125
        result = self.reconciler.check_and_reassign_planets_to_proper_stars(self.with_planet(3.0, 'large'))
        self.assertEqual(result['planet'].current_parent_id, 'large')

    def test_no_flapping_across_repeated_passes(self):
        bodies = self.with_planet(2.8, 'small')
        for _ in range(3):
            bodies = self.reconciler.check_and_reassign_planets_to_proper_stars(bodies)
            self.assertEqual(bodies['planet'].current_parent_id, 'small')

    def test_single_star_is_a_no_op(self):
        bodies = destroy(self.with_planet(4.9, 'large'), 'small')
        self.assertEqual(self.reconciler.check_and_reassign_planets_to_proper_stars(bodies), bodies)

    def test_keplerian_mode_is_a_no_op(self):
        reconciler = HierarchyReconciler(IntegratorMode.KEPLERIAN)
        bodies = self.with_planet(4.9, 'large')
        self.assertEqual(reconciler.check_and_reassign_planets_to_proper_stars(bodies), bodies)

    def test_run_maintenance_runs_both_passes(self):
        bodies = self.with_planet(2.5, 'small')
        bodies['moon'] = at_offset('moon', CelestialType.MOON, 1e22, 2.5, -1e3, 'gone')
        result = self.reconciler.run_maintenance(bodies)
        self.assertEqual(result['planet'].current_parent_id, 'large')
        # Missing parent: nearest star
        self.assertEqual(result['moon'].current_parent_id, 'large')


class TestWellFormedness(unittest.TestCase):

    def setUp(self):
        self.sun = at_au('sun', CelestialType.STAR, SUN_MASS, 0.0, is_main_star=True)
        self.earth = at_au('earth', CelestialType.PLANET, 6e24, 1.0, parent_id='sun')

    def test_clean_hierarchy(self):
        self.assertEqual(find_hierarchy_violations(body_map(self.sun, self.earth)), [])

    def test_dangling_self_and_inactive_parents(self):
        bodies = body_map(
            self.sun,
            at_au('a', CelestialType.PLANET, 1.0, 2.0, parent_id='nowhere'),
            at_au('b', CelestialType.PLANET, 1.0, 3.0, parent_id='b'),
            at_au('c', CelestialType.MOON, 1.0, 3.0, parent_id='dead'),
            at_au('dead', CelestialType.PLANET, 1.0, 3.0, parent_id='sun').with_status(CelestialStatus.DESTROYED),
        )
        offenders = {body_id for body_id, _ in find_hierarchy_violations(bodies)}
        self.assertEqual(offenders, {'a', 'b', 'c'})

    def test_exactly_one_flagged_root_star(self):
        rogue = at_au('rogue', CelestialType.STAR, 1e30, 50.0)
        offenders = {body_id for body_id, _ in find_hierarchy_violations(body_map(self.sun, rogue))}
        self.assertIn('rogue', offenders)
        unflagged = at_au('sun', CelestialType.STAR, SUN_MASS, 0.0)
        self.assertTrue(find_hierarchy_violations(body_map(unflagged, self.earth)))

    def test_introduced_violation_raises(self):
        before = body_map(self.sun, self.earth)
        after = dict(before, earth=self.earth.with_parent('earth'))
        with self.assertRaises(HierarchyError) as ctx:
            assert_hierarchy_well_formed(before, after)
        self.assertEqual([body_id for body_id, _ in ctx.exception.violations], ['earth'])

    def test_inherited_violation_is_returned_not_raised(self):
        broken = body_map(self.sun, self.earth.with_parent('nowhere'))
        remaining = assert_hierarchy_well_formed(broken, dict(broken))
        self.assertEqual(len(remaining), 1)

    def test_format_hierarchy(self):
        moon = at_au('moon', CelestialType.MOON, 7e22, 1.001, parent_id='earth')
        text = format_hierarchy(body_map(self.sun, self.earth, moon))
        self.assertEqual(text.splitlines(), ['sun (STAR) *', '  earth (PLANET)', '    moon (MOON)'])


if __name__ == '__main__':
    unittest.main(argv=['first-arg-is-ignored'], exit=False)
