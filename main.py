# main.py
import argparse # Command line options for the demo scenario
import cProfile
import logging
from typing import List, Mapping

from celestial import DestructionEvent, PhysicsState, SimulationStepResult
from config import config, ConfigurationError # Use the global config instance
from destruction import mutual_destruction_events
from hierarchy import format_hierarchy
from hierarchy_service import OrbitalHierarchyService
from seed_system import build_seed_system


def drift_states(bodies: Mapping, dt_s: float) -> List[PhysicsState]:
    """Straight-line drift of every ACTIVE body over `dt_s`.

    Stands in for the external N-body integrator so the demo can feed the
    service plausible states; it applies no forces.
    """
    states = []
    for body in bodies.values():
        if not body.is_active or body.physics_state is None:
            continue
        state = body.physics_state
        states.append(PhysicsState(
            body_id=body.id,
            position_m=state.position_m + state.velocity_mps * dt_s,
            velocity_mps=state.velocity_mps,
        ))
    return states


def destruction_events_for(destroy_ids: List[str], survivor_id: str) -> List[DestructionEvent]:
    if survivor_id == config.Destruction.MUTUAL_DESTRUCTION_ID and len(destroy_ids) == 2:
        return list(mutual_destruction_events(destroy_ids[0], destroy_ids[1]))
    return [DestructionEvent(destroyed_id=body_id, survivor_id=survivor_id) for body_id in destroy_ids]


def run_scenario(ticks: int, destroy_ids: List[str], destroy_at: int, survivor_id: str,
                 integrator: str, dt_s: float, maintenance_interval: int) -> OrbitalHierarchyService:
    """Runs the seed system for `ticks` ticks, destroying `destroy_ids` at tick `destroy_at`."""
    service = OrbitalHierarchyService(build_seed_system(), integrator_mode=integrator,
                                      maintenance_interval=maintenance_interval)
    logging.info(f"Initial hierarchy:\n{format_hierarchy(service.bodies)}")

    unknown = [body_id for body_id in destroy_ids if body_id not in service.bodies]
    if unknown:
        logging.warning(f"Ignoring unknown ids in --destroy: {unknown}")
        destroy_ids = [body_id for body_id in destroy_ids if body_id not in unknown]

    for tick in range(ticks):
        destroyed = destroy_ids if tick == destroy_at else []
        result = SimulationStepResult(
            states=drift_states(service.bodies, dt_s),
            destroyed_ids=destroyed,
            destruction_events=destruction_events_for(destroyed, survivor_id) if destroyed else (),
        )
        report = service.step(result)
        if report.transitions or report.reassigned:
            transitions = {body_id: status.value for body_id, status in report.transitions.items()}
            logging.info(f"Tick {report.tick}: transitions={transitions}, reassigned={report.reassigned}")
        if report.abandoned:
            logging.warning(f"Tick {report.tick}: a reconciliation pass was abandoned.")

    logging.info(f"Final hierarchy after {service.tick_count} ticks:\n{format_hierarchy(service.bodies)}")
    if service.anchor_lost:
        logging.critical("Scenario ended without a system anchor.")
    return service


if __name__ == "__main__":
    """Demo entry point for the orbital hierarchy engine.

    Builds the configured seed system, drifts it for a few ticks, destroys the
    requested bodies at one tick and logs the hierarchy before and after.
    `--profile` wraps the run in `cProfile` and saves `hierarchy_profile.prof`.
    """
    parser = argparse.ArgumentParser(description="Run an orbital hierarchy reconciliation scenario.")
    parser.add_argument("--ticks", type=int, default=5, help="Number of ticks to simulate.")
    parser.add_argument("--destroy", nargs="*", default=["sun"], help="Body ids destroyed during the run.")
    parser.add_argument("--destroy-at", type=int, default=1, help="Tick at which the destruction happens.")
    parser.add_argument(
        "--survivor",
        default=config.Destruction.MUTUAL_DESTRUCTION_ID,
        help="Survivor id reported by the destruction events (default: mutual destruction)."
    )
    parser.add_argument(
        "--integrator",
        choices=["keplerian", "symplectic", "verlet"],
        default=config.Physics.INTEGRATION_METHOD,
        help="Integrator mode reported to the engine."
    )
    parser.add_argument("--dt", type=float, default=3600.0, help="Drift time step in seconds.")
    parser.add_argument("--maintenance-interval", type=int, default=None,
                        help="Ticks between periodic passes (default from config).")
    parser.add_argument(
        "--profile",
        action="store_true",
        help="Enable profiling. Statistics will be saved to 'hierarchy_profile.prof'."
    )
    args = parser.parse_args()

    profiler = None
    if args.profile:
        profiler = cProfile.Profile()
        profiler.enable()
        logging.info("cProfile profiling enabled. Output will be saved to hierarchy_profile.prof upon completion.")

    try:
        run_scenario(args.ticks, args.destroy, args.destroy_at, args.survivor,
                     args.integrator, args.dt, args.maintenance_interval)
    except ConfigurationError as e_config_main:
        logging.critical(f"Scenario could not run due to a ConfigurationError: {e_config_main}", exc_info=True)
        print(f"FATAL CONFIGURATION ERROR: {e_config_main}. Check logs for details.")
    finally:
        if profiler:
            profiler.disable()
            stats_file = "hierarchy_profile.prof"
            try:
                profiler.dump_stats(stats_file)
                logging.info(f"Profiling data successfully saved to {stats_file}")
            except OSError as e_profile_dump:
                logging.error(f"Failed to save profiling data to {stats_file}: {e_profile_dump}", exc_info=True)
        logging.info("Hierarchy scenario terminated.")
