# config.py
import logging

# Configure basic logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(module)s - %(message)s')

# Fundamental Physical Constants (used across different config sections)
GRAVITATIONAL_CONSTANT_M3_KG_S2 = 6.6743e-11  # G in m^3 kg^-1 s^-2
AU_M = 1.496e11  # Astronomical Unit in meters, used to keep influence magnitudes numerically stable
EARTH_MASS_KG = 5.97237e24
SOLAR_MASS_KG = 1.98847e30

# Integrator modes the reconciliation engine understands
INTEGRATOR_KEPLERIAN = "keplerian"
INTEGRATOR_SYMPLECTIC = "symplectic"
INTEGRATOR_VERLET = "verlet"
SUPPORTED_INTEGRATORS = (INTEGRATOR_KEPLERIAN, INTEGRATOR_SYMPLECTIC, INTEGRATOR_VERLET)

class ConfigurationError(Exception):
    """Custom exception for hierarchy engine configuration errors.

    Raised by `SimulationConfig.validate()` when settings are invalid,
    inconsistent, or missing, which would make the reconciliation engine
    produce meaningless hierarchies (e.g. a hysteresis factor below 1.0 would
    let a moon flap between parents every maintenance pass).

    Attributes:
        message (str): A human-readable explanation of the configuration error.
                       This is the first argument passed to the exception constructor.
    """
    pass

class SimulationConfig:
    """Centralized, hierarchical configuration for the Orbital Hierarchy Engine.

    Parameters are grouped in nested static classes (`SimulationConfig.Physics`,
    `SimulationConfig.Hierarchy`, `SimulationConfig.Destruction`, ...). An
    instance named `config` is created at the end of this module, making it
    globally available via `from config import config`.

    The constructor invokes `validate()`, which checks ranges and
    interdependencies and raises `ConfigurationError` on any issue. Tests and
    callers that tweak a section should call `config.validate()` again
    afterwards.

    Example Usage:
        >>> from config import config
        >>> print(f"Integrator: {config.Physics.INTEGRATION_METHOD}")
        >>> print(f"Maintenance every {config.Hierarchy.MAINTENANCE_INTERVAL_TICKS} ticks")
    """

    # --- Physics Configuration ---
    class Physics:
        """Physical constants and the active integrator mode.

        Attributes:
            GRAVITATIONAL_CONSTANT (float): G in SI units (m^3 kg^-1 s^-2).
            AU_M (float): Length of one Astronomical Unit in meters. Distances
                          are converted to AU before computing influence scores.
            INTEGRATION_METHOD (str): Active integrator mode reported by the
                                      external N-body integrator. Supported:
                                      "keplerian", "symplectic", "verlet".
                                      Only the coupled N-body modes (symplectic,
                                      verlet) allow live parent recomputation.
        """
        GRAVITATIONAL_CONSTANT = GRAVITATIONAL_CONSTANT_M3_KG_S2
        AU_M = AU_M
        INTEGRATION_METHOD = INTEGRATOR_VERLET

    # --- Hierarchy Reconciliation Configuration ---
    class Hierarchy:
        """Thresholds and cadence for hierarchy reconciliation.

        Attributes:
            ESCAPE_HILL_HYSTERESIS (float): A moon judged unbound is only handed
                to a star once its distance exceeds this multiple of the Hill radius.
            PLANET_INFLUENCE_HYSTERESIS (float): A planet switches star only if the
                best star's influence exceeds the current parent's by this factor.
            STAR_DOMINANCE_FACTOR (float): A moon counts as unbound when any star
                pulls on it harder than this multiple of its planet's pull.
            MOON_DECAY_THRESHOLD_AU (float): Non-star candidates farther than this
                from a moon-like target have their influence exponentially damped.
            MOON_DECAY_RATE_PER_AU (float): Exponent rate of that damping, i.e.
                influence *= exp(-rate * distance_au).
            MAINTENANCE_INTERVAL_TICKS (int): Periodic passes (escaped moons,
                mis-parented planets) run every N ticks, starting at tick 0.
            FALLBACK_STAR_MASS_KG (float): Reference mass used when capturing
                orphaned moons and no active star mass is known.
        """
        ESCAPE_HILL_HYSTERESIS = 2.0
        PLANET_INFLUENCE_HYSTERESIS = 1.5
        STAR_DOMINANCE_FACTOR = 3.0
        MOON_DECAY_THRESHOLD_AU = 0.1
        MOON_DECAY_RATE_PER_AU = 10.0
        MAINTENANCE_INTERVAL_TICKS = 1000
        FALLBACK_STAR_MASS_KG = 1e30

    # --- Destruction Configuration ---
    class Destruction:
        """Conventions shared with the integrator's destruction events.

        Attributes:
            RING_SYSTEM_ID_PREFIX (str): Ring systems are looked up by the id
                `<prefix><owner id>`, e.g. "ring-system-saturn".
            MUTUAL_DESTRUCTION_ID (str): Sentinel survivor id emitted when both
                colliding bodies were destroyed.
        """
        RING_SYSTEM_ID_PREFIX = "ring-system-"
        MUTUAL_DESTRUCTION_ID = "MUTUAL_DESTRUCTION"

    # --- Demo Solar System Configuration ---
    class SolarSystem:
        """Seed data for the demo system built by `seed_system.build_seed_system()`.

        Each entry of `BODY_DATA` is keyed by body id and holds:
            type (str): A `CelestialType` name.
            mass_kg (float), radius_km (float)
            semi_major_axis_au (float): Distance from the central body; 0 for roots.
            central_body (Optional[str]): Authored parent id, None for the main star.
            has_rings (bool, optional): Also create `ring-system-<id>`.
        """
        BODY_DATA = {
            'sun': {
                'type': 'STAR', 'mass_kg': SOLAR_MASS_KG, 'radius_km': 695700.0,
                'semi_major_axis_au': 0.0, 'central_body': None
            },
            'companion': {
                'type': 'STAR', 'mass_kg': 0.5 * SOLAR_MASS_KG, 'radius_km': 400000.0,
                'semi_major_axis_au': 40.0, 'central_body': 'sun'
            },
            'earth': {
                'type': 'PLANET', 'mass_kg': EARTH_MASS_KG, 'radius_km': 6371.0,
                'semi_major_axis_au': 1.00000261, 'central_body': 'sun'
            },
            'moon': {
                'type': 'MOON', 'mass_kg': 0.07346e24, 'radius_km': 1737.4,
                'semi_major_axis_au': 0.00257, 'central_body': 'earth'
            },
            'jupiter': {
                'type': 'GAS_GIANT', 'mass_kg': 1898.19e24, 'radius_km': 69911.0,
                'semi_major_axis_au': 5.2044, 'central_body': 'sun'
            },
            'io': {
                'type': 'MOON', 'mass_kg': 0.089319e24, 'radius_km': 1821.6,
                'semi_major_axis_au': 0.002819, 'central_body': 'jupiter'
            },
            'europa': {
                'type': 'MOON', 'mass_kg': 0.04800e24, 'radius_km': 1560.8,
                'semi_major_axis_au': 0.004486, 'central_body': 'jupiter'
            },
            'ganymede': {
                'type': 'MOON', 'mass_kg': 0.14819e24, 'radius_km': 2634.1,
                'semi_major_axis_au': 0.007155, 'central_body': 'jupiter'
            },
            'saturn': {
                'type': 'GAS_GIANT', 'mass_kg': 568.34e24, 'radius_km': 58232.0,
                'semi_major_axis_au': 9.5826, 'central_body': 'sun', 'has_rings': True
            },
            'titan': {
                'type': 'MOON', 'mass_kg': 0.13452e24, 'radius_km': 2574.7,
                'semi_major_axis_au': 0.008168, 'central_body': 'saturn'
            },
        }

    # --- Debug Configuration ---
    class Debug:
        """Configuration for debugging features and logging verbosity.

        Attributes:
            HIERARCHY_REPORTS (bool): Log a parent/child dump after every
                                      reconciliation pass that changed something.
            CONFIG_VALIDATION (bool): If True, logs a message once validation passes.
        """
        HIERARCHY_REPORTS = False
        CONFIG_VALIDATION = True

    def __init__(self):
        """Initializes the `SimulationConfig` instance and validates it.

        Raises:
            ConfigurationError: If `self.validate()` detects any issues.
        """
        self.validate()

    def validate(self):
        """Performs validation of all hierarchy engine settings.

        -   **Physics**: G and AU must be positive; the integrator mode must be
            one of `SUPPORTED_INTEGRATORS`.
        -   **Hierarchy**: hysteresis factors must be >= 1.0 (otherwise they
            would encourage rather than damp flapping), decay settings
            non-negative, cadence positive.
        -   **Destruction**: id conventions must be non-empty strings.
        -   **SolarSystem**: exactly one root star; every `central_body`
            reference must exist and must not be self-referential.

        Raises:
            ConfigurationError: If any configuration setting is found to be invalid.
        """
        # Physics validation
        if self.Physics.GRAVITATIONAL_CONSTANT <= 0:
            raise ConfigurationError("Physics.GRAVITATIONAL_CONSTANT must be positive.")
        if self.Physics.AU_M <= 0:
            raise ConfigurationError("Physics.AU_M must be positive.")
        if self.Physics.INTEGRATION_METHOD not in SUPPORTED_INTEGRATORS:
            raise ConfigurationError(
                f"Physics.INTEGRATION_METHOD '{self.Physics.INTEGRATION_METHOD}' is not supported. "
                f"Expected one of {SUPPORTED_INTEGRATORS}."
            )

        # Hierarchy validation
        if self.Hierarchy.ESCAPE_HILL_HYSTERESIS < 1.0:
            raise ConfigurationError(
                f"Hierarchy.ESCAPE_HILL_HYSTERESIS ({self.Hierarchy.ESCAPE_HILL_HYSTERESIS}) must be >= 1.0."
            )
        if self.Hierarchy.PLANET_INFLUENCE_HYSTERESIS < 1.0:
            raise ConfigurationError(
                f"Hierarchy.PLANET_INFLUENCE_HYSTERESIS ({self.Hierarchy.PLANET_INFLUENCE_HYSTERESIS}) must be >= 1.0."
            )
        if self.Hierarchy.STAR_DOMINANCE_FACTOR <= 0:
            raise ConfigurationError("Hierarchy.STAR_DOMINANCE_FACTOR must be positive.")
        if self.Hierarchy.MOON_DECAY_THRESHOLD_AU < 0 or self.Hierarchy.MOON_DECAY_RATE_PER_AU < 0:
            raise ConfigurationError("Hierarchy moon decay threshold and rate must be non-negative.")
        if not isinstance(self.Hierarchy.MAINTENANCE_INTERVAL_TICKS, int) or self.Hierarchy.MAINTENANCE_INTERVAL_TICKS <= 0:
            raise ConfigurationError("Hierarchy.MAINTENANCE_INTERVAL_TICKS must be a positive integer.")
        if self.Hierarchy.FALLBACK_STAR_MASS_KG <= 0:
            raise ConfigurationError("Hierarchy.FALLBACK_STAR_MASS_KG must be positive.")

        # Destruction validation
        if not self.Destruction.RING_SYSTEM_ID_PREFIX or not self.Destruction.MUTUAL_DESTRUCTION_ID:
            raise ConfigurationError("Destruction id conventions must be non-empty strings.")

        # Solar System Data Validation
        roots = [name for name, data in self.SolarSystem.BODY_DATA.items() if data.get('central_body') is None]
        if len(roots) != 1:
            raise ConfigurationError(f"SolarSystem.BODY_DATA must have exactly one root body, found {roots}.")
        if self.SolarSystem.BODY_DATA[roots[0]].get('type') != 'STAR':
            raise ConfigurationError(f"Root body '{roots[0]}' must be a STAR.")

        for name, data in self.SolarSystem.BODY_DATA.items():
            if data.get('mass_kg', -1.0) < 0:
                raise ConfigurationError(f"Mass of celestial body '{name}' cannot be negative.")
            if data.get('radius_km', -1.0) < 0:
                raise ConfigurationError(f"Radius of celestial body '{name}' cannot be negative.")
            if data.get('semi_major_axis_au', 0.0) < 0:
                raise ConfigurationError(f"Semi-major axis of celestial body '{name}' cannot be negative.")

            central_body_name = data.get('central_body')
            if central_body_name is not None:
                if central_body_name not in self.SolarSystem.BODY_DATA:
                    raise ConfigurationError(f"Central body '{central_body_name}' for '{name}' not found in BODY_DATA.")
                if central_body_name == name:
                    raise ConfigurationError(f"Celestial body '{name}' cannot orbit itself.")

        if self.Debug.CONFIG_VALIDATION:
            logging.info("Configuration validated successfully.")


# --- Instantiate the configuration ---
# This makes the config object available for import and runs validation.
# e.g., from config import config
try:
    config = SimulationConfig()
except ConfigurationError as e:
    logging.error(f"FATAL CONFIGURATION ERROR: {e}", exc_info=True)
    raise
