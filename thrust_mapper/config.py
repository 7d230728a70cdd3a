"""
Startup configuration loaded from YAML.

Example file:

    vehicle:
      mass: 48.8428
      inertia: [0.55649783, 1.89075467, 1.96057706]
      max_thrust: 18.0
    geometry:
      source: tf
      base_frame: base_link
      lookup_timeout: 10.0
    solver:
      backend: trf
      max_iterations: 100
"""
import os
from dataclasses import dataclass, field
from typing import Dict, Optional, Sequence

import yaml

from thrust_mapper.allocation import DEFAULT_MAX_ITERATIONS, DEFAULT_SOLVER, SOLVER_BACKENDS
from thrust_mapper.errors import InvalidConfiguration
from thrust_mapper.geometry import (
    DEFAULT_BASE_FRAME,
    DEFAULT_FRAME_SUFFIX,
    DEFAULT_LOOKUP_TIMEOUT,
    GeometryModel,
)
from thrust_mapper.vehicle import VehicleModel

GEOMETRY_SOURCES = ('tf', 'static')


@dataclass
class MapperConfig:
    """Everything needed to build the allocation problem at startup."""
    vehicle: VehicleModel = field(default_factory=VehicleModel.reference)
    geometry_source: str = 'tf'
    base_frame: str = DEFAULT_BASE_FRAME
    frame_suffix: str = DEFAULT_FRAME_SUFFIX
    lookup_timeout: float = DEFAULT_LOOKUP_TIMEOUT
    static_positions: Optional[Dict[str, Sequence[float]]] = None
    solver: str = DEFAULT_SOLVER
    max_iterations: int = DEFAULT_MAX_ITERATIONS

    def __post_init__(self):
        if self.geometry_source not in GEOMETRY_SOURCES:
            raise InvalidConfiguration(
                f"geometry source must be one of {GEOMETRY_SOURCES}, got '{self.geometry_source}'"
            )
        if self.geometry_source == 'static' and not self.static_positions:
            raise InvalidConfiguration("static geometry source requires 'positions'")
        if self.lookup_timeout <= 0.0:
            raise InvalidConfiguration("lookup_timeout must be positive")
        if self.solver not in SOLVER_BACKENDS:
            raise InvalidConfiguration(
                f"Unknown solver '{self.solver}', expected one of {sorted(SOLVER_BACKENDS)}"
            )
        if self.max_iterations <= 0:
            raise InvalidConfiguration("max_iterations must be positive")

    def static_geometry(self) -> GeometryModel:
        """Geometry from the configured positions (static source only)."""
        if not self.static_positions:
            raise InvalidConfiguration("No static thruster positions configured")
        return GeometryModel.from_mapping(self.static_positions)


def _vehicle_from_dict(settings: dict) -> VehicleModel:
    reference = VehicleModel.reference()
    inertia = settings.get('inertia', [reference.Ix, reference.Iy, reference.Iz])
    if not isinstance(inertia, (list, tuple)) or len(inertia) != 3:
        raise InvalidConfiguration("vehicle.inertia must be [Ix, Iy, Iz]")

    max_thrust = settings.get('max_thrust', reference.max_thrust)
    # A single bound magnitude is symmetric unless min_thrust is given
    min_thrust = settings.get('min_thrust', -abs(float(max_thrust)))

    return VehicleModel(
        mass=settings.get('mass', reference.mass),
        Ix=inertia[0],
        Iy=inertia[1],
        Iz=inertia[2],
        min_thrust=min_thrust,
        max_thrust=max_thrust,
    )


def config_from_dict(data: dict) -> MapperConfig:
    """
    Build a MapperConfig from parsed YAML. Missing keys take reference values.

    Raises:
        InvalidConfiguration: If a section is malformed
    """
    data = data or {}
    if not isinstance(data, dict):
        raise InvalidConfiguration("Configuration root must be a mapping")

    sections = {}
    for key in ('vehicle', 'geometry', 'solver'):
        section = data.get(key) or {}
        if not isinstance(section, dict):
            raise InvalidConfiguration(f"'{key}' section must be a mapping")
        sections[key] = section

    geometry = sections['geometry']
    solver = sections['solver']

    try:
        return MapperConfig(
            vehicle=_vehicle_from_dict(sections['vehicle']),
            geometry_source=str(geometry.get('source', 'tf')).lower(),
            base_frame=str(geometry.get('base_frame', DEFAULT_BASE_FRAME)),
            frame_suffix=str(geometry.get('frame_suffix', DEFAULT_FRAME_SUFFIX)),
            lookup_timeout=float(geometry.get('lookup_timeout', DEFAULT_LOOKUP_TIMEOUT)),
            static_positions=geometry.get('positions'),
            solver=str(solver.get('backend', DEFAULT_SOLVER)).lower(),
            max_iterations=int(solver.get('max_iterations', DEFAULT_MAX_ITERATIONS)),
        )
    except InvalidConfiguration:
        raise
    except (TypeError, ValueError) as exc:
        raise InvalidConfiguration(f"Malformed configuration: {exc}") from exc


SOURCE_CONFIG_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), '..', 'config')


def find_config_file(config_file: str, share_dir: Optional[str] = None) -> str:
    """
    Locate a configuration file.

    An absolute path is used as given. A bare file name is looked up in
    <share_dir>/config (installed package) and then in the source tree.

    Args:
        config_file: File name or absolute path
        share_dir: Installed package share directory, if any

    Returns:
        Path to the file

    Raises:
        InvalidConfiguration: If the file exists in none of the locations
    """
    if os.path.isabs(config_file):
        candidates = [config_file]
    else:
        candidates = [os.path.join(SOURCE_CONFIG_DIR, config_file)]
        if share_dir:
            candidates.insert(0, os.path.join(share_dir, 'config', config_file))

    for path in candidates:
        if os.path.isfile(path):
            return os.path.normpath(path)
    raise InvalidConfiguration(f"Configuration file not found, tried: {candidates}")


def load_config(yaml_path: str) -> MapperConfig:
    """
    Load the thrust mapper configuration from a YAML file.

    Args:
        yaml_path: Path to YAML configuration file

    Returns:
        MapperConfig

    Raises:
        InvalidConfiguration: If the file is not valid YAML or a value is invalid
    """
    with open(yaml_path, 'r') as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise InvalidConfiguration(f"Could not parse {yaml_path}: {exc}") from exc

    return config_from_dict(data)
