"""
Thruster mounting geometry.

Holds the position of each of the ten thrusters relative to the vehicle's
center of mass, in the body frame. Positions are resolved once at startup,
either from a frame/pose service or from static configuration.
"""
import logging
import math
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Mapping, Sequence, Tuple

import numpy as np

from thrust_mapper.errors import GeometryUnavailable, InvalidConfiguration


# Output channel order
THRUSTER_NAMES = (
    'surge_stbd_hi',
    'surge_port_hi',
    'surge_port_lo',
    'surge_stbd_lo',
    'sway_fwd',
    'sway_aft',
    'heave_port_aft',
    'heave_stbd_aft',
    'heave_stbd_fwd',
    'heave_port_fwd',
)

ROLES = ('surge', 'sway', 'heave')

DEFAULT_BASE_FRAME = 'base_link'
DEFAULT_FRAME_SUFFIX = '_thruster'
DEFAULT_LOOKUP_TIMEOUT = 10.0

# lookup(base_frame, frame, timeout) -> (x, y, z)
PositionLookup = Callable[[str, str, float], Sequence[float]]


def thruster_role(name: str) -> str:
    """Return 'surge', 'sway' or 'heave' from the thruster name prefix."""
    role = name.split('_', 1)[0]
    if role not in ROLES:
        raise InvalidConfiguration(f"Thruster '{name}' has no known role prefix")
    return role


@dataclass(frozen=True)
class ThrusterPosition:
    """Position of one thruster [m], body frame, relative to center of mass."""
    name: str
    x: float
    y: float
    z: float

    @property
    def role(self) -> str:
        return thruster_role(self.name)

    def as_array(self) -> np.ndarray:
        return np.array([self.x, self.y, self.z], dtype=float)


class GeometryModel:
    """
    Immutable set of the ten thruster positions.

    The enumeration order of ``positions`` is free; thrusters are always
    addressed by name, so reordering does not change their physical roles.
    """

    def __init__(self, positions: Iterable[ThrusterPosition]):
        positions = tuple(positions)
        names = [p.name for p in positions]

        if len(set(names)) != len(names):
            raise InvalidConfiguration(f"Duplicate thruster names in geometry: {names}")
        if set(names) != set(THRUSTER_NAMES):
            missing = sorted(set(THRUSTER_NAMES) - set(names))
            unknown = sorted(set(names) - set(THRUSTER_NAMES))
            raise InvalidConfiguration(
                f"Geometry must define exactly the ten thrusters "
                f"(missing={missing}, unknown={unknown})"
            )
        for p in positions:
            if not all(math.isfinite(c) for c in (p.x, p.y, p.z)):
                raise InvalidConfiguration(f"Thruster '{p.name}' has a non-finite position")

        self._positions = positions
        self._by_name = {p.name: p for p in positions}

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Sequence[float]]) -> 'GeometryModel':
        """
        Build geometry from static configuration.

        Args:
            mapping: {thruster_name: [x, y, z]} in meters

        Raises:
            InvalidConfiguration: If an entry is not a 3-vector of numbers
        """
        positions = []
        for name, xyz in mapping.items():
            try:
                x, y, z = (float(c) for c in xyz)
            except (TypeError, ValueError) as exc:
                raise InvalidConfiguration(
                    f"Position of thruster '{name}' must be [x, y, z], got {xyz!r}"
                ) from exc
            positions.append(ThrusterPosition(str(name), x, y, z))
        return cls(positions)

    @property
    def names(self) -> Tuple[str, ...]:
        """Thruster names in enumeration order."""
        return tuple(p.name for p in self._positions)

    def position(self, name: str) -> ThrusterPosition:
        return self._by_name[name]

    def by_role(self, role: str) -> Tuple[ThrusterPosition, ...]:
        """Thrusters of one role, in enumeration order."""
        return tuple(p for p in self._positions if p.role == role)

    def as_dict(self) -> Dict[str, Tuple[float, float, float]]:
        return {p.name: (p.x, p.y, p.z) for p in self._positions}

    def __iter__(self):
        return iter(self._positions)

    def __len__(self):
        return len(self._positions)

    def __repr__(self):
        return f"GeometryModel({list(self.names)})"


def thruster_frame(name: str, suffix: str = DEFAULT_FRAME_SUFFIX) -> str:
    """Frame name of a thruster, e.g. 'sway_fwd' -> 'sway_fwd_thruster'."""
    return f"{name}{suffix}"


def resolve_geometry(
    lookup: PositionLookup,
    base_frame: str = DEFAULT_BASE_FRAME,
    frame_suffix: str = DEFAULT_FRAME_SUFFIX,
    timeout: float = DEFAULT_LOOKUP_TIMEOUT,
    names: Sequence[str] = THRUSTER_NAMES,
    logger: logging.Logger = None,
) -> GeometryModel:
    """
    Resolve every thruster position from a pose source, once, at startup.

    Each lookup blocks for at most ``timeout`` seconds. The lookup signals a
    missing or late frame by raising TimeoutError or LookupError.

    Args:
        lookup: Callable (base_frame, frame, timeout) -> (x, y, z)
        base_frame: Body frame centered on the center of mass
        frame_suffix: Appended to each thruster name to form its frame
        timeout: Per-frame wait [s]
        names: Thrusters to resolve
        logger: Optional logger

    Returns:
        Fully populated GeometryModel

    Raises:
        GeometryUnavailable: If any frame cannot be resolved
    """
    if timeout <= 0.0:
        raise InvalidConfiguration("Lookup timeout must be positive")
    logger = logger or logging.getLogger(__name__)

    positions = []
    for name in names:
        frame = thruster_frame(name, frame_suffix)
        try:
            xyz = lookup(base_frame, frame, timeout)
        except (TimeoutError, LookupError) as exc:
            raise GeometryUnavailable(frame, timeout, str(exc)) from exc
        if xyz is None:
            raise GeometryUnavailable(frame, timeout, "no transform returned")

        x, y, z = (float(c) for c in xyz)
        logger.debug(f"{frame} in {base_frame}: [{x:.4f}, {y:.4f}, {z:.4f}]")
        positions.append(ThrusterPosition(name, x, y, z))

    return GeometryModel(positions)
