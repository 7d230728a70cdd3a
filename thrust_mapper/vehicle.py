"""
Vehicle physical constants used by the allocation equations.
"""
import math
from dataclasses import dataclass

from thrust_mapper.errors import InvalidConfiguration


@dataclass(frozen=True)
class VehicleModel:
    """
    Rigid-body constants and the per-thruster force bound.

    Attributes:
        mass: Vehicle mass [kg]
        Ix, Iy, Iz: Principal moments of inertia [kg*m^2]
        min_thrust: Lower force bound for every thruster [N]
        max_thrust: Upper force bound for every thruster [N]

    Raises:
        InvalidConfiguration: If any constant is non-finite, mass or an
            inertia is not positive, or the thrust bounds are inverted
    """
    mass: float
    Ix: float
    Iy: float
    Iz: float
    min_thrust: float = -18.0
    max_thrust: float = 18.0

    def __post_init__(self):
        for field in ('mass', 'Ix', 'Iy', 'Iz', 'min_thrust', 'max_thrust'):
            value = getattr(self, field)
            try:
                value = float(value)
            except (TypeError, ValueError) as exc:
                raise InvalidConfiguration(f"{field} must be a number, got {value!r}") from exc
            if not math.isfinite(value):
                raise InvalidConfiguration(f"{field} must be finite")
            object.__setattr__(self, field, value)

        if self.mass <= 0.0:
            raise InvalidConfiguration("mass must be positive")
        if self.Ix <= 0.0 or self.Iy <= 0.0 or self.Iz <= 0.0:
            raise InvalidConfiguration("Moments of inertia Ix, Iy, Iz must be positive")
        if self.min_thrust >= self.max_thrust:
            raise InvalidConfiguration("min_thrust must be less than max_thrust")

    @classmethod
    def reference(cls) -> 'VehicleModel':
        """Constants of the reference vehicle."""
        return cls(
            mass=48.8428,
            Ix=0.55649783,
            Iy=1.89075467,
            Iz=1.96057706,
            min_thrust=-18.0,
            max_thrust=18.0,
        )

    @property
    def thrust_bounds(self):
        return self.min_thrust, self.max_thrust
