"""
Thrust allocation for a ten-thruster underwater vehicle.

Maps a commanded body-frame acceleration (surge, sway, heave, roll, pitch,
yaw) to individual thruster forces by solving the rigid-body balance
equations as a bound-constrained least-squares problem:

    surge: sum(F_surge) / m                          = a_x
    sway:  sum(F_sway) / m                           = a_y
    heave: sum(F_heave) / m                          = a_z
    roll:  (F_heave . y_heave + F_sway . z_sway) / Ix  = alpha_x
    pitch: (F_surge . z_surge + F_heave . x_heave) / Iy = alpha_y
    yaw:   (F_surge . y_surge + F_sway . x_sway) / Iz   = alpha_z

subject to min_thrust <= F_i <= max_thrust for every thruster.

Ten unknowns and six equations leave the system under-determined. No
secondary objective is imposed; the redundancy is settled by the least-squares
backend itself (minimum-norm tendency from a zero start) and by whichever
bounds become active.

Importing this module turns on jax 64-bit mode (``jax_enable_x64``) for the
whole process, so the residuals match scipy's float64 iterates. Other jax
code in the same process will then default to float64 as well.
"""
import logging
from dataclasses import dataclass
from typing import Dict, Mapping, Sequence, Tuple, Union

import numpy as np
import jax
import jax.numpy as jnp
from scipy.optimize import least_squares, lsq_linear

from thrust_mapper.errors import InvalidConfiguration
from thrust_mapper.geometry import THRUSTER_NAMES, GeometryModel
from thrust_mapper.vehicle import VehicleModel

# Balance equations are evaluated in double precision
jax.config.update("jax_enable_x64", True)


DEFAULT_MAX_ITERATIONS = 100
DEFAULT_SOLVER = 'trf'


@dataclass(frozen=True)
class AccelerationCommand:
    """
    Commanded body-frame acceleration.

    Attributes:
        linear: (x, y, z) [m/s^2]
        angular: (x, y, z) [rad/s^2]
    """
    linear: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    angular: Tuple[float, float, float] = (0.0, 0.0, 0.0)

    def __post_init__(self):
        object.__setattr__(self, 'linear', tuple(float(v) for v in self.linear))
        object.__setattr__(self, 'angular', tuple(float(v) for v in self.angular))
        if len(self.linear) != 3 or len(self.angular) != 3:
            raise ValueError("linear and angular must each have three components")

    def as_array(self) -> np.ndarray:
        """[surge, sway, heave, roll, pitch, yaw] targets."""
        return np.array(self.linear + self.angular, dtype=float)


@dataclass(frozen=True)
class ThrusterForceSolution:
    """
    Solved force per thruster [N], keyed by channel name.

    ``converged`` is informational: the forces are valid output either way.
    """
    forces: Dict[str, float]
    converged: bool = True
    iterations: int = 0
    cost: float = 0.0

    def __getitem__(self, name: str) -> float:
        return self.forces[name]

    def as_array(self, names: Sequence[str] = THRUSTER_NAMES) -> np.ndarray:
        return np.array([self.forces[n] for n in names], dtype=float)


@dataclass(frozen=True)
class SolverResult:
    """Raw backend output, forces in the problem's enumeration order."""
    x: np.ndarray
    converged: bool
    iterations: int
    cost: float


class BalanceEquations:
    """
    The six balance residuals for one command, plus their Jacobian.

    This is the objective handed to a solver backend. Residuals are
    evaluated by a jitted jax function; the Jacobian is obtained by forward
    mode automatic differentiation of the same function.
    """

    def __init__(self, residual_fn, jacobian_fn, target: np.ndarray):
        self._residual_fn = residual_fn
        self._jacobian_fn = jacobian_fn
        self.target = jnp.asarray(target, dtype=jnp.float64)

    def residuals(self, forces: np.ndarray) -> np.ndarray:
        return np.asarray(self._residual_fn(jnp.asarray(forces), self.target), dtype=float)

    def jacobian(self, forces: np.ndarray) -> np.ndarray:
        return np.asarray(self._jacobian_fn(jnp.asarray(forces), self.target), dtype=float)


class TrustRegionBackend:
    """
    Trust-region reflective solver (scipy ``least_squares``, method 'trf').

    Subproblems are solved with LSMR, which starts from zero and stays in
    the row space of the scaled Jacobian. The exact (SVD) subproblem solver
    lets the iterate drift along the null space of the balance equations.

    ``max_iterations`` caps the number of residual evaluations; trf makes
    one evaluation per iteration.
    """
    name = 'trf'

    def __init__(self, max_iterations: int = DEFAULT_MAX_ITERATIONS, tolerance: float = 1e-8):
        if max_iterations <= 0:
            raise InvalidConfiguration("max_iterations must be positive")
        if tolerance <= 0.0:
            raise InvalidConfiguration("tolerance must be positive")
        self.max_iterations = int(max_iterations)
        self.tolerance = float(tolerance)

    def solve(self, equations: BalanceEquations, lower: np.ndarray,
              upper: np.ndarray, x0: np.ndarray) -> SolverResult:
        result = least_squares(
            equations.residuals,
            x0,
            jac=equations.jacobian,
            bounds=(lower, upper),
            method='trf',
            tr_solver='lsmr',
            ftol=self.tolerance,
            xtol=self.tolerance,
            gtol=self.tolerance,
            max_nfev=self.max_iterations,
        )
        # status 0: evaluation cap reached
        return SolverResult(
            x=np.asarray(result.x, dtype=float),
            converged=bool(result.status > 0),
            iterations=int(result.nfev),
            cost=float(result.cost),
        )


class ActiveSetBackend:
    """
    Bounded-variable least squares (scipy ``lsq_linear``, method 'bvls').

    Only valid for objectives that are linear in the forces, which the
    balance equations are: r(x) = A x - b with A the Jacobian.
    """
    name = 'bvls'

    def __init__(self, max_iterations: int = DEFAULT_MAX_ITERATIONS, tolerance: float = 1e-10):
        if max_iterations <= 0:
            raise InvalidConfiguration("max_iterations must be positive")
        if tolerance <= 0.0:
            raise InvalidConfiguration("tolerance must be positive")
        self.max_iterations = int(max_iterations)
        self.tolerance = float(tolerance)

    def solve(self, equations: BalanceEquations, lower: np.ndarray,
              upper: np.ndarray, x0: np.ndarray) -> SolverResult:
        A = equations.jacobian(x0)
        b = A @ x0 - equations.residuals(x0)

        result = lsq_linear(
            A, b,
            bounds=(lower, upper),
            method='bvls',
            tol=self.tolerance,
            max_iter=self.max_iterations,
        )
        return SolverResult(
            x=np.clip(np.asarray(result.x, dtype=float), lower, upper),
            converged=bool(result.status > 0),
            iterations=int(result.nit),
            cost=float(result.cost),
        )


SOLVER_BACKENDS = {
    TrustRegionBackend.name: TrustRegionBackend,
    ActiveSetBackend.name: ActiveSetBackend,
}


def make_backend(name: str, max_iterations: int = DEFAULT_MAX_ITERATIONS):
    """
    Create a solver backend by name.

    Raises:
        InvalidConfiguration: If the name is unknown
    """
    try:
        backend_cls = SOLVER_BACKENDS[name.lower()]
    except KeyError:
        raise InvalidConfiguration(
            f"Unknown solver '{name}', expected one of {sorted(SOLVER_BACKENDS)}"
        ) from None
    return backend_cls(max_iterations=max_iterations)


class AllocationProblem:
    """
    Bound-constrained least-squares thrust allocation.

    Built once from geometry and vehicle constants; the moment arms are
    captured at construction and reused for every solve. Each solve starts
    from the same zero initial guess and carries no state over from previous
    commands.
    """

    def __init__(
        self,
        geometry: GeometryModel,
        vehicle: VehicleModel,
        solver: Union[str, TrustRegionBackend, ActiveSetBackend] = DEFAULT_SOLVER,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        logger: logging.Logger = None,
    ):
        """
        Args:
            geometry: Thruster positions relative to center of mass
            vehicle: Mass, inertia and thrust bounds
            solver: Backend name ('trf' or 'bvls') or a backend instance
            max_iterations: Iteration cap when the backend is given by name
            logger: Optional logger

        Raises:
            InvalidConfiguration: If the solver name or cap is invalid
        """
        self.geometry = geometry
        self.vehicle = vehicle
        self.logger = logger or logging.getLogger(__name__)

        if isinstance(solver, str):
            self.backend = make_backend(solver, max_iterations)
        else:
            self.backend = solver

        self.names = geometry.names
        n = len(self.names)
        self.lower = np.full(n, vehicle.min_thrust, dtype=float)
        self.upper = np.full(n, vehicle.max_thrust, dtype=float)

        residuals = self._build_residual_fn()
        self._residual_fn = jax.jit(residuals)
        self._jacobian_fn = jax.jit(jax.jacfwd(residuals))

    def _build_residual_fn(self):
        """Assemble the six balance equations from thruster roles and arms."""
        names = self.names
        geometry = self.geometry

        def indices(role):
            return jnp.asarray([names.index(p.name) for p in geometry.by_role(role)], dtype=jnp.int32)

        def arms(role, axis):
            return jnp.asarray([getattr(p, axis) for p in geometry.by_role(role)], dtype=jnp.float64)

        surge, sway, heave = indices('surge'), indices('sway'), indices('heave')
        surge_y, surge_z = arms('surge', 'y'), arms('surge', 'z')
        sway_x, sway_z = arms('sway', 'x'), arms('sway', 'z')
        heave_x, heave_y = arms('heave', 'x'), arms('heave', 'y')

        m = self.vehicle.mass
        Ix, Iy, Iz = self.vehicle.Ix, self.vehicle.Iy, self.vehicle.Iz

        def residuals(forces, target):
            f_surge = forces[surge]
            f_sway = forces[sway]
            f_heave = forces[heave]
            return jnp.stack([
                jnp.sum(f_surge) / m - target[0],
                jnp.sum(f_sway) / m - target[1],
                jnp.sum(f_heave) / m - target[2],
                (jnp.dot(f_heave, heave_y) + jnp.dot(f_sway, sway_z)) / Ix - target[3],
                (jnp.dot(f_surge, surge_z) + jnp.dot(f_heave, heave_x)) / Iy - target[4],
                (jnp.dot(f_surge, surge_y) + jnp.dot(f_sway, sway_x)) / Iz - target[5],
            ])

        return residuals

    def equations(self, command: AccelerationCommand) -> BalanceEquations:
        """Objective for one command."""
        return BalanceEquations(self._residual_fn, self._jacobian_fn, command.as_array())

    def initial_guess(self) -> np.ndarray:
        """Zero force, projected onto the thrust bounds."""
        return np.clip(np.zeros(len(self.names)), self.lower, self.upper)

    def evaluate(
        self,
        forces: Union[Mapping[str, float], ThrusterForceSolution, Sequence[float]],
        command: AccelerationCommand,
    ) -> np.ndarray:
        """
        Residuals of the six balance equations for given forces.

        Args:
            forces: Per-name mapping, a solution, or an array in the
                problem's enumeration order
            command: Commanded acceleration

        Returns:
            Residuals ordered as surge, sway, heave, roll, pitch, yaw
        """
        if isinstance(forces, ThrusterForceSolution):
            forces = forces.forces
        if isinstance(forces, Mapping):
            x = np.array([forces[name] for name in self.names], dtype=float)
        else:
            x = np.asarray(forces, dtype=float).reshape(-1)
            if x.shape[0] != len(self.names):
                raise ValueError(f"Expected {len(self.names)} forces, got {x.shape[0]}")
        return self.equations(command).residuals(x)

    def solve(self, command: AccelerationCommand) -> ThrusterForceSolution:
        """
        Solve for the thruster forces that best realize ``command``.

        The result is returned whether or not the backend converged within
        its iteration cap; non-convergence is logged and flagged on the
        solution only.
        """
        equations = self.equations(command)
        result = self.backend.solve(equations, self.lower, self.upper, self.initial_guess())

        solved = dict(zip(self.names, result.x.tolist()))
        forces = {name: float(solved[name]) for name in THRUSTER_NAMES}

        if not result.converged:
            self.logger.warning(
                f"Allocation did not converge after {result.iterations} iterations "
                f"(cost={result.cost:.3e}); publishing best effort"
            )
        self.logger.debug(
            f"cmd={command.as_array().round(3).tolist()}, "
            f"iterations={result.iterations}, cost={result.cost:.3e}"
        )

        return ThrusterForceSolution(
            forces=forces,
            converged=result.converged,
            iterations=result.iterations,
            cost=result.cost,
        )

    def get_state(self) -> dict:
        """Problem setup for debugging/logging."""
        return {
            'solver': self.backend.name,
            'max_iterations': self.backend.max_iterations,
            'thrust_bounds': [self.vehicle.min_thrust, self.vehicle.max_thrust],
            'mass': self.vehicle.mass,
            'inertia': [self.vehicle.Ix, self.vehicle.Iy, self.vehicle.Iz],
            'thrusters': list(self.names),
        }
