"""
Per-command processing: solve, timestamp, hand off to the output boundary.
"""
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence

import numpy as np

from thrust_mapper.allocation import AccelerationCommand, AllocationProblem, ThrusterForceSolution


@dataclass(frozen=True)
class ThrustStamped:
    """Force solution plus the time it was produced."""
    stamp: Any
    solution: ThrusterForceSolution

    @property
    def forces(self):
        return self.solution.forces


def command_from_components(linear: Sequence[float], angular: Sequence[float]) -> AccelerationCommand:
    """Build a command from [x, y, z] linear and angular accelerations."""
    return AccelerationCommand(linear=tuple(linear), angular=tuple(angular))


class CommandIngest:
    """
    Runs one allocation per incoming command.

    Commands are handled one at a time, each to completion. No magnitude or
    unit checks are made on the command.
    """

    def __init__(
        self,
        problem: AllocationProblem,
        publish: Optional[Callable[[ThrustStamped], None]] = None,
        clock: Callable[[], Any] = time.time,
        logger: logging.Logger = None,
    ):
        """
        Args:
            problem: Allocation problem built at startup
            publish: Output boundary, called once per command
            clock: Returns the current timestamp
            logger: Optional logger
        """
        self.problem = problem
        self.publish = publish
        self.clock = clock
        self.logger = logger or logging.getLogger(__name__)

    def on_command(self, command: AccelerationCommand) -> Optional[ThrustStamped]:
        """
        Allocate thrust for ``command`` and forward the stamped result.

        Commands with NaN or infinite components have no allocation; they
        are logged and dropped, and nothing is published for them.

        Returns:
            The stamped solution that was published, or None if dropped
        """
        if not np.all(np.isfinite(command.as_array())):
            self.logger.error(f"Dropping non-finite acceleration command: {command.as_array().tolist()}")
            return None

        solution = self.problem.solve(command)
        stamped = ThrustStamped(stamp=self.clock(), solution=solution)

        if self.publish is not None:
            self.publish(stamped)

        self.logger.debug(
            "F=[" + ", ".join(f"{name}={force:.2f}" for name, force in solution.forces.items()) + "]"
        )

        return stamped
