"""
Tests for CommandIngest - per-command solve, stamp and publish.
"""
import pytest
import numpy as np
from thrust_mapper.allocation import AccelerationCommand, AllocationProblem
from thrust_mapper.command_ingest import CommandIngest, ThrustStamped, command_from_components
from thrust_mapper.geometry import THRUSTER_NAMES, GeometryModel
from thrust_mapper.vehicle import VehicleModel


POSITIONS = {
    'surge_stbd_hi': (-0.20, -0.24, 0.12),
    'surge_port_hi': (-0.20, 0.24, 0.12),
    'surge_port_lo': (-0.20, 0.24, -0.12),
    'surge_stbd_lo': (-0.20, -0.24, -0.12),
    'sway_fwd': (0.35, 0.0, 0.0),
    'sway_aft': (-0.35, 0.0, 0.0),
    'heave_port_aft': (-0.30, 0.22, 0.0),
    'heave_stbd_aft': (-0.30, -0.22, 0.0),
    'heave_stbd_fwd': (0.30, -0.22, 0.0),
    'heave_port_fwd': (0.30, 0.22, 0.0),
}


class FakeClock:
    """Returns 100.0, 100.1, 100.2, ..."""

    def __init__(self):
        self.t = 100.0

    def __call__(self):
        t = self.t
        self.t = round(self.t + 0.1, 6)
        return t


@pytest.fixture
def problem():
    return AllocationProblem(GeometryModel.from_mapping(POSITIONS), VehicleModel.reference())


@pytest.fixture
def published():
    return []


@pytest.fixture
def ingest(problem, published):
    return CommandIngest(problem, publish=published.append, clock=FakeClock())


class TestCommandIngest:
    """Test command handling."""

    def test_publishes_once_per_command(self, ingest, published):
        """Test that each command produces exactly one output."""
        ingest.on_command(AccelerationCommand(linear=(1.0, 0.0, 0.0)))
        assert len(published) == 1
        ingest.on_command(AccelerationCommand())
        assert len(published) == 2

    def test_returns_published_result(self, ingest, published):
        """Test that the returned result is what was published."""
        stamped = ingest.on_command(AccelerationCommand(linear=(1.0, 0.0, 0.0)))

        assert isinstance(stamped, ThrustStamped)
        assert published[0] is stamped
        assert set(stamped.forces) == set(THRUSTER_NAMES)
        assert stamped.forces['surge_port_hi'] == pytest.approx(12.2107, abs=1e-3)

    def test_stamps_with_clock(self, ingest):
        """Test that every result carries the time it was produced."""
        first = ingest.on_command(AccelerationCommand())
        second = ingest.on_command(AccelerationCommand())
        assert first.stamp == 100.0
        assert second.stamp == 100.1

    def test_matches_direct_solve(self, ingest, problem):
        """Test that ingest adds nothing beyond the solve itself."""
        command = AccelerationCommand(linear=(0.2, -0.3, 0.1), angular=(0.4, 0.0, -0.2))
        stamped = ingest.on_command(command)
        assert np.array_equal(stamped.solution.as_array(), problem.solve(command).as_array())

    def test_no_publisher(self, problem):
        """Test ingest without an output boundary."""
        ingest = CommandIngest(problem)
        stamped = ingest.on_command(AccelerationCommand())
        assert isinstance(stamped.stamp, float)
        assert np.allclose(stamped.solution.as_array(), 0.0, atol=1e-6)

    def test_no_command_validation(self, ingest, published):
        """Test that extreme commands are passed through and saturate."""
        stamped = ingest.on_command(AccelerationCommand(linear=(1e6, -1e6, 1e6), angular=(1e6, 1e6, 1e6)))
        forces = stamped.solution.as_array()
        assert len(published) == 1
        assert np.all(forces >= -18.0)
        assert np.all(forces <= 18.0)

    @pytest.mark.parametrize("linear, angular", [
        ((float('nan'), 0.0, 0.0), (0.0, 0.0, 0.0)),
        ((0.0, 0.0, 0.0), (0.0, float('inf'), 0.0)),
        ((0.0, float('-inf'), 0.0), (float('nan'), 0.0, 0.0)),
    ])
    def test_non_finite_command_dropped(self, ingest, published, caplog, linear, angular):
        """Test that NaN or infinite commands are logged and not published."""
        with caplog.at_level("ERROR"):
            stamped = ingest.on_command(AccelerationCommand(linear=linear, angular=angular))

        assert stamped is None
        assert published == []
        assert "non-finite" in caplog.text

        # The next valid command is still handled
        stamped = ingest.on_command(AccelerationCommand(linear=(1.0, 0.0, 0.0)))
        assert len(published) == 1
        assert stamped.solution['surge_port_hi'] == pytest.approx(12.2107, abs=1e-3)


class TestCommandConstruction:
    """Test building commands."""

    def test_from_components(self):
        command = command_from_components([1, 2, 3], [4, 5, 6])
        assert command.linear == (1.0, 2.0, 3.0)
        assert command.angular == (4.0, 5.0, 6.0)
        assert np.array_equal(command.as_array(), [1.0, 2.0, 3.0, 4.0, 5.0, 6.0])

    def test_default_is_zero(self):
        assert np.array_equal(AccelerationCommand().as_array(), np.zeros(6))

    def test_wrong_length(self):
        with pytest.raises(ValueError):
            command_from_components([1.0, 2.0], [0.0, 0.0, 0.0])
