"""
Tests for YAML configuration loading.
"""
import pytest
import tempfile
import os
from thrust_mapper.config import MapperConfig, config_from_dict, find_config_file, load_config
from thrust_mapper.errors import InvalidConfiguration
from thrust_mapper.geometry import THRUSTER_NAMES
from thrust_mapper.vehicle import VehicleModel


DEFAULT_CONFIG = os.path.join(os.path.dirname(__file__), '..', 'config', 'thrust_mapper.yaml')


def write_yaml(content):
    with tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False) as f:
        f.write(content)
        return f.name


def test_default_config_file():
    """Test the shipped configuration file"""
    config = load_config(DEFAULT_CONFIG)

    assert config.vehicle == VehicleModel.reference()
    assert config.geometry_source == 'tf'
    assert config.base_frame == 'base_link'
    assert config.lookup_timeout == 10.0
    assert config.solver == 'trf'
    assert config.max_iterations == 100

    geometry = config.static_geometry()
    assert set(geometry.names) == set(THRUSTER_NAMES)


def test_empty_config_uses_reference():
    """Test that missing sections fall back to reference values"""
    config = config_from_dict({})
    assert config == MapperConfig()
    assert config.vehicle == VehicleModel.reference()


def test_symmetric_max_thrust():
    """Test that a single bound magnitude gives symmetric limits"""
    config = config_from_dict({'vehicle': {'max_thrust': 25.0}})
    assert config.vehicle.min_thrust == -25.0
    assert config.vehicle.max_thrust == 25.0


def test_load_yaml_file():
    """Test loading a complete YAML file"""
    temp_path = write_yaml("""
vehicle:
  mass: 30.0
  inertia: [0.5, 1.0, 1.5]
  min_thrust: -10.0
  max_thrust: 12.0
geometry:
  source: static
  base_frame: body
  lookup_timeout: 2.0
  positions:
    surge_stbd_hi: [-0.2, -0.2, 0.1]
    surge_port_hi: [-0.2, 0.2, 0.1]
    surge_port_lo: [-0.2, 0.2, -0.1]
    surge_stbd_lo: [-0.2, -0.2, -0.1]
    sway_fwd: [0.3, 0.0, 0.0]
    sway_aft: [-0.3, 0.0, 0.0]
    heave_port_aft: [-0.3, 0.2, 0.0]
    heave_stbd_aft: [-0.3, -0.2, 0.0]
    heave_stbd_fwd: [0.3, -0.2, 0.0]
    heave_port_fwd: [0.3, 0.2, 0.0]
solver:
  backend: BVLS
  max_iterations: 25
""")
    try:
        config = load_config(temp_path)

        assert config.vehicle.mass == 30.0
        assert (config.vehicle.Ix, config.vehicle.Iy, config.vehicle.Iz) == (0.5, 1.0, 1.5)
        assert config.vehicle.thrust_bounds == (-10.0, 12.0)
        assert config.geometry_source == 'static'
        assert config.base_frame == 'body'
        assert config.lookup_timeout == 2.0
        assert config.solver == 'bvls'
        assert config.max_iterations == 25
        assert config.static_geometry().position('sway_aft').x == -0.3
    finally:
        os.unlink(temp_path)


def test_invalid_vehicle_raises():
    """Test that invalid vehicle constants are rejected"""
    with pytest.raises(InvalidConfiguration):
        config_from_dict({'vehicle': {'mass': -1.0}})
    with pytest.raises(InvalidConfiguration):
        config_from_dict({'vehicle': {'inertia': [1.0, 1.0]}})
    with pytest.raises(InvalidConfiguration):
        config_from_dict({'vehicle': {'min_thrust': 5.0, 'max_thrust': 1.0}})


def test_invalid_solver_raises():
    with pytest.raises(InvalidConfiguration, match="Unknown solver"):
        config_from_dict({'solver': {'backend': 'newton'}})
    with pytest.raises(InvalidConfiguration):
        config_from_dict({'solver': {'max_iterations': 0}})
    with pytest.raises(InvalidConfiguration):
        config_from_dict({'solver': {'max_iterations': 'many'}})


def test_invalid_geometry_raises():
    with pytest.raises(InvalidConfiguration):
        config_from_dict({'geometry': {'source': 'urdf'}})
    with pytest.raises(InvalidConfiguration, match="positions"):
        config_from_dict({'geometry': {'source': 'static'}})
    with pytest.raises(InvalidConfiguration):
        config_from_dict({'geometry': {'lookup_timeout': -1.0}})


def test_malformed_sections_raise():
    with pytest.raises(InvalidConfiguration):
        config_from_dict(['not', 'a', 'mapping'])
    with pytest.raises(InvalidConfiguration):
        config_from_dict({'vehicle': [1, 2, 3]})


def test_invalid_yaml_raises():
    """Test that unparsable YAML raises error"""
    temp_path = write_yaml("vehicle: [mass: 1\n")
    try:
        with pytest.raises(InvalidConfiguration):
            load_config(temp_path)
    finally:
        os.unlink(temp_path)


def test_static_geometry_without_positions():
    with pytest.raises(InvalidConfiguration):
        MapperConfig().static_geometry()


def test_find_config_absolute_path():
    """Test that an absolute path is used as given"""
    path = write_yaml("solver:\n  backend: bvls\n")
    try:
        assert find_config_file(path) == os.path.normpath(path)
    finally:
        os.unlink(path)


def test_find_config_in_share_dir(tmp_path):
    """Test that the installed share directory is searched first"""
    config_dir = tmp_path / 'config'
    config_dir.mkdir()
    (config_dir / 'thrust_mapper.yaml').write_text("solver:\n  backend: bvls\n")

    path = find_config_file('thrust_mapper.yaml', share_dir=str(tmp_path))

    assert path == str(config_dir / 'thrust_mapper.yaml')
    assert load_config(path).solver == 'bvls'


def test_find_config_falls_back_to_source_tree(tmp_path):
    """Test the source-tree config directory when not installed"""
    path = find_config_file('thrust_mapper.yaml', share_dir=str(tmp_path))
    assert os.path.samefile(path, DEFAULT_CONFIG)

    assert os.path.samefile(find_config_file('thrust_mapper.yaml'), DEFAULT_CONFIG)


def test_find_config_missing_raises(tmp_path):
    """Test that a missing file lists the locations tried"""
    with pytest.raises(InvalidConfiguration, match="not found"):
        find_config_file('no_such_file.yaml', share_dir=str(tmp_path))
    with pytest.raises(InvalidConfiguration, match="not found"):
        find_config_file(str(tmp_path / 'missing.yaml'))
