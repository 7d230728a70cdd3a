import rclpy
from rclpy.duration import Duration
from rclpy.node import Node
from rclpy.time import Time
from geometry_msgs.msg import Accel
from sensor_msgs.msg import JointState
from tf2_ros import TransformException
from tf2_ros.buffer import Buffer
from tf2_ros.transform_listener import TransformListener
from ament_index_python.packages import PackageNotFoundError, get_package_share_directory

from thrust_mapper.allocation import AccelerationCommand, AllocationProblem
from thrust_mapper.command_ingest import CommandIngest, ThrustStamped
from thrust_mapper.config import find_config_file, load_config
from thrust_mapper.errors import ThrustMapperError
from thrust_mapper.geometry import THRUSTER_NAMES, resolve_geometry


class ThrustMapperNode(Node):
    def __init__(self):
        super().__init__('thrust_mapper')

        # Declare parameters (empty/zero means: take the value from the YAML file)
        self.declare_parameter('config_file', 'thrust_mapper.yaml')
        self.declare_parameter('solver', '')           # 'trf' or 'bvls'
        self.declare_parameter('max_iterations', 0)
        self.declare_parameter('base_frame', '')
        self.declare_parameter('lookup_timeout', 0.0)  # per thruster frame [s]

        config_file = self.get_parameter('config_file').get_parameter_value().string_value
        try:
            yaml_path = self._find_config(config_file)
            self.get_logger().info(f"Loading configuration from: {yaml_path}")
            self.config = load_config(yaml_path)
            self._apply_parameter_overrides()
            geometry = self._resolve_geometry()
            self.problem = AllocationProblem(
                geometry,
                self.config.vehicle,
                solver=self.config.solver,
                max_iterations=self.config.max_iterations,
                logger=self.get_logger(),
            )
        except (ThrustMapperError, OSError) as exc:
            self.get_logger().fatal(f"Thrust mapper startup failed: {exc}")
            raise

        vehicle = self.config.vehicle
        self.get_logger().info(
            f"Allocation ready: solver={self.config.solver}, "
            f"max_iterations={self.config.max_iterations}, "
            f"mass={vehicle.mass:.4f} kg, "
            f"thrust=[{vehicle.min_thrust:.1f}, {vehicle.max_thrust:.1f}] N"
        )

        # Queue depth 1: only the latest command matters
        self.thrust_pub = self.create_publisher(JointState, 'command/thrust', 1)

        self.ingest = CommandIngest(
            self.problem,
            publish=self._publish_thrust,
            clock=lambda: self.get_clock().now().to_msg(),
            logger=self.get_logger(),
        )

        self.create_subscription(Accel, 'command/accel', self.accel_callback, 1)

    def _find_config(self, config_file: str) -> str:
        try:
            share_dir = get_package_share_directory('thrust_mapper')
        except PackageNotFoundError:
            share_dir = None
        return find_config_file(config_file, share_dir)

    def _apply_parameter_overrides(self):
        """ROS parameters take precedence over the YAML file when set."""
        solver = self.get_parameter('solver').get_parameter_value().string_value
        max_iterations = self.get_parameter('max_iterations').get_parameter_value().integer_value
        base_frame = self.get_parameter('base_frame').get_parameter_value().string_value
        lookup_timeout = self.get_parameter('lookup_timeout').get_parameter_value().double_value

        overrides = {}
        if solver:
            overrides['solver'] = solver.lower()
        if max_iterations > 0:
            overrides['max_iterations'] = max_iterations
        if base_frame:
            overrides['base_frame'] = base_frame
        if lookup_timeout > 0.0:
            overrides['lookup_timeout'] = lookup_timeout

        if overrides:
            settings = dict(vars(self.config))
            settings.update(overrides)
            self.config = type(self.config)(**settings)

    def _resolve_geometry(self):
        """Thruster positions, resolved once before any command is accepted."""
        if self.config.geometry_source == 'static':
            self.get_logger().info("Using static thruster positions from configuration")
            return self.config.static_geometry()

        self.tf_buffer = Buffer()
        self.tf_listener = TransformListener(self.tf_buffer, self, spin_thread=True)

        self.get_logger().info(
            f"Waiting for {len(THRUSTER_NAMES)} thruster frames in '{self.config.base_frame}' "
            f"(timeout {self.config.lookup_timeout:.1f} s each)"
        )
        return resolve_geometry(
            self._lookup_position,
            base_frame=self.config.base_frame,
            frame_suffix=self.config.frame_suffix,
            timeout=self.config.lookup_timeout,
            logger=self.get_logger(),
        )

    def _lookup_position(self, base_frame: str, frame: str, timeout: float):
        try:
            transform = self.tf_buffer.lookup_transform(
                base_frame, frame, Time(), timeout=Duration(seconds=timeout)
            )
        except TransformException as exc:
            raise TimeoutError(str(exc)) from exc
        t = transform.transform.translation
        return t.x, t.y, t.z

    def accel_callback(self, msg: Accel):
        """Allocate thrust for an acceleration command"""
        command = AccelerationCommand(
            linear=(msg.linear.x, msg.linear.y, msg.linear.z),
            angular=(msg.angular.x, msg.angular.y, msg.angular.z),
        )
        try:
            self.ingest.on_command(command)
        except ValueError as exc:
            self.get_logger().error(f"Allocation failed for command: {exc}")

    def _publish_thrust(self, stamped: ThrustStamped):
        msg = JointState()
        msg.header.stamp = stamped.stamp
        msg.name = list(THRUSTER_NAMES)
        msg.effort = [float(f) for f in stamped.solution.as_array(THRUSTER_NAMES)]
        self.thrust_pub.publish(msg)


def main(args=None):
    rclpy.init(args=args)
    node = None
    try:
        node = ThrustMapperNode()
        rclpy.spin(node)
    except KeyboardInterrupt:
        pass
    finally:
        if node is not None:
            node.destroy_node()
        rclpy.shutdown()
