#!/usr/bin/env python3
"""
Launch file for the thrust mapper node.
"""
from launch import LaunchDescription
from launch_ros.actions import Node
from launch.actions import DeclareLaunchArgument
from launch.substitutions import LaunchConfiguration


def generate_launch_description():
    # Declare arguments
    config_file_arg = DeclareLaunchArgument(
        'config_file',
        default_value='thrust_mapper.yaml',
        description='Thrust mapper YAML file name'
    )

    solver_arg = DeclareLaunchArgument(
        'solver',
        default_value='trf',
        description='Least-squares backend: trf or bvls'
    )

    max_iterations_arg = DeclareLaunchArgument(
        'max_iterations',
        default_value='100',
        description='Solver iteration cap per command'
    )

    lookup_timeout_arg = DeclareLaunchArgument(
        'lookup_timeout',
        default_value='10.0',
        description='Per-thruster frame lookup timeout [s]'
    )

    # Thrust mapper node
    thrust_mapper_node = Node(
        package='thrust_mapper',
        executable='thrust_mapper_node',
        name='thrust_mapper',
        output='screen',
        parameters=[{
            'config_file': LaunchConfiguration('config_file'),
            'solver': LaunchConfiguration('solver'),
            'max_iterations': LaunchConfiguration('max_iterations'),
            'lookup_timeout': LaunchConfiguration('lookup_timeout'),
        }]
    )

    return LaunchDescription([
        config_file_arg,
        solver_arg,
        max_iterations_arg,
        lookup_timeout_arg,
        thrust_mapper_node,
    ])
