"""
Shared plumbing for the demo drivers: command line, logging, model and
simulator assembly.
"""

import argparse
import logging
from typing import Optional

import numpy as np

from ..core.config import PROJECT_ROOT, DemoConfig, DemoData
from ..core.control_loop import SimulationLoop
from ..core.model import RigidBodyModel
from ..core.simulator import Robot, Simulator
from ..visualization.mujoco_viewer import MuJoCoVisualizer

CONFIG_DIR = PROJECT_ROOT / "config"

# Exit codes
EXIT_OK = 0
EXIT_INIT_FAILURE = 1
EXIT_ABORTED = 2

CAMERA_CONFIG = {
    'distance': 2.0,
    'elevation': -20,
    'azimuth': 135,
    'lookat': [0.4, 0.0, 0.4],
}


def build_parser(description: str, default_config: str) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=description)
    parser.add_argument(
        'demo',
        nargs='?',
        default='1',
        help='Demonstration id, loads rsc/demos/demo_<id> (default: 1)'
    )
    parser.add_argument(
        '--config',
        type=str,
        default=str(CONFIG_DIR / default_config),
        help=f'YAML configuration (default: config/{default_config})'
    )
    parser.add_argument(
        '--headless',
        action='store_true',
        help='Run without the MuJoCo viewer'
    )
    parser.add_argument(
        '--no-realtime',
        action='store_true',
        help='Step as fast as possible instead of pacing against the wall clock'
    )
    parser.add_argument(
        '--horizon',
        type=float,
        default=None,
        help='Simulated duration in seconds (default: from the configuration)'
    )
    parser.add_argument(
        '--plot',
        action='store_true',
        help='Plot the demonstrations and the executed path at the end'
    )
    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Debug logging'
    )
    return parser


def setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, force=True)
    logging.getLogger().handlers[0].setFormatter(logging.Formatter('%(levelname)s:%(name)s:%(message)s'))


def print_configuration(config: DemoConfig, demo: DemoData) -> None:
    print("=" * 60)
    print(f"Robot: {config.robot_name} ({config.dof} DOF, frame '{config.ee_frame}')")
    print(f"Controller: {config.controller_type}")
    print(f"Demonstration: demo_{demo.demo_id} ({len(demo.trajectories)} trajectories)")
    print(f"  Offset: {demo.offset}")
    print(f"  Target: {demo.target_position}")
    print(f"Remote dynamics: tcp://{config.remote_host}:{config.remote_port} "
          f"(timeout {config.remote_timeout_s * 1000.0:.1f} ms)")
    print("=" * 60)


def build_model(config: DemoConfig) -> RigidBodyModel:
    """Load the robot and place it at the middle of its joint ranges."""
    model = RigidBodyModel.from_xml(
        config.mujoco_xml_path,
        config.ee_frame,
        reference=config.reference_frame,
        dof=config.dof,
        velocity_limits=config.velocity_limits,
        acceleration_limits=config.acceleration_limits,
    )
    model.set_state(model.mid_range())
    print(f"✓ Loaded {model}")
    return model


def build_simulator(config: DemoConfig, robot: Robot, headless: bool) -> Simulator:
    graphics = None
    if not headless:
        graphics = MuJoCoVisualizer(robot.model.model, robot.model.data, CAMERA_CONFIG)
    return Simulator(
        robot,
        dt=1.0 / config.simulation_hz,
        controller_dt=1.0 / config.controller_hz,
        graphics=graphics,
    )


def build_loop(
    config: DemoConfig,
    simulator: Simulator,
    demo: DemoData,
    horizon: Optional[float],
    realtime: bool,
    attractor: Optional[np.ndarray] = None,
) -> SimulationLoop:
    return SimulationLoop(
        simulator,
        horizon_s=config.horizon_s if horizon is None else horizon,
        target=demo.target_position,
        latch_radius=config.latch_radius_m,
        attractor=attractor,
        stop_radius=config.stop_radius_m if attractor is not None else None,
        realtime=realtime,
    )
