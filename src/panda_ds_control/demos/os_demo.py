"""Operation space control of the Franka Panda with remote task dynamics.

The end effector is first driven toward the first sample of the first
demonstration by a local linear DS. Once within the latch radius, the desired
velocity comes from the remote dynamics server, and the run ends when the end
effector reaches the DS attractor (the demonstration offset).

Usage:
    1. Start a dynamics server (or your own learned DS on port 5511):
       panda-ds-server 1

    2. Run the demo:
       panda-os-demo 1

       # Without viewer, as fast as possible, then plot the executed path
       panda-os-demo 1 --headless --no-realtime --plot
"""

import sys
from typing import Optional, Sequence

import numpy as np

from ..core.config import load_config, load_demo
from ..core.contracts import FramePose, LoopState
from ..core.controllers import OperationSpaceController
from ..core.errors import ControlError, ModelError, TransportError
from ..core.remote import RemoteDynamics
from ..core.simulator import Robot
from ..core.task_dynamics import TaskDynamics
from ..core.trajectory_log import TrajectoryWriter
from ..visualization.plot import plot_trajectories
from .common import (
    EXIT_ABORTED, EXIT_INIT_FAILURE, EXIT_OK,
    build_loop, build_model, build_parser, build_simulator, print_configuration, setup_logging,
)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point for the operation space demo."""
    parser = build_parser(
        'Operation space control of the Franka Panda with remote task dynamics',
        'operation_space.yaml',
    )
    parser.add_argument(
        '--log',
        type=str,
        default=None,
        help='End-effector trajectory log (default: demo_os_<id>.csv, appended)'
    )
    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    # Initialization: any failure here happens before the first physics step
    try:
        config = load_config(args.config)
        if config.controller_type != "operation_space":
            raise ValueError(f"{args.config} configures '{config.controller_type}', expected operation_space")
        demo = load_demo(config.demos_root, args.demo, config.num_trajectories)
        model = build_model(config)
        remote = RemoteDynamics(config.remote_host, config.remote_port, config.remote_timeout_s)
    except (OSError, ValueError, ModelError, TransportError) as e:
        print(f"✗ Initialization failed: {e}")
        return EXIT_INIT_FAILURE

    print_configuration(config, demo)

    log = TrajectoryWriter(args.log or f"demo_os_{demo.demo_id}.csv")
    task = TaskDynamics(config.task, remote=remote)
    target = FramePose(translation=demo.target_position, rotation=config.orientation)
    controller = OperationSpaceController(model, target, config.controller, task, trajectory_log=log)

    robot = Robot(model).add_controller(controller)
    if config.gravity_compensation:
        robot.activate_gravity()

    simulator = build_simulator(config, robot, args.headless)
    for i, trajectory in enumerate(demo.trajectories, start=1):
        simulator.add_trajectory(trajectory, "red" if i >= 4 else "blue")

    loop = build_loop(config, simulator, demo, args.horizon, not args.no_realtime, attractor=demo.offset)

    try:
        state = loop.run()
    except ControlError as e:
        print(f"✗ Aborted: {e}")
        return EXIT_ABORTED
    finally:
        log.close()
        remote.close()

    if state != LoopState.TERMINATED:
        return EXIT_INIT_FAILURE

    print(f"  Remote requests: {remote.requests} (timeouts: {remote.timeouts}, "
          f"failures handled: {task.remote_failures})")
    print(f"  Logged {log.rows} positions to {log.path}")

    if args.plot:
        path = None
        if log.path.exists() and log.path.stat().st_size > 0:
            path = np.loadtxt(log.path, delimiter=",", ndmin=2)
        plot_trajectories(demo.trajectories, path=path, attractor=demo.offset)

    return EXIT_OK


if __name__ == '__main__':
    sys.exit(main())
