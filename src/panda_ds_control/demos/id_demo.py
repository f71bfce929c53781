"""QP inverse dynamics of the Franka Panda with remote task dynamics.

Each controller tick solves a QP on joint accelerations and torques, subject
to the manipulator dynamics and the joint position/velocity/acceleration/effort
limits. With --inverse-kinematics the QP has no torque variables and the solved
motion is tracked by a joint space PD with gravity compensation.

Usage:
    panda-ds-server 1 &
    panda-id-demo 1
    panda-id-demo 1 --inverse-kinematics --headless --no-realtime
"""

import sys
from dataclasses import replace
from typing import Optional, Sequence

from ..core.config import load_config, load_demo
from ..core.contracts import FramePose, LoopState
from ..core.controllers import InverseDynamicsController
from ..core.errors import ControlError, ModelError, TransportError
from ..core.remote import RemoteDynamics
from ..core.simulator import Robot
from ..core.task_dynamics import TaskDynamics
from ..visualization.plot import plot_trajectories
from .common import (
    EXIT_ABORTED, EXIT_INIT_FAILURE, EXIT_OK,
    build_loop, build_model, build_parser, build_simulator, print_configuration, setup_logging,
)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point for the inverse dynamics demo."""
    parser = build_parser(
        'QP inverse dynamics of the Franka Panda with remote task dynamics',
        'inverse_dynamics.yaml',
    )
    parser.add_argument(
        '--inverse-kinematics',
        action='store_true',
        help='Drop the torque variables (nC = 0) and track the QP motion with a joint PD'
    )
    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    try:
        config = load_config(args.config)
        if config.controller_type != "inverse_dynamics":
            raise ValueError(f"{args.config} configures '{config.controller_type}', expected inverse_dynamics")
        demo = load_demo(config.demos_root, args.demo, config.num_trajectories)
        model = build_model(config)
        remote = RemoteDynamics(config.remote_host, config.remote_port, config.remote_timeout_s)
    except (OSError, ValueError, ModelError, TransportError) as e:
        print(f"✗ Initialization failed: {e}")
        return EXIT_INIT_FAILURE

    params = config.controller
    if args.inverse_kinematics:
        params = replace(params, qp=replace(params.qp, nC=0))

    print_configuration(config, demo)

    task = TaskDynamics(config.task, remote=remote)
    target = FramePose(translation=demo.target_position, rotation=config.orientation)
    try:
        controller = InverseDynamicsController(model, target, params, task)
    except (ValueError, ControlError) as e:
        print(f"✗ Initialization failed: {e}")
        remote.close()
        return EXIT_INIT_FAILURE
    print(f"✓ {controller.qp}")

    robot = Robot(model).add_controller(controller)
    if config.gravity_compensation:
        robot.activate_gravity()

    simulator = build_simulator(config, robot, args.headless)
    for trajectory in demo.trajectories:
        simulator.add_trajectory(trajectory, "green")

    loop = build_loop(config, simulator, demo, args.horizon, not args.no_realtime)

    try:
        state = loop.run()
    except ControlError as e:
        print(f"✗ Aborted: {e}")
        return EXIT_ABORTED
    finally:
        remote.close()

    if state != LoopState.TERMINATED:
        return EXIT_INIT_FAILURE

    print(f"  QP solves: {controller.qp.solve_count} (relaxed: {controller.qp.relaxed_count}, "
          f"failed: {controller.solver_failures})")
    print(f"  Remote requests: {remote.requests} (timeouts: {remote.timeouts})")

    if args.plot:
        plot_trajectories(demo.trajectories, attractor=demo.offset)

    return EXIT_OK


if __name__ == '__main__':
    sys.exit(main())
