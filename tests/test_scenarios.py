"""End-to-end runs of both controllers on the simulated Panda."""

import numpy as np
import yaml

from panda_ds_control.core.config import InverseDynamicsParams, TaskDynamicsParams, load_config, load_demo
from panda_ds_control.core.contracts import FramePose, LoopState, TaskOutput
from panda_ds_control.core.controllers import InverseDynamicsController, OperationSpaceController
from panda_ds_control.core.remote import RemoteDynamics
from panda_ds_control.core.simulator import Robot, Simulator
from panda_ds_control.core.task_dynamics import TaskDynamics
from panda_ds_control.demos import id_demo, os_demo
from panda_ds_control.demos.common import build_loop, build_model, build_simulator

from conftest import ATTRACTOR, CONFIG_DIR, DEMOS_ROOT


def local_config(tmp_path, name, port, **task):
    with open(CONFIG_DIR / name) as f:
        data = yaml.safe_load(f)
    data["remote"] = {"host": "127.0.0.1", "port": port, "timeout_s": 0.05}
    data["task"].update(task)
    path = tmp_path / name
    path.write_text(yaml.safe_dump(data))
    return str(path)


class TestOperationSpaceScenario:
    def test_reaches_attractor_through_remote_dynamics(self, tmp_path, ds_server):
        config = local_config(tmp_path, "operation_space.yaml", ds_server.port, num_trajectories=1)
        log = tmp_path / "demo_os_1.csv"

        code = os_demo.main(["1", "--headless", "--no-realtime", "--config", config, "--log", str(log)])

        assert code == 0
        assert ds_server.served > 0
        rows = np.loadtxt(log, delimiter=",", ndmin=2)
        target = load_demo(DEMOS_ROOT, "1").target_position
        # logging starts at the hand-off and ends at the attractor
        assert np.linalg.norm(rows[0] - target) <= 0.06
        assert np.linalg.norm(rows[-1] - ATTRACTOR) <= 0.06

    def test_latches_within_three_seconds(self, tmp_path, ds_server):
        config = load_config(local_config(tmp_path, "operation_space.yaml", ds_server.port, num_trajectories=1))
        demo = load_demo(config.demos_root, "1", 1)
        model = build_model(config)
        remote = RemoteDynamics("127.0.0.1", ds_server.port, 0.05)
        task = TaskDynamics(config.task, remote=remote)
        target = FramePose(translation=demo.target_position, rotation=config.orientation)
        controller = OperationSpaceController(model, target, config.controller, task)
        robot = Robot(model).add_controller(controller).activate_gravity()
        loop = build_loop(config, build_simulator(config, robot, True), demo, None, False,
                          attractor=demo.offset)
        try:
            state = loop.run()
        finally:
            remote.close()

        assert state == LoopState.TERMINATED
        assert loop.reason == "attractor reached"
        assert loop.latch_time is not None
        assert loop.latch_time <= 3.0


class TestInverseDynamicsScenario:
    def test_reaches_target_within_limits(self, model):
        target = FramePose(translation=np.array([0.4, 0.0, 0.5]), rotation=np.eye(3))
        task = TaskDynamics(TaskDynamicsParams(position_stiffness=25.0, position_damping=10.0,
                                               output=TaskOutput.ACCELERATION))
        controller = InverseDynamicsController(model, target, InverseDynamicsParams(), task)
        sim = Simulator(Robot(model).add_controller(controller), dt=0.001, controller_dt=0.01)
        sim.initialize()

        max_tau = np.zeros(7)
        for i in range(5000):
            sim.step(i)
            max_tau = np.maximum(max_tau, np.abs(sim.tau))

        assert np.linalg.norm(model.frame_position() - target.translation) <= 0.01
        assert np.all(max_tau <= model.effort_upper + 1e-3)
        assert controller.qp.relaxed_count == 0
        assert controller.solver_failures == 0

    def test_id_demo_headless(self, tmp_path, ds_server, capsys):
        config = local_config(tmp_path, "inverse_dynamics.yaml", ds_server.port)
        code = id_demo.main(["1", "--headless", "--no-realtime", "--config", config, "--horizon", "3"])
        out = capsys.readouterr().out
        assert code == 0
        assert "relaxed: 0, failed: 0" in out
        assert "Remote latched at:" in out

    def test_id_demo_inverse_kinematics_headless(self, tmp_path, ds_server, capsys):
        config = local_config(tmp_path, "inverse_dynamics.yaml", ds_server.port)
        code = id_demo.main(["1", "--headless", "--no-realtime", "--inverse-kinematics",
                             "--config", config, "--horizon", "2"])
        out = capsys.readouterr().out
        assert code == 0
        assert "relaxed: 0, failed: 0" in out
