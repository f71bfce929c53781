"""Tests for physics stepping with the controller zero-order hold."""

import numpy as np
import pytest

from panda_ds_control.core.simulator import Robot, Simulator

from conftest import FakeGraphics


class ConstantController:
    """Controller double returning a fixed torque and counting evaluations."""

    external = False

    def __init__(self, tau):
        self.tau = np.asarray(tau, dtype=float)
        self.calls = 0
        self.states = []

    def action(self, model):
        self.calls += 1
        self.states.append(model.state())
        return self.tau.copy()

    def activate_remote(self):
        pass

    def set_target(self, reference):
        pass


class TestSimulator:
    @pytest.mark.parametrize("dt, controller_dt", [(0.001, 0.0015), (0.01, 0.001), (0.001, 0.0)])
    def test_controller_period_must_be_multiple(self, model, dt, controller_dt):
        with pytest.raises(ValueError):
            Simulator(Robot(model), dt=dt, controller_dt=controller_dt)

    def test_timestep_applied_to_model(self, model):
        Simulator(Robot(model), dt=0.002, controller_dt=0.01)
        assert model.model.opt.timestep == pytest.approx(0.002)

    def test_zero_order_hold(self, model):
        controller = ConstantController(np.zeros(7))
        sim = Simulator(Robot(model).add_controller(controller), dt=0.001, controller_dt=0.01)
        sim.initialize()
        for i in range(30):
            assert sim.step(i)
        assert controller.calls == 3
        assert sim.controller_calls == 3
        assert sim.time == pytest.approx(0.03)

    def test_ctrl_is_torque_plus_gravity(self, model):
        tau = np.array([1.0, -1.0, 0.5, 0.0, 0.2, -0.2, 0.1])
        robot = Robot(model).add_controller(ConstantController(tau)).activate_gravity()
        sim = Simulator(robot, dt=0.001, controller_dt=0.01)
        sim.initialize()
        gravity = model.gravity_vector(model.state())
        sim.step(0)
        np.testing.assert_allclose(model.data.ctrl[:7], tau + gravity)

    def test_controller_torques_are_summed(self, model):
        a = ConstantController(np.ones(7))
        b = ConstantController(2.0 * np.ones(7))
        sim = Simulator(Robot(model).add_controller(a).add_controller(b), dt=0.001, controller_dt=0.001)
        sim.step(0)
        np.testing.assert_allclose(model.data.ctrl[:7], 3.0 * np.ones(7))

    def test_set_controller_replaces(self, model):
        a = ConstantController(np.ones(7))
        b = ConstantController(np.zeros(7))
        robot = Robot(model).add_controller(a).set_controller(b)
        assert robot.controllers == [b]
        assert robot.controller is b

    def test_gravity_compensation_holds_posture(self, model):
        robot = Robot(model).add_controller(ConstantController(np.zeros(7))).activate_gravity()
        sim = Simulator(robot, dt=0.001, controller_dt=0.01)
        sim.initialize()
        q0 = model.state()
        for i in range(200):
            sim.step(i)
        np.testing.assert_allclose(model.state(), q0, atol=1e-2)

    def test_closed_viewer_stops_stepping(self, model):
        graphics = FakeGraphics(close_after=5)
        sim = Simulator(Robot(model), dt=0.001, controller_dt=0.01, graphics=graphics)
        assert sim.initialize()
        steps = 0
        while sim.step(steps):
            steps += 1
        assert steps == 5
        sim.shutdown()
        assert graphics.shut_down

    def test_trajectories_forwarded_to_graphics(self, model):
        graphics = FakeGraphics()
        sim = Simulator(Robot(model), graphics=graphics)
        sim.add_trajectory(np.zeros((4, 3)), "red")
        assert graphics.trajectories[0][1] == "red"
