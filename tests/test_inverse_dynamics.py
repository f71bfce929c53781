"""Tests for the QP inverse-dynamics controller."""

from dataclasses import replace

import numpy as np
import pytest

from panda_ds_control.core.config import InverseDynamicsParams, QPParams, TaskDynamicsParams
from panda_ds_control.core.contracts import FramePose, TaskOutput
from panda_ds_control.core.controllers import InverseDynamicsController
from panda_ds_control.core.errors import SolverError
from panda_ds_control.core.task_dynamics import TaskDynamics


def target_near(model, offset=(0.05, 0.02, -0.05)):
    current = model.frame_pose(model.state())
    return FramePose(translation=current.translation + np.asarray(offset), rotation=current.rotation)


def acceleration_task(**kwargs):
    return TaskDynamics(TaskDynamicsParams(output=TaskOutput.ACCELERATION, **kwargs))


class TestInverseDynamicsController:
    def test_torques_within_effort_limits(self, model):
        controller = InverseDynamicsController(model, target_near(model), task=acceleration_task(
            position_stiffness=25.0, position_damping=10.0))
        tau = controller.action(model)
        assert tau.shape == (7,)
        assert np.all(np.abs(tau) <= model.effort_upper + 1e-3)
        assert controller.calls == 1
        assert controller.qp.solve_count == 1
        assert not controller.inverse_kinematics

    def test_task_acceleration_tracked(self, model):
        controller = InverseDynamicsController(model, target_near(model), task=acceleration_task(
            position_stiffness=25.0, position_damping=10.0))
        controller.action(model)
        sol = controller.qp.last_solution
        q, dq = model.state(), model.velocity()
        a_task = controller.task.output
        # translation rows carry the large slack weight
        achieved = model.jacobian(q) @ sol.motion + model.jacobian_derivative(q, dq) @ dq
        np.testing.assert_allclose(achieved[:3], a_task[:3], atol=1e-2)

    def test_inverse_kinematics_tracks_integrated_motion(self, model):
        params = InverseDynamicsParams()
        params = replace(params, qp=replace(params.qp, nC=0))
        controller = InverseDynamicsController(model, target_near(model), params, acceleration_task())
        assert controller.inverse_kinematics

        dq = np.full(7, 0.05)
        model.set_state(model.state(), dq)
        tau = controller.action(model)

        q = model.state()
        motion = controller.qp.last_solution.motion
        assert controller.qp.last_solution.tau is None
        dt = params.dt
        q_ref = q + dt * dq + 0.5 * dt * dt * motion
        expected = (controller.joint_stiffness @ (q_ref - q)
                    + controller.joint_damping @ (-dq)
                    + model.gravity_vector(q))
        np.testing.assert_allclose(tau, expected, atol=1e-9)

    def test_velocity_level_inverse_kinematics(self, model):
        params = InverseDynamicsParams(qp=QPParams(nC=0, oD=1))
        task = TaskDynamics(TaskDynamicsParams(output=TaskOutput.VELOCITY))
        controller = InverseDynamicsController(model, target_near(model), params, task)
        tau = controller.action(model)

        q, dq = model.state(), model.velocity()
        motion = controller.qp.last_solution.motion
        expected = (controller.joint_stiffness @ (params.dt * motion)
                    + controller.joint_damping @ (motion - dq)
                    + model.gravity_vector(q))
        np.testing.assert_allclose(tau, expected, atol=1e-9)

    def test_single_failure_repeats_previous_torque(self, model, monkeypatch):
        controller = InverseDynamicsController(model, target_near(model))
        tau = controller.action(model)

        def fail(*args, **kwargs):
            raise SolverError("primal infeasible")

        monkeypatch.setattr(controller.qp, "solve", fail)
        np.testing.assert_array_equal(controller.action(model), tau)
        assert controller.solver_failures == 1

        # a second failure in a row propagates
        with pytest.raises(SolverError):
            controller.action(model)
        assert controller.solver_failures == 2

    def test_failure_on_first_tick_propagates(self, model, monkeypatch):
        controller = InverseDynamicsController(model, target_near(model))

        def fail(*args, **kwargs):
            raise SolverError("primal infeasible")

        monkeypatch.setattr(controller.qp, "solve", fail)
        with pytest.raises(SolverError):
            controller.action(model)
        assert controller.tau is None

    def test_posture_reference_optional(self, model):
        params = InverseDynamicsParams(config_stiffness=None)
        controller = InverseDynamicsController(model, target_near(model), params)
        assert controller.config is None
        assert controller.action(model).shape == (7,)

    def test_task_output_must_match_order(self, model):
        params = InverseDynamicsParams(qp=QPParams(nC=0, oD=1))
        with pytest.raises(ValueError, match="velocity"):
            InverseDynamicsController(model, target_near(model), params, acceleration_task())

    def test_unknown_input_reference(self, model):
        with pytest.raises(ValueError):
            InverseDynamicsController(model, target_near(model), InverseDynamicsParams(input_reference="zero"))
