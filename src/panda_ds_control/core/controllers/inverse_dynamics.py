"""
Inverse-dynamics controller.

Each tick the task dynamics produce a desired end-effector acceleration (or
velocity for oD = 1) and the QP resolves it into joint motion and torques
subject to the manipulator dynamics and the joint limits.

With nC = 0 the QP carries no torque variables (inverse kinematics): the
solved motion is integrated over one control period and tracked with a joint
space PD plus gravity compensation.
"""

import logging
from dataclasses import replace
from typing import Optional

import numpy as np

from ..config import InverseDynamicsParams, TaskDynamicsParams, gain_matrix
from ..contracts import FramePose, TaskOutput
from ..errors import SolverError
from ..feedback import Feedback
from ..model import RigidBodyModel
from ..qp import InverseDynamicsQP
from ..spaces import Euclidean
from ..task_dynamics import TaskDynamics
from .base import BaseController

logger = logging.getLogger(__name__)

INPUT_REFERENCES = ("gravity", "nonlinear_effects")


class InverseDynamicsController(BaseController):
    """
    QP-based task-space controller.

    Example usage:
        controller = InverseDynamicsController(model, target_pose, InverseDynamicsParams())
        tau = controller.action(model)
    """

    def __init__(
        self,
        model: RigidBodyModel,
        reference: FramePose,
        params: Optional[InverseDynamicsParams] = None,
        task: Optional[TaskDynamics] = None,
    ):
        """
        Args:
            model: Robot model adapter, its current state initializes the QP
            reference: Task-space target pose
            params: QP sizes/costs/constraints and the auxiliary PD gains
            task: Task dynamics, acceleration output for oD = 2 and velocity for oD = 1
        """
        self.params = params or InverseDynamicsParams()
        qp_params = self.params.qp
        expected = TaskOutput.ACCELERATION if qp_params.oD == 2 else TaskOutput.VELOCITY
        task = task or TaskDynamics(TaskDynamicsParams(output=expected))
        if task.output_kind != expected:
            raise ValueError(f"oD={qp_params.oD} needs task dynamics with {expected.name.lower()} output")
        if self.params.input_reference not in INPUT_REFERENCES:
            raise ValueError(f"input_reference must be one of {INPUT_REFERENCES}, got '{self.params.input_reference}'")
        super().__init__(self.params.dt, task, reference)

        self.model = model
        n = model.dof

        # configuration space ds toward the mid-range posture
        self.posture = model.mid_range()
        self.config = None
        if self.params.config_stiffness is not None:
            damping = 0.0 if self.params.config_damping is None else self.params.config_damping
            self.config = (Feedback(Euclidean(n))
                           .set_stiffness(gain_matrix(self.params.config_stiffness, n))
                           .set_damping(gain_matrix(damping, n))
                           .set_reference(self.posture))

        # joint space tracking (inverse kinematics variant)
        self.joint_stiffness = gain_matrix(self.params.joint_stiffness, n)
        self.joint_damping = gain_matrix(self.params.joint_damping, n)

        self.qp = InverseDynamicsQP(model, qp_params)
        state = model.joint_state()
        q, dq = state.q, state.dq
        self.qp.init(q, dq, np.zeros(6), self._input_reference(q, dq), self._state_reference(q, dq))

        self.solver_failures = 0
        self._consecutive_failures = 0

    @property
    def inverse_kinematics(self) -> bool:
        return self.qp.nC == 0

    def _state_reference(self, q: np.ndarray, dq: np.ndarray) -> Optional[np.ndarray]:
        if self.config is None:
            return None
        return self.config(q, dq)

    def _input_reference(self, q: np.ndarray, dq: np.ndarray) -> np.ndarray:
        if self.params.input_reference == "gravity":
            return self.model.gravity_vector(q)
        return self.model.nonlinear_effects(q, dq)

    def action(self, model: RigidBodyModel) -> np.ndarray:
        state = model.joint_state()
        q, dq = state.q, state.dq

        state_reference = self._state_reference(q, dq)
        input_reference = self._input_reference(q, dq)

        # task
        pose = replace(model.frame_pose(q), velocity=model.frame_velocity(q, dq))
        task_reference = self.task(pose)

        try:
            sol = self.qp.solve(q, dq, task_reference, input_reference, state_reference)
        except SolverError as e:
            self.solver_failures += 1
            self._consecutive_failures += 1
            if self.tau is None or self._consecutive_failures > 1:
                logger.error("QP failed %d time(s) in a row: %s", self._consecutive_failures, e)
                raise
            logger.error("QP failed, repeating previous torque: %s", e)
            return self.tau
        self._consecutive_failures = 0

        if self.inverse_kinematics:
            tau = self._track(model, q, dq, sol.motion)
        else:
            tau = sol.tau

        self.tau = tau
        self.calls += 1
        return tau

    def _track(self, model: RigidBodyModel, q: np.ndarray, dq: np.ndarray, motion: np.ndarray) -> np.ndarray:
        """Integrate the solved motion over one period and track it with a joint PD."""
        if self.qp.oD == 2:
            q_ref = q + self.dt * dq + 0.5 * self.dt * self.dt * motion
            dq_ref = np.zeros_like(dq)
        else:
            q_ref = q + self.dt * motion
            dq_ref = motion
        return (self.joint_stiffness @ (q_ref - q)
                + self.joint_damping @ (dq_ref - dq)
                + model.gravity_vector(q))
