"""
Operation-space controller.

Jacobian-transpose of a task-space PD whose reference velocity is produced by
the task dynamics:

    tau = J^T (K (x* - x) + D (v* - J dq)),    v* = TaskDynamics(x)
"""

from dataclasses import replace
from typing import Optional

import numpy as np

from ..config import OperationSpaceParams, gain_matrix
from ..contracts import FramePose, TaskOutput
from ..feedback import Feedback
from ..model import RigidBodyModel
from ..spaces import RigidTransform3
from ..task_dynamics import TaskDynamics
from ..trajectory_log import TrajectoryWriter
from .base import BaseController


class OperationSpaceController(BaseController):
    """
    Task-space impedance on SE(3) mapped to torques through J^T.

    Example usage:
        controller = OperationSpaceController(model, target_pose, OperationSpaceParams())
        tau = controller.action(model)
    """

    def __init__(
        self,
        model: RigidBodyModel,
        reference: FramePose,
        params: Optional[OperationSpaceParams] = None,
        task: Optional[TaskDynamics] = None,
        trajectory_log: Optional[TrajectoryWriter] = None,
    ):
        """
        Args:
            model: Robot model adapter
            reference: Task-space target pose
            params: Controller gains (K defaults to 0, D to diag(20, 20, 20, 1, 1, 1))
            task: Task dynamics in velocity mode
            trajectory_log: Receives the end-effector position every tick in external mode
        """
        self.params = params or OperationSpaceParams()
        if self.params.d != 6:
            raise ValueError(f"Operation space dimension must be 6, got {self.params.d}")
        task = task or TaskDynamics()
        if task.output_kind != TaskOutput.VELOCITY:
            raise ValueError("Operation space control needs task dynamics with velocity output")
        super().__init__(self.params.dt, task, reference)

        self.model = model
        self.trajectory_log = trajectory_log
        self.feedback = (Feedback(RigidTransform3())
                         .set_stiffness(gain_matrix(self.params.stiffness, 6))
                         .set_damping(gain_matrix(self.params.damping, 6)))

    def action(self, model: RigidBodyModel) -> np.ndarray:
        state = model.joint_state()
        q, dq = state.q, state.dq

        # frame pose and velocity
        J = model.jacobian(q)
        pose = replace(model.frame_pose(q), velocity=J @ dq)

        if self.external and self.trajectory_log is not None:
            self.trajectory_log.append(pose.translation)

        # task space ds sets the reference twist
        target = replace(self.reference, velocity=self.task(pose))
        self.feedback.set_reference(target)

        self.tau = J.T @ self.feedback(pose)
        self.calls += 1
        return self.tau
