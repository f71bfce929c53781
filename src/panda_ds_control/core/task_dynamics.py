"""
Task-space dynamical system.

Produces the desired end-effector motion [linear; angular] from the current
pose and twist. The linear part comes either from a local PD toward the
reference position or, once the remote latch is set, from the remote dynamics
server. The latch is one-way: once remote, always remote.
"""

import logging
from typing import Optional

import numpy as np

from .config import TaskDynamicsParams, gain_matrix
from .contracts import FramePose, TaskOutput
from .errors import RemoteTimeout
from .feedback import Feedback
from .ports import DynamicsSource
from .spaces import Euclidean, Rotation3

logger = logging.getLogger(__name__)


class TaskDynamics:
    """
    Task-space DS with a pluggable remote source for the linear part.

    Example:
        ds = TaskDynamics(TaskDynamicsParams(position_stiffness=5.0), remote=RemoteDynamics())
        ds.set_reference(target_pose)
        u = ds.update(current_pose)   # (6,)
        ds.activate_remote()          # from now on the linear part is remote
    """

    def __init__(self, params: Optional[TaskDynamicsParams] = None, remote: Optional[DynamicsSource] = None):
        self.params = params or TaskDynamicsParams()
        self.remote = remote
        self.output_kind = self.params.output
        self.orientation = self.params.orientation

        self._pos = (Feedback(Euclidean(3))
                     .set_stiffness(gain_matrix(self.params.position_stiffness, 3))
                     .set_damping(gain_matrix(self.params.position_damping, 3)))
        self._rot = (Feedback(Rotation3())
                     .set_stiffness(gain_matrix(self.params.rotation_stiffness, 3))
                     .set_damping(gain_matrix(self.params.rotation_damping, 3)))

        # velocity tracking gain used to turn a remote velocity into an acceleration
        if self.params.remote_gain is not None:
            self.remote_gain = float(self.params.remote_gain)
        else:
            self.remote_gain = float(np.max(np.diag(gain_matrix(self.params.position_damping, 3))))

        self._external = False
        self._last_remote = np.zeros(3)
        self.remote_failures = 0
        self.output = np.zeros(6)
        self.reference: Optional[FramePose] = None

    @property
    def external(self) -> bool:
        return self._external

    def activate_remote(self) -> None:
        """Switch the linear part to the remote source. Never reverts."""
        if self.remote is None:
            raise ValueError("No remote dynamics client configured")
        if not self._external:
            logger.info("Activating remote dynamics (%s)", self.remote)
        self._external = True

    def set_reference(self, pose: FramePose) -> "TaskDynamics":
        self.reference = pose
        self._pos.set_reference(pose.translation, pose.linear_velocity)
        self._rot.set_reference(pose.rotation, pose.angular_velocity)
        return self

    def update(self, pose: FramePose) -> np.ndarray:
        u = np.zeros(6)

        # position ds
        if self._external:
            u[:3] = self._remote_linear(pose)
        else:
            u[:3] = self._pos(pose.translation, pose.linear_velocity)

        # orientation ds
        if self.orientation:
            u[3:] = self._rot(pose.rotation, pose.angular_velocity)

        self.output = u
        return u

    __call__ = update

    def _remote_linear(self, pose: FramePose) -> np.ndarray:
        try:
            self._last_remote = self.remote.request(pose.translation)
        except RemoteTimeout as e:
            # hold the last commanded velocity
            self.remote_failures += 1
            logger.warning("Remote dynamics unavailable (%s), reusing %s", e, self._last_remote)

        if self.output_kind == TaskOutput.ACCELERATION:
            return self.remote_gain * (self._last_remote - pose.linear_velocity)
        return self._last_remote.copy()
