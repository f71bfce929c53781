"""
Abstract base class for torque controllers.

This module defines the interface shared by the operation-space and the
inverse-dynamics controllers, so that the simulator and the control loop can
drive either one without knowing which variant is attached.
"""

from abc import ABC, abstractmethod
from typing import Optional
import numpy as np

from ..contracts import FramePose
from ..model import RigidBodyModel
from ..task_dynamics import TaskDynamics


class BaseController(ABC):
    """
    Abstract base class for task-space torque controllers.

    A controller turns the desired end-effector motion produced by its task
    dynamics into joint torques. It is evaluated by the simulator once per
    control period and owns its feedback and optimization blocks.

    This class implements the Controller Protocol defined in ports.py.

    Example usage:
        controller = OperationSpaceController(model, target_pose, params, task)
        tau = controller.action(model)
        controller.activate_remote()   # hand the linear motion to the remote DS
    """

    def __init__(self, control_dt: float, task: TaskDynamics, reference: FramePose):
        """
        Initialize base controller.

        Args:
            control_dt: Controller period (seconds)
            task: Task-space dynamics producing the desired motion
            reference: Task-space target pose
        """
        if control_dt <= 0.0:
            raise ValueError("control_dt must be positive")
        self.dt = control_dt
        self.task = task
        self.reference = reference
        self.task.set_reference(reference)

        # Last commanded torque
        self.tau: Optional[np.ndarray] = None
        self.calls = 0

    @abstractmethod
    def action(self, model: RigidBodyModel) -> np.ndarray:
        """
        Compute joint torques for the current simulated state.

        Args:
            model: Robot model whose data holds the current state

        Returns:
            (n,) joint torques [Nm]
        """
        pass

    @property
    def external(self) -> bool:
        """True once the task dynamics follow the remote source."""
        return self.task.external

    def activate_remote(self) -> None:
        """Latch the task dynamics onto the remote source (one-way)."""
        self.task.activate_remote()

    def set_target(self, reference: FramePose) -> None:
        """
        Replace the task-space target.

        Args:
            reference: New target pose (zero or commanded twist)
        """
        self.reference = reference
        self.task.set_reference(reference)
