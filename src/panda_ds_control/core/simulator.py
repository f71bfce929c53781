"""
Physics stepping with controllers evaluated inside the step.

The Simulator owns the robot (and through it the MjData shared with the model
adapter). Controllers run at the controller period; in between, the last
torque is held (zero-order hold) while physics advances at the simulation
period.

Example usage:
    robot = Robot(model).add_controller(controller).activate_gravity()
    sim = Simulator(robot, dt=0.001, controller_dt=0.01, graphics=MuJoCoVisualizer(model.model, model.data))
    sim.initialize()
    for i in range(1000):
        if not sim.step(i):
            break
    sim.shutdown()
"""

from typing import List, Optional

import mujoco
import numpy as np

from .model import RigidBodyModel
from .ports import Controller, Graphics


class Robot:
    """A model adapter with its attached controllers."""

    def __init__(self, model: RigidBodyModel):
        self.model = model
        self.controllers: List[Controller] = []
        self.gravity = False

    def add_controller(self, controller: Controller) -> "Robot":
        self.controllers.append(controller)
        return self

    def set_controller(self, controller: Controller) -> "Robot":
        self.controllers = [controller]
        return self

    def activate_gravity(self) -> "Robot":
        """Add gravity compensation on top of the controller torques."""
        self.gravity = True
        return self

    @property
    def controller(self) -> Optional[Controller]:
        return self.controllers[0] if self.controllers else None

    def action(self) -> np.ndarray:
        """Sum of the torques of all attached controllers."""
        tau = np.zeros(self.model.dof)
        for controller in self.controllers:
            tau += controller.action(self.model)
        return tau


class Simulator:
    def __init__(
        self,
        robot: Robot,
        dt: float = 0.001,
        controller_dt: float = 0.01,
        graphics: Optional[Graphics] = None,
    ):
        """
        Args:
            robot: Robot whose model data is stepped
            dt: Physics period (seconds), overrides the model timestep
            controller_dt: Controller period (seconds), an integer multiple of dt
            graphics: Optional viewer
        """
        ratio = controller_dt / dt
        self.decimation = int(round(ratio))
        if self.decimation < 1 or abs(ratio - self.decimation) > 1e-6:
            raise ValueError(f"controller_dt={controller_dt} must be an integer multiple of dt={dt}")

        self.robot = robot
        self.model = robot.model
        self.dt = dt
        self.controller_dt = controller_dt
        self.graphics = graphics

        self.model.model.opt.timestep = dt
        self.tau = np.zeros(self.model.dof)
        self.controller_calls = 0

    @property
    def time(self) -> float:
        return self.model.data.time

    def initialize(self) -> bool:
        mujoco.mj_forward(self.model.model, self.model.data)
        if self.graphics is not None:
            return self.graphics.initialize()
        return True

    def add_trajectory(self, points: np.ndarray, color: str = "green") -> None:
        if self.graphics is not None:
            self.graphics.add_trajectory(points, color)

    def step(self, index: int) -> bool:
        """
        Advance physics by one period.

        Args:
            index: Physics tick counter, the controllers run when it is a multiple of the decimation

        Returns:
            False if the viewer has been closed, True otherwise
        """
        if self.graphics is not None and not self.graphics.is_running():
            return False

        data = self.model.data
        if index % self.decimation == 0 and self.robot.controllers:
            self.tau = self.robot.action()
            self.controller_calls += 1

        ctrl = self.tau
        if self.robot.gravity:
            ctrl = ctrl + self.model.gravity_vector(self.model.state())

        data.ctrl[:self.model.dof] = ctrl
        mujoco.mj_step(self.model.model, data)

        if self.graphics is not None:
            self.graphics.update()
        return True

    def shutdown(self) -> None:
        if self.graphics is not None:
            self.graphics.shutdown()
