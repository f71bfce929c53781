from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Optional
import numpy as np

'''
Separation of Concerns

- `JointState` = raw simulator state (joint positions/velocities)
- `FramePose` = where the end-effector is (SE(3) pose + spatial velocity)
- `ReferenceFrame` = in which axes frame velocities and Jacobians are expressed
- `TaskOutput` = how the 6-vector produced by the task dynamics is interpreted
- Each has a single, clear responsibility

Task dynamics produce a twist (or task acceleration) -> controller turns it into torques
'''

class ReferenceFrame(Enum):
    WORLD = auto()                  # linear part: velocity of the point at the world origin
    LOCAL_WORLD_ALIGNED = auto()    # linear part: velocity of the frame origin, world axes

class TaskOutput(Enum):
    VELOCITY = auto()
    ACCELERATION = auto()

class LoopState(Enum):
    INIT = auto()
    STEPPING = auto()
    TERMINATED = auto()
    ABORTED = auto()

@dataclass(frozen=True)
class JointState:
    q: np.ndarray   # (n,) Joint positions [rad]
    dq: np.ndarray  # (n,) Joint velocities [rad/s]

@dataclass(frozen=True)
class FramePose:
    """End-effector pose with optional spatial velocity.

    `velocity` is [vx, vy, vz, wx, wy, wz] (linear then angular), expressed in
    the reference frame of the model adapter that produced it.
    """
    translation: np.ndarray                         # (3,)
    rotation: np.ndarray = field(default_factory=lambda: np.eye(3))   # (3, 3)
    velocity: np.ndarray = field(default_factory=lambda: np.zeros(6)) # (6,)

    @property
    def linear_velocity(self) -> np.ndarray:
        return self.velocity[:3]

    @property
    def angular_velocity(self) -> np.ndarray:
        return self.velocity[3:]

@dataclass(frozen=True)
class QPSolution:
    z: np.ndarray                   # full decision vector [q^(oD); tau; slack]
    motion: np.ndarray              # (nP,) joint accelerations (oD=2) or velocities (oD=1)
    tau: Optional[np.ndarray]       # (nC,) joint torques, None when nC == 0
    slack: np.ndarray               # (nS,)
    status: str
    relaxed: bool = False
