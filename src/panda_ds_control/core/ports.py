from __future__ import annotations
from typing import Protocol
import numpy as np
from .contracts import FramePose
from .model import RigidBodyModel

class Controller(Protocol):
    """Protocol for torque controllers evaluated by the simulator."""
    @property
    def external(self) -> bool: ...
    def action(self, model: RigidBodyModel) -> np.ndarray: ...
    def activate_remote(self) -> None: ...
    def set_target(self, reference: FramePose) -> None: ...

class DynamicsSource(Protocol):
    """Protocol for remote sources of desired end-effector velocities."""
    def request(self, position: np.ndarray) -> np.ndarray:
        """
        Query the desired linear velocity at a position.

        Raises:
            RemoteTimeout: no usable reply within the request timeout
        """
        ...

    def close(self) -> None: ...

class Graphics(Protocol):
    """
    Protocol for simulator front-ends.

    Standardizes how the simulator drives a viewer, regardless of the
    underlying framework (MuJoCo passive viewer, headless test doubles, etc.).
    """
    def initialize(self) -> bool:
        """
        Open the front-end.

        Returns:
            True if successful, False otherwise
        """
        ...

    def update(self) -> None:
        """Render the current simulated state."""
        ...

    def is_running(self) -> bool:
        """False once the user closed the window."""
        ...

    def add_trajectory(self, points: np.ndarray, color: str = "green") -> None: ...

    def shutdown(self) -> None:
        """Close the front-end and cleanup resources."""
        ...
