"""
Abstract visualizer interface.
Control loop doesn't depend on visualization!
"""

from abc import ABC, abstractmethod
import numpy as np

# Named trajectory colors (RGBA)
COLORS = {
    "green": (0.1, 0.8, 0.2, 1.0),
    "red": (0.9, 0.1, 0.1, 1.0),
    "blue": (0.1, 0.3, 0.9, 1.0),
    "yellow": (0.9, 0.8, 0.1, 1.0),
}


class Visualizer(ABC):
    """Abstract base class for visualizers."""

    @abstractmethod
    def initialize(self) -> bool:
        """Initialize visualizer."""
        pass

    @abstractmethod
    def update(self) -> None:
        """Update visualization with the current simulated state."""
        pass

    @abstractmethod
    def is_running(self) -> bool:
        """Check if visualizer is still active."""
        pass

    @abstractmethod
    def shutdown(self) -> None:
        """Shutdown visualizer."""
        pass

    @abstractmethod
    def add_trajectory(self, points: np.ndarray, color: str = "green") -> None:
        """Draw a polyline of 3D points in world coordinates."""
        pass
