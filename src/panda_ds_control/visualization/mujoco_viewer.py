"""
MuJoCo-specific visualizer.
Wraps MuJoCo viewer as optional component with asynchronous rendering.

The passive viewer runs in a separate thread and renders at display refresh rate (~60 Hz).
The simulator calls update() every physics step - viewer.sync() is non-blocking.
Demonstration trajectories are drawn as small spheres in the viewer's user scene.
"""

import mujoco
import mujoco.viewer
import numpy as np
from typing import List, Optional, Tuple

from .visualizer import COLORS, Visualizer

# Radius of the spheres marking trajectory samples [m]
POINT_RADIUS = 0.004


class MuJoCoVisualizer(Visualizer):
    """
    MuJoCo visualization implementation with asynchronous rendering.

    Uses MuJoCo's passive viewer which runs rendering in a separate thread.
    The update() method is non-blocking and can be called at high frequency
    without impacting control loop performance.
    """

    def __init__(self, model, data, camera_config: Optional[dict] = None, max_points: int = 200):
        """
        Args:
            model: MuJoCo model
            data: MuJoCo data (the simulated state)
            camera_config: Camera position settings (dict with 'distance', 'elevation', 'azimuth', 'lookat')
            max_points: Maximum number of spheres drawn per trajectory
        """
        self.model = model
        self.data = data
        self.camera_config = camera_config or {}
        self.max_points = max_points
        self.viewer = None
        self.viewer_context = None
        self._trajectories: List[Tuple[np.ndarray, str]] = []

    def initialize(self) -> bool:
        """
        Launch MuJoCo passive viewer.

        Returns:
            True if successful, False otherwise
        """
        try:
            self.viewer_context = mujoco.viewer.launch_passive(
                self.model, self.data, show_left_ui=False, show_right_ui=False
            )
            self.viewer = self.viewer_context.__enter__()
            self._setup_camera()
            for points, color in self._trajectories:
                self._draw(points, color)
            print("✓ MuJoCo viewer initialized (asynchronous rendering enabled)")
            return True
        except Exception as e:
            print(f"Failed to initialize MuJoCo viewer: {e}")
            return False

    def update(self) -> None:
        """Update viewer (non-blocking)."""
        if self.viewer is not None:
            self.viewer.sync()

    def is_running(self) -> bool:
        """
        Check if viewer window is open.

        Returns:
            True if window is open, False otherwise
        """
        if self.viewer is None:
            return False
        return self.viewer.is_running()

    def shutdown(self) -> None:
        """Close viewer and clean up resources."""
        if self.viewer_context is not None:
            self.viewer_context.__exit__(None, None, None)
            self.viewer_context = None
            self.viewer = None
            print("✓ MuJoCo viewer closed")

    def add_trajectory(self, points: np.ndarray, color: str = "green") -> None:
        """
        Draw a trajectory. Trajectories added before initialize() are drawn on launch.

        Args:
            points: (N, 3) positions in world coordinates
            color: Key of COLORS
        """
        if color not in COLORS:
            raise ValueError(f"Unknown color '{color}', expected one of {sorted(COLORS)}")
        points = np.asarray(points, dtype=float).reshape(-1, 3)
        self._trajectories.append((points, color))
        if self.viewer is not None:
            self._draw(points, color)

    def _draw(self, points: np.ndarray, color: str) -> None:
        stride = max(1, int(np.ceil(len(points) / self.max_points)))
        rgba = np.array(COLORS[color], dtype=np.float32)
        with self.viewer.lock():
            scn = self.viewer.user_scn
            for p in points[::stride]:
                if scn.ngeom >= scn.maxgeom:
                    break
                mujoco.mjv_initGeom(
                    scn.geoms[scn.ngeom],
                    type=mujoco.mjtGeom.mjGEOM_SPHERE,
                    size=np.array([POINT_RADIUS, 0.0, 0.0]),
                    pos=p,
                    mat=np.eye(3).flatten(),
                    rgba=rgba,
                )
                scn.ngeom += 1

    def _setup_camera(self):
        """Configure camera position from camera_config."""
        if self.viewer is not None:
            self.viewer.cam.distance = self.camera_config.get('distance', 2.0)
            self.viewer.cam.elevation = self.camera_config.get('elevation', -20)
            self.viewer.cam.azimuth = self.camera_config.get('azimuth', 135)

            lookat = self.camera_config.get('lookat', None)
            if lookat is not None:
                self.viewer.cam.lookat[:] = lookat
