"""
Offline plots of demonstrations and logged end-effector paths.
"""

from pathlib import Path
from typing import Optional, Sequence, Union

import matplotlib.pyplot as plt
import numpy as np


def set_axes_equal(ax):
    """Equal scale on the three axes of a 3D plot."""
    limits = np.array([ax.get_xlim3d(), ax.get_ylim3d(), ax.get_zlim3d()])
    center = limits.mean(axis=1)
    radius = 0.5 * np.max(limits[:, 1] - limits[:, 0])
    ax.set_xlim3d(center[0] - radius, center[0] + radius)
    ax.set_ylim3d(center[1] - radius, center[1] + radius)
    ax.set_zlim3d(center[2] - radius, center[2] + radius)


def plot_trajectories(
    demonstrations: Sequence[np.ndarray],
    path: Optional[np.ndarray] = None,
    attractor: Optional[np.ndarray] = None,
    save_path: Optional[Union[str, Path]] = None,
    show: bool = True,
):
    """
    Plot demonstrations (red from the fourth on, blue before) and the executed path.

    Args:
        demonstrations: (N_i, 3) trajectories in the simulator frame
        path: (M, 3) logged end-effector positions
        attractor: Position of the DS attractor
        save_path: Write the figure there when given
        show: Open an interactive window

    Returns:
        The matplotlib figure
    """
    fig = plt.figure(figsize=(6, 6))
    ax = fig.add_subplot(111, projection='3d')

    for i, traj in enumerate(demonstrations):
        color = "red" if i >= 3 else "blue"
        ax.plot(*np.asarray(traj).T, color=color, linewidth=1, label="demonstration" if i == 0 else None)

    if path is not None and len(path) > 0:
        ax.plot(*np.asarray(path).reshape(-1, 3).T, color="black", linewidth=2, label="end effector")

    if attractor is not None:
        ax.scatter(*np.asarray(attractor).reshape(3, 1), color="green", s=40, label="attractor")

    set_axes_equal(ax)
    ax.legend()
    ax.set_xlabel('X')
    ax.set_ylabel('Y')
    ax.set_zlabel('Z')

    plt.tight_layout()
    if save_path is not None:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        print(f"✓ Saved plot to {save_path}")
    if show:
        plt.show()
    return fig
