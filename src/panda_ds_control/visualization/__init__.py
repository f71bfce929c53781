"""
Visualization package: MuJoCo passive viewer front-end and offline plots.
"""

from .mujoco_viewer import MuJoCoVisualizer
from .visualizer import Visualizer

__all__ = [
    'MuJoCoVisualizer',
    'Visualizer',
]
