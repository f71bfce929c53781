"""
Proportional-derivative feedback on a geometric space.

    u = K log(x_ref, x) + D (v_ref - v)

Example usage:
    pos = Feedback(Euclidean(3)).set_stiffness(5.0 * np.eye(3))
    pos.set_reference(target)
    u = pos(current_position, current_velocity)
"""

from typing import Any, Optional

import numpy as np

from .contracts import FramePose
from .spaces import Space


def _check_gain(gain: np.ndarray, dim: int, name: str) -> np.ndarray:
    gain = np.atleast_2d(np.asarray(gain, dtype=float))
    if gain.shape != (dim, dim):
        raise ValueError(f"{name} must be {dim}x{dim}, got {gain.shape}")
    if not np.allclose(gain, gain.T):
        raise ValueError(f"{name} must be symmetric")
    if np.min(np.linalg.eigvalsh(gain)) < -1e-9:
        raise ValueError(f"{name} must be positive semi-definite")
    return gain


class Feedback:
    """PD law parameterized on a space providing `dim`, `log` and `identity`."""

    def __init__(self, space: Space):
        self.space = space
        self.dim = space.dim
        self.stiffness = np.zeros((self.dim, self.dim))
        self.damping = np.zeros((self.dim, self.dim))
        self.reference = space.identity()
        self.reference_velocity = np.zeros(self.dim)
        self.output = np.zeros(self.dim)

    def set_stiffness(self, stiffness: np.ndarray) -> "Feedback":
        self.stiffness = _check_gain(stiffness, self.dim, "stiffness")
        return self

    def set_damping(self, damping: np.ndarray) -> "Feedback":
        self.damping = _check_gain(damping, self.dim, "damping")
        return self

    def set_reference(self, x: Any, v: Optional[np.ndarray] = None) -> "Feedback":
        self.reference = x
        self.reference_velocity = self._tangent(x, v)
        return self

    def update(self, x: Any, v: Optional[np.ndarray] = None) -> np.ndarray:
        error = self.space.log(self.reference, x)
        self.output = self.stiffness @ error + self.damping @ (self.reference_velocity - self._tangent(x, v))
        return self.output

    __call__ = update

    def _tangent(self, x: Any, v: Optional[np.ndarray]) -> np.ndarray:
        if v is not None:
            return np.asarray(v, dtype=float).reshape(self.dim)
        if isinstance(x, FramePose):
            return np.asarray(x.velocity, dtype=float)
        return np.zeros(self.dim)

    def __repr__(self):
        return f"Feedback({self.space})"
