"""
Geometric spaces used by the feedback blocks.

Each space exposes the same small capability set:
- dim: dimension of the tangent space
- log(x_ref, x): tangent vector pointing from x to x_ref
- exp(x, v): retraction of x along the tangent vector v

Tangent vectors of SO(3) live at the identity (left-trivialized), so they are
expressed in world axes, matching the angular rows of the model Jacobians.
"""

from typing import Union

import numpy as np
from mink import SO3

from .contracts import FramePose


class Euclidean:
    """Vector space R^n; log is the plain difference."""

    def __init__(self, dim: int):
        self.dim = dim

    def identity(self) -> np.ndarray:
        return np.zeros(self.dim)

    def log(self, x_ref: np.ndarray, x: np.ndarray) -> np.ndarray:
        return np.asarray(x_ref, dtype=float) - np.asarray(x, dtype=float)

    def exp(self, x: np.ndarray, v: np.ndarray) -> np.ndarray:
        return np.asarray(x, dtype=float) + np.asarray(v, dtype=float)

    def __repr__(self):
        return f"Euclidean({self.dim})"


class Rotation3:
    """Rotation group SO(3) with points stored as 3x3 rotation matrices."""

    dim = 3

    def identity(self) -> np.ndarray:
        return np.eye(3)

    def log(self, x_ref: np.ndarray, x: np.ndarray) -> np.ndarray:
        # axis-angle of R_ref R^T
        return SO3.from_matrix(np.asarray(x_ref) @ np.asarray(x).T).log()

    def exp(self, x: np.ndarray, v: np.ndarray) -> np.ndarray:
        return SO3.exp(np.asarray(v, dtype=float)).as_matrix() @ np.asarray(x)

    def __repr__(self):
        return "Rotation3()"


class RigidTransform3:
    """SE(3) treated as the product R^3 x SO(3), points stored as FramePose."""

    dim = 6

    def __init__(self):
        self._translation = Euclidean(3)
        self._rotation = Rotation3()

    def identity(self) -> FramePose:
        return FramePose(translation=np.zeros(3))

    def log(self, x_ref: FramePose, x: FramePose) -> np.ndarray:
        return np.concatenate([
            self._translation.log(x_ref.translation, x.translation),
            self._rotation.log(x_ref.rotation, x.rotation),
        ])

    def exp(self, x: FramePose, v: np.ndarray) -> FramePose:
        v = np.asarray(v, dtype=float)
        return FramePose(
            translation=self._translation.exp(x.translation, v[:3]),
            rotation=self._rotation.exp(x.rotation, v[3:]),
            velocity=x.velocity,
        )

    def __repr__(self):
        return "RigidTransform3()"


Space = Union[Euclidean, Rotation3, RigidTransform3]
