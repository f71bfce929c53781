"""
Rigid-body model adapter on top of MuJoCo.

Wraps an MjModel/MjData pair with a chosen end-effector frame and a reference
frame convention. The MjData instance is the simulated state; it is shared with
the Simulator, which steps it. Every kinematic/dynamic query taking explicit
(q, dq) arguments is evaluated on a private scratch MjData so that it never
disturbs the simulated state.

Example usage:
    model = RigidBodyModel.from_xml("assets/franka_panda/scene.xml", frame="ee_site")
    q, dq = model.state(), model.velocity()
    J = model.jacobian(q)                # (6, 7), linear rows first
    pose = model.frame_pose(q)           # FramePose(translation, rotation)
"""

from pathlib import Path
from typing import Optional, Sequence

import mujoco
import numpy as np

from .contracts import FramePose, JointState, ReferenceFrame
from .errors import ModelError

# Franka Panda datasheet limits
PANDA_VELOCITY_LIMITS = np.array([2.175, 2.175, 2.175, 2.175, 2.61, 2.61, 2.61])
PANDA_ACCELERATION_LIMITS = np.array([15.0, 7.5, 10.0, 12.5, 15.0, 20.0, 20.0])


def _skew(p: np.ndarray) -> np.ndarray:
    x, y, z = p
    return np.array([[0.0, -z, y], [z, 0.0, -x], [-y, x, 0.0]])


class RigidBodyModel:
    """
    Kinematic/dynamic view of a MuJoCo manipulator at one end-effector frame.

    The frame may name a site or a body. All Jacobians and spatial velocities
    are expressed in `reference`, fixed at construction.
    """

    def __init__(
        self,
        mj_model: mujoco.MjModel,
        frame: str,
        reference: ReferenceFrame = ReferenceFrame.LOCAL_WORLD_ALIGNED,
        dof: Optional[int] = None,
        velocity_limits: Optional[Sequence[float]] = None,
        acceleration_limits: Optional[Sequence[float]] = None,
    ):
        """
        Args:
            mj_model: Compiled MuJoCo model
            frame: End-effector site (or body) name
            reference: Reference frame convention for Jacobians and velocities
            dof: Number of controlled joints (defaults to model.nv)
            velocity_limits: Symmetric joint velocity limits [rad/s]
            acceleration_limits: Symmetric joint acceleration limits [rad/s^2]
        """
        self.model = mj_model
        self.data = mujoco.MjData(mj_model)
        self._scratch = mujoco.MjData(mj_model)
        self._scratch_key = None

        self.frame = frame
        self.reference = reference
        self.dof = mj_model.nv if dof is None else int(dof)
        if self.dof > mj_model.nv:
            raise ModelError(f"Model has {mj_model.nv} DOF, {self.dof} requested")

        self._site_id = mujoco.mj_name2id(mj_model, mujoco.mjtObj.mjOBJ_SITE, frame)
        self._body_id = -1
        if self._site_id < 0:
            self._body_id = mujoco.mj_name2id(mj_model, mujoco.mjtObj.mjOBJ_BODY, frame)
            if self._body_id < 0:
                raise ModelError(f"Unknown frame '{frame}': no site or body with that name")

        self._init_limits(velocity_limits, acceleration_limits)

        mujoco.mj_forward(self.model, self.data)

    @classmethod
    def from_xml(cls, xml_path: str, frame: str, **kwargs) -> "RigidBodyModel":
        """Load a model from an MJCF (or URDF) file."""
        if not Path(xml_path).exists():
            raise FileNotFoundError(f"MuJoCo model not found: {xml_path}")
        try:
            mj_model = mujoco.MjModel.from_xml_path(str(xml_path))
        except ValueError as e:
            raise ModelError(f"Failed to load model {xml_path}: {e}") from e
        return cls(mj_model, frame, **kwargs)

    def _init_limits(self, velocity_limits, acceleration_limits):
        n = self.dof
        self.position_lower = np.full(n, -np.inf)
        self.position_upper = np.full(n, np.inf)
        self.effort_lower = np.full(n, -np.inf)
        self.effort_upper = np.full(n, np.inf)

        for j in range(self.model.njnt):
            dof_adr = self.model.jnt_dofadr[j]
            if dof_adr >= n or not self.model.jnt_limited[j]:
                continue
            self.position_lower[dof_adr], self.position_upper[dof_adr] = self.model.jnt_range[j]

        for a in range(self.model.nu):
            if self.model.actuator_trntype[a] != int(mujoco.mjtTrn.mjTRN_JOINT):
                continue
            dof_adr = self.model.jnt_dofadr[self.model.actuator_trnid[a, 0]]
            if dof_adr >= n or not self.model.actuator_ctrllimited[a]:
                continue
            gear = self.model.actuator_gear[a, 0]
            lo, hi = sorted(self.model.actuator_ctrlrange[a] * gear)
            self.effort_lower[dof_adr], self.effort_upper[dof_adr] = lo, hi

        vel = PANDA_VELOCITY_LIMITS[:n] if velocity_limits is None else np.asarray(velocity_limits, dtype=float)
        acc = PANDA_ACCELERATION_LIMITS[:n] if acceleration_limits is None else np.asarray(acceleration_limits, dtype=float)
        if vel.shape != (n,) or acc.shape != (n,):
            raise ModelError(f"Velocity/acceleration limits must have {n} entries")
        self.velocity_lower, self.velocity_upper = -vel, vel.copy()
        self.acceleration_lower, self.acceleration_upper = -acc, acc.copy()

    # ------------------------------------------------------------------
    # Simulated state
    # ------------------------------------------------------------------

    def state(self) -> np.ndarray:
        return self.data.qpos[:self.dof].copy()

    def velocity(self) -> np.ndarray:
        return self.data.qvel[:self.dof].copy()

    def joint_state(self) -> JointState:
        return JointState(q=self.state(), dq=self.velocity())

    def set_state(self, q: np.ndarray, dq: Optional[np.ndarray] = None) -> "RigidBodyModel":
        self.data.qpos[:self.dof] = q
        self.data.qvel[:self.dof] = 0.0 if dq is None else dq
        mujoco.mj_forward(self.model, self.data)
        return self

    def mid_range(self) -> np.ndarray:
        """Configuration halfway between the joint position limits."""
        return 0.5 * (self.position_upper - self.position_lower) + self.position_lower

    # ------------------------------------------------------------------
    # Kinematics
    # ------------------------------------------------------------------

    def _evaluate(self, q: np.ndarray, dq: Optional[np.ndarray] = None) -> mujoco.MjData:
        q = np.asarray(q, dtype=float)
        dq = np.zeros(self.dof) if dq is None else np.asarray(dq, dtype=float)
        key = (q.tobytes(), dq.tobytes())
        if key != self._scratch_key:
            self._scratch.qpos[:self.dof] = q
            self._scratch.qvel[:self.dof] = dq
            mujoco.mj_forward(self.model, self._scratch)
            self._scratch_key = key
        return self._scratch

    def _frame_placement(self, d: mujoco.MjData):
        if self._site_id >= 0:
            return d.site_xpos[self._site_id].copy(), d.site_xmat[self._site_id].reshape(3, 3).copy()
        return d.xpos[self._body_id].copy(), d.xmat[self._body_id].reshape(3, 3).copy()

    def jacobian(self, q: np.ndarray) -> np.ndarray:
        """6 x dof frame Jacobian, linear rows first."""
        d = self._evaluate(q)
        jacp = np.zeros((3, self.model.nv))
        jacr = np.zeros((3, self.model.nv))
        if self._site_id >= 0:
            mujoco.mj_jacSite(self.model, d, jacp, jacr, self._site_id)
        else:
            mujoco.mj_jacBody(self.model, d, jacp, jacr, self._body_id)

        if self.reference == ReferenceFrame.WORLD:
            position, _ = self._frame_placement(d)
            jacp = jacp + _skew(position) @ jacr

        return np.vstack([jacp, jacr])[:, :self.dof]

    def jacobian_derivative(self, q: np.ndarray, dq: np.ndarray, eps: float = 1e-6) -> np.ndarray:
        """Time derivative of the Jacobian along dq (forward difference)."""
        q = np.asarray(q, dtype=float)
        dq = np.asarray(dq, dtype=float)
        speed = np.linalg.norm(dq)
        if speed == 0.0:
            return np.zeros((6, self.dof))
        h = eps / max(speed, 1.0)
        return (self.jacobian(q + h * dq) - self.jacobian(q)) / h

    def frame_pose(self, q: np.ndarray) -> FramePose:
        position, rotation = self._frame_placement(self._evaluate(q))
        return FramePose(translation=position, rotation=rotation)

    def frame_position(self, q: Optional[np.ndarray] = None) -> np.ndarray:
        return self.frame_pose(self.state() if q is None else q).translation

    def frame_velocity(self, q: np.ndarray, dq: np.ndarray) -> np.ndarray:
        """Spatial velocity [v; w] of the frame in the configured reference."""
        return self.jacobian(q) @ np.asarray(dq, dtype=float)

    # ------------------------------------------------------------------
    # Dynamics
    # ------------------------------------------------------------------

    def mass_matrix(self, q: np.ndarray) -> np.ndarray:
        d = self._evaluate(q)
        M = np.zeros((self.model.nv, self.model.nv))
        mujoco.mj_fullM(self.model, d, M)
        return M[:self.dof, :self.dof]

    def gravity_vector(self, q: np.ndarray) -> np.ndarray:
        return self._evaluate(q).qfrc_bias[:self.dof].copy()

    def nonlinear_effects(self, q: np.ndarray, dq: np.ndarray) -> np.ndarray:
        """Coriolis, centrifugal and gravity terms h(q, dq)."""
        return self._evaluate(q, dq).qfrc_bias[:self.dof].copy()

    def __repr__(self):
        return f"RigidBodyModel(frame={self.frame!r}, reference={self.reference.name}, dof={self.dof})"
