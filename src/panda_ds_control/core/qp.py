"""
Quadratic-program inverse dynamics using OSQP.

Decision variables:
  z = [qdd (nP), tau (nC), slack (nS)]          (oD = 2)
  z = [dq  (nP), slack (nS)]                    (oD = 1, inverse kinematics, nC = 0)

Equality constraints:
  Manipulator dynamics (nC > 0):   M qdd + h = tau      -> [M, -I, 0] z = -h
  Task tracking:                   J qdd + Jd dq = a* + s -> [J, 0, -I] z = a* - Jd dq
                                   (oD = 1: J dq = v* + s)

Inequality constraints, propagated over dt. Each row is scaled so that it
bounds the motion variable directly, which keeps the solver tolerance in
joint units:
  Position:      q_min <= q + dt dq + 0.5 dt^2 qdd <= q_max
  Velocity:      v_min <= dq + dt qdd <= v_max
  Acceleration:  a_min <= qdd <= a_max
  Effort:        tau_min <= tau <= tau_max

Cost:
  0.5 |qdd - qdd_ref|_Q^2 + 0.5 |tau - tau_ref|_R^2 + 0.5 |s|_S^2

The OSQP workspace is set up once (init). P is constant and A keeps a fixed
sparsity pattern with dense M/J blocks, so each tick only the numeric values
of A, the linear cost and the bounds are updated and warm starting stays valid.
"""

import logging
from typing import Optional

import numpy as np
import osqp
import scipy.sparse as sp

from .config import QPParams, gain_matrix
from .contracts import QPSolution
from .errors import SolverError
from .model import RigidBodyModel

logger = logging.getLogger(__name__)

OSQP_INFTY = 1e30
TASK_DIM = 6
ACCEPTED_STATUS = ("solved", "solved inaccurate")


class InverseDynamicsQP:
    """
    Per-tick constrained QP mapping a task-space reference to joint motion and torques.

    Example:
        qp = InverseDynamicsQP(model, QPParams(nP=7, nC=7, nS=6, oD=2))
        qp.init(q, dq, task_reference=np.zeros(6), input_reference=model.gravity_vector(q))
        sol = qp.solve(q, dq, task_reference=a_des, input_reference=h)
        tau = sol.tau
    """

    def __init__(self, model: RigidBodyModel, params: Optional[QPParams] = None):
        self.model = model
        self.params = params or QPParams()
        p = self.params

        if p.oD not in (1, 2):
            raise ValueError(f"Derivative order oD must be 1 or 2, got {p.oD}")
        if p.oD == 1 and p.nC != 0:
            raise ValueError("Torque variables (nC > 0) require oD = 2")
        if p.nP != model.dof:
            raise ValueError(f"nP={p.nP} does not match model dof={model.dof}")
        if p.nC not in (0, p.nP):
            raise ValueError(f"nC must be 0 or {p.nP}, got {p.nC}")
        if p.nS not in (0, TASK_DIM):
            raise ValueError(f"nS must be 0 or {TASK_DIM}, got {p.nS}")

        self.dt = p.dt
        self.nP, self.nC, self.nS, self.oD = p.nP, p.nC, p.nS, p.oD
        self.nz = self.nP + self.nC + self.nS
        self._motion = slice(0, self.nP)
        self._tau = slice(self.nP, self.nP + self.nC)
        self._slack = slice(self.nP + self.nC, self.nz)

        # Costs
        self.Q = gain_matrix(p.Q, self.nP)
        self.R = gain_matrix(p.R, self.nC) if self.nC else np.zeros((0, 0))
        self.S = p.slack_scale * gain_matrix(p.S, self.nS) if self.nS else np.zeros((0, 0))

        self._build_template()

        self._solver: Optional[osqp.OSQP] = None
        self.relaxed_count = 0
        self.solve_count = 0
        self.last_solution: Optional[QPSolution] = None

    # ------------------------------------------------------------------
    # Problem structure
    # ------------------------------------------------------------------

    def _build_template(self):
        p = self.params
        P = np.zeros((self.nz, self.nz))
        P[self._motion, self._motion] = self.Q
        P[self._tau, self._tau] = self.R
        P[self._slack, self._slack] = self.S
        # OSQP expects only the upper-triangular part
        self.P = sp.csc_matrix(np.triu(P))

        blocks = []
        row = 0

        def add_rows(name, n):
            nonlocal row
            rows = slice(row, row + n)
            blocks.append((name, rows))
            row += n
            return rows

        self._idx = {}
        if self.nC and p.model_constraint:
            self._idx["dynamics"] = add_rows("dynamics", self.nP)
        self._idx["task"] = add_rows("task", TASK_DIM)
        if p.position_limits:
            self._idx["position"] = add_rows("position", self.nP)
        if p.velocity_limits:
            self._idx["velocity"] = add_rows("velocity", self.nP)
        if self.oD == 2 and p.acceleration_limits:
            self._idx["acceleration"] = add_rows("acceleration", self.nP)
        if self.nC and p.effort_limits:
            self._idx["effort"] = add_rows("effort", self.nC)
        self.m = row

        # Template with the final sparsity pattern: dense M/J blocks, identities elsewhere
        template = np.zeros((self.m, self.nz))
        eye = np.eye(self.nP)
        for name, rows in blocks:
            if name == "dynamics":
                template[rows, self._motion] = 1.0
                template[rows, self._tau] = -np.eye(self.nC)
            elif name == "task":
                template[rows, self._motion] = 1.0
                if self.nS:
                    template[rows, self._slack] = -np.eye(self.nS)
            elif name in ("position", "velocity", "acceleration"):
                template[rows, self._motion] = eye
            elif name == "effort":
                template[rows, self._tau] = np.eye(self.nC)

        A = sp.csc_matrix(template)
        # Row/col of every stored entry, in CSC data order, for numeric updates
        self._A_rows = A.indices.copy()
        self._A_cols = np.repeat(np.arange(self.nz), np.diff(A.indptr))
        self.A = A

    def _assemble(self, q, dq, task_reference, input_reference, state_reference, relaxed=False):
        q = np.asarray(q, dtype=float)
        dq = np.asarray(dq, dtype=float)
        task_reference = np.asarray(task_reference, dtype=float).reshape(TASK_DIM)
        dt = self.dt
        model = self.model

        A = np.zeros((self.m, self.nz))
        lower = np.full(self.m, -np.inf)
        upper = np.full(self.m, np.inf)

        J = model.jacobian(q)

        if "dynamics" in self._idx:
            rows = self._idx["dynamics"]
            A[rows, self._motion] = model.mass_matrix(q)
            A[rows, self._tau] = -np.eye(self.nC)
            h = model.nonlinear_effects(q, dq)
            lower[rows] = upper[rows] = -h

        rows = self._idx["task"]
        A[rows, self._motion] = J
        if self.nS:
            A[rows, self._slack] = -np.eye(self.nS)
        if self.oD == 2:
            lower[rows] = upper[rows] = task_reference - model.jacobian_derivative(q, dq) @ dq
        else:
            lower[rows] = upper[rows] = task_reference

        if "position" in self._idx:
            rows = self._idx["position"]
            A[rows, self._motion] = np.eye(self.nP)
            if not relaxed:
                if self.oD == 2:
                    scale = 0.5 * dt * dt
                    lower[rows] = (model.position_lower - q - dt * dq) / scale
                    upper[rows] = (model.position_upper - q - dt * dq) / scale
                else:
                    lower[rows] = (model.position_lower - q) / dt
                    upper[rows] = (model.position_upper - q) / dt

        if "velocity" in self._idx:
            rows = self._idx["velocity"]
            A[rows, self._motion] = np.eye(self.nP)
            if not relaxed:
                if self.oD == 2:
                    lower[rows] = (model.velocity_lower - dq) / dt
                    upper[rows] = (model.velocity_upper - dq) / dt
                else:
                    lower[rows] = model.velocity_lower
                    upper[rows] = model.velocity_upper

        if "acceleration" in self._idx:
            rows = self._idx["acceleration"]
            A[rows, self._motion] = np.eye(self.nP)
            lower[rows] = model.acceleration_lower
            upper[rows] = model.acceleration_upper

        if "effort" in self._idx:
            rows = self._idx["effort"]
            A[rows, self._tau] = np.eye(self.nC)
            lower[rows] = model.effort_lower
            upper[rows] = model.effort_upper

        # Linear cost
        c = np.zeros(self.nz)
        if state_reference is not None:
            c[self._motion] = -self.Q @ np.asarray(state_reference, dtype=float)
        if self.nC and input_reference is not None:
            c[self._tau] = -self.R @ np.asarray(input_reference, dtype=float)

        lower = np.clip(lower, -OSQP_INFTY, OSQP_INFTY)
        upper = np.clip(upper, -OSQP_INFTY, OSQP_INFTY)
        return A, lower, upper, c

    # ------------------------------------------------------------------
    # Solving
    # ------------------------------------------------------------------

    def init(self, q, dq, task_reference=None, input_reference=None, state_reference=None) -> "InverseDynamicsQP":
        """Set up the solver workspace from a state snapshot."""
        task_reference = np.zeros(TASK_DIM) if task_reference is None else task_reference
        A, lower, upper, c = self._assemble(q, dq, task_reference, input_reference, state_reference)
        self._solver = osqp.OSQP()
        self._solver.setup(
            P=self.P,
            q=c,
            A=sp.csc_matrix((A[self._A_rows, self._A_cols], self._A_rows, self.A.indptr), shape=self.A.shape),
            l=lower,
            u=upper,
            verbose=False,
            eps_abs=self.params.eps_abs,
            eps_rel=self.params.eps_rel,
            max_iter=self.params.max_iter,
        )
        return self

    def _run(self, A, lower, upper, c):
        self._solver.update(q=c, l=lower, u=upper, Ax=A[self._A_rows, self._A_cols])
        result = self._solver.solve(raise_error=False)
        z = result.x
        status = result.info.status
        if z is None or not np.all(np.isfinite(z)):
            return None, status
        if status in ACCEPTED_STATUS:
            return z, status
        # accept iteration-limited solutions that still satisfy the constraints
        Az = A @ z
        residual = np.max(np.maximum(lower - Az, 0.0) + np.maximum(Az - upper, 0.0))
        if residual <= 1e-4:
            logger.debug("QP returned '%s' with residual %.2e, accepting", status, residual)
            return z, status
        return None, status

    def solve(self, q, dq, task_reference, input_reference=None, state_reference=None) -> QPSolution:
        """
        Solve the QP at the given state.

        Raises:
            SolverError: infeasible even with the propagated position/velocity limits relaxed
        """
        if self._solver is None:
            self.init(q, dq, task_reference, input_reference, state_reference)
        self.solve_count += 1

        A, lower, upper, c = self._assemble(q, dq, task_reference, input_reference, state_reference)
        z, status = self._run(A, lower, upper, c)
        relaxed = False

        if z is None:
            # slacken: drop the propagated position/velocity boxes and retry
            A, lower, upper, c = self._assemble(q, dq, task_reference, input_reference, state_reference, relaxed=True)
            z, relaxed_status = self._run(A, lower, upper, c)
            if z is None:
                raise SolverError(f"QP infeasible ({status}), relaxed problem failed ({relaxed_status})")
            relaxed = True
            self.relaxed_count += 1
            logger.warning("QPRelaxed: '%s' at tick %d, position/velocity limits dropped", status, self.solve_count)
            status = relaxed_status

        self.last_solution = QPSolution(
            z=z,
            motion=z[self._motion].copy(),
            tau=z[self._tau].copy() if self.nC else None,
            slack=z[self._slack].copy(),
            status=status,
            relaxed=relaxed,
        )
        return self.last_solution

    def __repr__(self):
        return f"InverseDynamicsQP(nP={self.nP}, nC={self.nC}, nS={self.nS}, oD={self.oD}, constraints={self.m})"
