from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union
import numpy as np
import yaml

from .contracts import ReferenceFrame, TaskOutput

Gain = Union[float, Sequence[float], np.ndarray]

PROJECT_ROOT = Path(__file__).parent.parent.parent.parent  # Go to Repository root


def gain_matrix(value: Gain, dim: int) -> np.ndarray:
    """Scalar -> value * I, vector -> diag(vector), matrix -> unchanged."""
    arr = np.asarray(value, dtype=float)
    if arr.ndim == 0:
        return float(arr) * np.eye(dim)
    if arr.ndim == 1:
        if arr.size != dim:
            raise ValueError(f"Gain must have {dim} entries, got {arr.size}")
        return np.diag(arr)
    if arr.shape != (dim, dim):
        raise ValueError(f"Gain must be {dim}x{dim}, got {arr.shape}")
    return arr


@dataclass
class TaskDynamicsParams:
    # Position DS (R^3)
    position_stiffness: Gain = 5.0
    position_damping: Gain = 0.0

    # Orientation DS (SO(3)), disabled in both demos
    orientation: bool = False
    rotation_stiffness: Gain = 1.0
    rotation_damping: Gain = 0.0

    # Velocity for operation space control, acceleration for the QP
    output: TaskOutput = TaskOutput.VELOCITY

    # Velocity tracking gain turning a remote velocity into an acceleration
    remote_gain: Optional[float] = None


@dataclass
class OperationSpaceParams:
    dt: float = 0.01
    d: int = 6
    stiffness: Gain = 0.0
    damping: Gain = field(default_factory=lambda: [20.0, 20.0, 20.0, 1.0, 1.0, 1.0])


@dataclass
class QPParams:
    # Integration step used to propagate the joint limits
    dt: float = 0.01

    # State dimension
    nP: int = 7
    # Control/Input dimension (0 = no torque variables, inverse kinematics)
    nC: int = 7
    # Slack variable dimension (0 = hard task equality)
    nS: int = 6
    # Derivative order kept as decision variable (1 = velocity, 2 = acceleration)
    oD: int = 2

    # Costs
    Q: Gain = 1.0
    R: Gain = 0.1
    S: Gain = field(default_factory=lambda: [1.0e6, 1.0e6, 1.0e6, 1.0e4, 1.0e4, 1.0e4])
    slack_scale: float = 1.0

    # Constraints
    model_constraint: bool = True
    position_limits: bool = True
    velocity_limits: bool = True
    acceleration_limits: bool = True
    effort_limits: bool = True

    # Solver
    eps_abs: float = 1e-6
    eps_rel: float = 1e-6
    max_iter: int = 10000


@dataclass
class InverseDynamicsParams:
    dt: float = 0.01
    qp: QPParams = field(default_factory=QPParams)

    # Torque reference: "gravity" or "nonlinear_effects"
    input_reference: str = "nonlinear_effects"

    # Configuration space DS generating the QP state reference (None = no reference)
    config_stiffness: Optional[Gain] = 1.0
    config_damping: Optional[Gain] = 2.0

    # Joint space PD used when nC == 0
    joint_stiffness: Gain = field(default_factory=lambda: [950.0, 950.0, 950.0, 950.0, 500.0, 500.0, 50.0])
    joint_damping: Gain = field(default_factory=lambda: [10.0, 10.0, 10.0, 10.0, 10.0, 10.0, 1.0])


@dataclass
class DemoConfig:
    # Robot
    robot_name: str
    dof: int
    mujoco_xml_path: str
    ee_frame: str
    reference_frame: ReferenceFrame
    velocity_limits: Optional[List[float]]
    acceleration_limits: Optional[List[float]]
    gravity_compensation: bool

    # Rates
    simulation_hz: float
    controller_hz: float

    # Task
    horizon_s: float
    latch_radius_m: float
    stop_radius_m: Optional[float]
    num_trajectories: int
    orientation: np.ndarray

    # Remote dynamics
    remote_host: str
    remote_port: int
    remote_timeout_s: float

    # Controller
    controller_type: str
    task: TaskDynamicsParams
    controller: Union[OperationSpaceParams, InverseDynamicsParams]

    # Demonstrations
    demos_root: str = str(PROJECT_ROOT / "rsc" / "demos")


@dataclass
class DemoData:
    demo_id: str
    offset: np.ndarray
    trajectories: List[np.ndarray]
    gain: Optional[float] = None  # linear DS gain fitted to the demonstrations

    @property
    def target_position(self) -> np.ndarray:
        return self.trajectories[0][0].copy()


def _resolve(path: str) -> str:
    return path.replace("${PROJECT_ROOT}", str(PROJECT_ROOT))


def _task_params(data: Dict[str, Any]) -> TaskDynamicsParams:
    params = dict(data)
    if "output" in params:
        params["output"] = TaskOutput[params["output"].upper()]
    return TaskDynamicsParams(**params)


def _controller_params(kind: str, data: Dict[str, Any]):
    params = dict(data)
    if kind == "operation_space":
        return OperationSpaceParams(**params)
    if kind == "inverse_dynamics":
        params["qp"] = QPParams(**params.get("qp", {}))
        return InverseDynamicsParams(**params)
    raise ValueError(f"Unknown controller type '{kind}'")


def load_config(path: str) -> DemoConfig:
    with open(path, "r") as f:
        data = yaml.safe_load(f)

    try:
        orientation = np.asarray(data["task"]["orientation"], dtype=float).reshape(3, 3)
        controller = dict(data["controller"])
        controller_type = controller.pop("type")
        task = controller.pop("task", {})
        remote = data.get("remote", {})

        return DemoConfig(
            robot_name=data["robot"]["name"],
            dof=data["robot"]["dof"],
            mujoco_xml_path=_resolve(data["robot"]["mujoco_xml_path"]),
            ee_frame=data["robot"]["ee_frame"],
            reference_frame=ReferenceFrame[data["robot"].get("reference_frame", "LOCAL_WORLD_ALIGNED").upper()],
            velocity_limits=data["robot"].get("velocity_limits"),
            acceleration_limits=data["robot"].get("acceleration_limits"),
            gravity_compensation=bool(data["robot"].get("gravity_compensation", False)),
            simulation_hz=float(data["rates"]["simulation_hz"]),
            controller_hz=float(data["rates"]["controller_hz"]),
            horizon_s=float(data["task"]["horizon_s"]),
            latch_radius_m=float(data["task"]["latch_radius_m"]),
            stop_radius_m=data["task"].get("stop_radius_m"),
            num_trajectories=int(data["task"].get("num_trajectories", 1)),
            orientation=orientation,
            remote_host=remote.get("host", "localhost"),
            remote_port=int(remote.get("port", 5511)),
            remote_timeout_s=float(remote.get("timeout_s", 0.01)),
            controller_type=controller_type,
            task=_task_params(task),
            controller=_controller_params(controller_type, controller),
            demos_root=_resolve(data.get("data", {}).get("demos_root", "${PROJECT_ROOT}/rsc/demos")),
        )
    except KeyError as e:
        raise ValueError(f"Missing configuration key {e} in {path}") from e
    except TypeError as e:
        raise ValueError(f"Invalid configuration in {path}: {e}") from e


def load_demo(root: Union[str, Path], demo_id: str, num_trajectories: int = 1) -> DemoData:
    """
    Load demonstration trajectories shifted into the simulator frame.

    Reads `<root>/demo_<id>/dynamics_params.yaml` (`dynamics.offset` or `offset`) and
    `trajectory_1.csv` ... `trajectory_<n>.csv`, one 3-vector per row.

    Raises:
        FileNotFoundError: a parameter or trajectory file is missing
    """
    folder = Path(_resolve(str(root))) / f"demo_{demo_id}"
    params_file = folder / "dynamics_params.yaml"
    if not params_file.exists():
        raise FileNotFoundError(f"Demo parameters not found: {params_file}")

    with open(params_file, "r") as f:
        params = yaml.safe_load(f)
    try:
        # either nested under `dynamics` or at the top level
        section = params["dynamics"] if "dynamics" in params else params
        offset = np.asarray(section["offset"], dtype=float).reshape(3)
        gain = section.get("gain")
    except (KeyError, TypeError, ValueError) as e:
        raise ValueError(f"{params_file} must define dynamics.offset as a 3-vector") from e

    trajectories = []
    for i in range(1, num_trajectories + 1):
        csv_file = folder / f"trajectory_{i}.csv"
        if not csv_file.exists():
            raise FileNotFoundError(f"Trajectory not found: {csv_file}")
        trajectory = np.loadtxt(csv_file, delimiter=",", ndmin=2)
        if trajectory.shape[1] != 3 or trajectory.shape[0] == 0:
            raise ValueError(f"{csv_file} must contain rows of 3 values")
        trajectories.append(trajectory + offset)

    return DemoData(
        demo_id=str(demo_id),
        offset=offset,
        trajectories=trajectories,
        gain=None if gain is None else float(gain),
    )
