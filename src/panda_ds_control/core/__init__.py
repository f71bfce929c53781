"""
Core control pipeline.

This package provides the robot model adapter, feedback and task dynamics
blocks, the QP, the remote dynamics client, the simulator and the loop.
"""

from .errors import ControlError, ModelError, RemoteTimeout, SolverError, TransportError
from .model import RigidBodyModel
from .qp import InverseDynamicsQP
from .remote import RemoteDynamics
from .task_dynamics import TaskDynamics

__all__ = [
    'ControlError',
    'InverseDynamicsQP',
    'ModelError',
    'RemoteDynamics',
    'RemoteTimeout',
    'RigidBodyModel',
    'SolverError',
    'TaskDynamics',
    'TransportError',
]
