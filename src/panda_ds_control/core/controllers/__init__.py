"""
Controllers package for task-space torque control.

This package provides the abstract base class and the operation-space and
inverse-dynamics (QP) controllers.
"""

from .base import BaseController
from .inverse_dynamics import InverseDynamicsController
from .operation_space import OperationSpaceController

__all__ = [
    'BaseController',
    'InverseDynamicsController',
    'OperationSpaceController',
]
