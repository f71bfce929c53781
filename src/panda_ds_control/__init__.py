"""
Dynamical-system driven control of a simulated Franka Panda.

Task-space dynamics (local or served over ZeroMQ) are turned into joint
torques by an operation-space or a QP inverse-dynamics controller, stepped in
MuJoCo at a fixed rate.
"""

__version__ = "0.1.0"
