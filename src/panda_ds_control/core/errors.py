"""
Exception hierarchy for the control pipeline.

Startup failures (bad model, missing files) are fatal for the demo drivers.
Per-tick failures are recovered where they happen:
- RemoteTimeout: the task dynamics reuse the last valid remote velocity
- SolverError: the controller repeats its previous torque once
"""


class ControlError(Exception):
    """Base class for all errors raised by panda_ds_control."""


class ModelError(ControlError):
    """Robot model could not be loaded or a frame name is unknown."""


class SolverError(ControlError):
    """QP could not be solved, even after relaxing the propagated limits."""


class TransportError(ControlError):
    """Socket failure while talking to the remote dynamics server."""


class RemoteTimeout(TransportError):
    """No usable reply from the remote dynamics server within the request timeout."""
