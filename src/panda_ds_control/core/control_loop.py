"""
control_loop.py
Fixed-step simulation and control loop.

Provides:
- Wall-clock pacing with absolute deadlines (DeadlineClock)
- Termination on horizon, viewer close, attractor reached or Ctrl+C
- One-way hand-off from local to remote task dynamics (latch)
- Statistics tracking
"""

import logging
import time
from typing import Callable, Optional

import numpy as np

from .contracts import LoopState
from .simulator import Simulator

logger = logging.getLogger(__name__)


class DeadlineClock:
    """
    Absolute-deadline pacer.

    Deadlines advance by exactly one period per tick, so a late tick is caught
    up by skipping the sleep, never by dropping the tick.
    """

    def __init__(
        self,
        period: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if period <= 0.0:
            raise ValueError("period must be positive")
        self.period = period
        self.clock = clock
        self.sleep = sleep
        self.next: Optional[float] = None
        self.ticks = 0
        self.overruns = 0

    def start(self) -> None:
        self.next = self.clock()
        self.ticks = 0
        self.overruns = 0

    def tick(self) -> float:
        """
        Sleep until the next deadline.

        Returns:
            Remaining time before the deadline when tick was called (negative when behind)
        """
        if self.next is None:
            self.start()
        self.next += self.period
        remaining = self.next - self.clock()
        if remaining > 0.0:
            self.sleep(remaining)
        else:
            self.overruns += 1
        self.ticks += 1
        return remaining


class SimulationLoop:
    """
    Runs the simulator at a fixed physics period until a termination condition.

    Per iteration: step physics (controllers run inside at their own rate),
    advance time, latch the remote dynamics once the end effector is within
    `latch_radius` of `target`, stop when within `stop_radius` of `attractor`,
    then wait for the next deadline.
    """

    def __init__(
        self,
        simulator: Simulator,
        horizon_s: float = 20.0,
        target: Optional[np.ndarray] = None,
        latch_radius: float = 0.05,
        attractor: Optional[np.ndarray] = None,
        stop_radius: Optional[float] = None,
        realtime: bool = True,
        clock: Optional[DeadlineClock] = None,
    ):
        """
        Args:
            simulator: Initialized-on-run simulator
            horizon_s: Simulated time after which the loop terminates (seconds)
            target: Latch target position (None = never latch)
            latch_radius: Distance to the target that hands the task to the remote dynamics (m)
            attractor: Position whose neighborhood terminates the loop (None = disabled)
            stop_radius: Distance to the attractor that terminates the loop (m)
            realtime: Pace iterations against the wall clock
            clock: Pacer (defaults to a DeadlineClock at the physics period)
        """
        self.simulator = simulator
        self.model = simulator.model
        self.controller = simulator.robot.controller
        self.dt = simulator.dt
        self.horizon_s = horizon_s
        self.target = None if target is None else np.asarray(target, dtype=float)
        self.latch_radius = latch_radius
        self.attractor = None if attractor is None else np.asarray(attractor, dtype=float)
        self.stop_radius = stop_radius
        self.realtime = realtime
        self.clock = clock or DeadlineClock(self.dt)

        if self.target is not None and self.controller is None:
            raise ValueError("A latch target needs a controller to hand over")
        if self.attractor is not None and stop_radius is None:
            raise ValueError("An attractor needs a stop radius")

        # Loop state
        self.state = LoopState.INIT
        self.t = 0.0
        self.iteration = 0
        self.latch_time: Optional[float] = None
        self.reason: Optional[str] = None
        self.should_stop = False

    def _print_configuration(self):
        """Print loop configuration."""
        print("=" * 60)
        print("Simulation Loop Configuration")
        print("=" * 60)
        print(f"Physics: {1.0 / self.dt:.0f} Hz")
        print(f"Controller: {1.0 / self.simulator.controller_dt:.0f} Hz "
              f"(every {self.simulator.decimation} iteration(s))")
        print(f"Horizon: {self.horizon_s:.1f} s")
        if self.target is not None:
            print(f"Latch target: {np.round(self.target, 4)} (radius {self.latch_radius * 100:.1f} cm)")
        if self.attractor is not None:
            print(f"Attractor: {np.round(self.attractor, 4)} (radius {self.stop_radius * 100:.1f} cm)")
        print(f"Realtime pacing: {'on' if self.realtime else 'off'}")
        print("=" * 60)
        print()

    def initialize(self) -> bool:
        return self.simulator.initialize()

    def cleanup(self):
        self.simulator.shutdown()

    def should_continue(self) -> bool:
        if self.should_stop:
            self.reason = self.reason or "stop requested"
            return False
        if self.t > self.horizon_s:
            self.reason = "horizon reached"
            return False
        return True

    def loop_iteration(self):
        if not self.simulator.step(self.iteration):
            self.reason = "viewer closed"
            self.should_stop = True
            return

        self.iteration += 1
        self.t += self.dt

        position = self.model.frame_position()

        if (self.target is not None and not self.controller.external
                and np.linalg.norm(position - self.target) <= self.latch_radius):
            self.controller.activate_remote()
            self.latch_time = self.t
            print(f"✓ Remote dynamics latched at t={self.t:.3f}s")

        if self.attractor is not None and np.linalg.norm(position - self.attractor) <= self.stop_radius:
            self.reason = "attractor reached"
            self.should_stop = True

    def run(self) -> LoopState:
        """
        Run until a termination condition.

        Returns:
            Final state, TERMINATED or ABORTED. Exceptions other than
            KeyboardInterrupt are re-raised after cleanup.
        """
        if not self.initialize():
            print("✗ Initialization failed")
            self.state = LoopState.ABORTED
            self.cleanup()
            return self.state

        self._print_configuration()
        print("Starting simulation loop...")
        print("Press Ctrl+C to stop\n")

        self.state = LoopState.STEPPING
        wall_start = time.monotonic()
        if self.realtime:
            self.clock.start()

        try:
            while self.should_continue():
                self.loop_iteration()
                if self.should_stop:
                    break
                if self.realtime:
                    self.clock.tick()
            self.state = LoopState.TERMINATED
        except KeyboardInterrupt:
            print("\nKeyboard interrupt received...")
            self.reason = "keyboard interrupt"
            self.state = LoopState.TERMINATED
        except Exception as e:
            logger.error("Simulation loop aborted at t=%.3fs: %s", self.t, e)
            self.reason = f"aborted ({type(e).__name__})"
            self.state = LoopState.ABORTED
            raise
        finally:
            elapsed = time.monotonic() - wall_start
            self.cleanup()
            self.print_statistics(elapsed)

        return self.state

    def print_statistics(self, elapsed: float):
        """
        Print execution statistics.

        Args:
            elapsed: Total wall-clock time (seconds)
        """
        print("\n" + "=" * 60)
        print("Execution Statistics:")
        print(f"  Final state: {self.state.name} ({self.reason})")
        print(f"  Simulated time: {self.t:.3f}s")
        print(f"  Wall time: {elapsed:.2f}s")
        print(f"  Total iterations: {self.iteration}")
        if elapsed > 0:
            print(f"  Average frequency: {self.iteration / elapsed:.1f} Hz")
        if self.realtime:
            print(f"  Deadline overruns: {self.clock.overruns}")
        print(f"  controller calls: {self.simulator.controller_calls} "
              f"(expected: ~{int(self.t / self.simulator.controller_dt)})")
        if self.latch_time is not None:
            print(f"  Remote latched at: {self.latch_time:.3f}s")
        print("=" * 60)

    def stop(self):
        """Request the loop to stop at the next iteration."""
        self.should_stop = True
