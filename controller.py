"""
BasketballSimulation — public facade over the engine.

Callers (renderer, tick driver, training-data generator, learner) use:
  sim.set_release_point(x, y)        — park the ball at the thrower's hand
  sim.throw(force, angle, guess)     — launch; optionally calibrate first
  sim.move_ball()                    — advance exactly one tick
  sim.location() / velocity() / is_stopped() / score() / is_in_hoop()
  sim.diagnostic_trace()             — text of the last calibration
  sim.simulate_throw(...)            — headless, non-destructive throw

throw() with guess_the_force=True reports the calibrated force but still
launches with the ``force`` it was given. To execute a calibrated shot,
call throw() again with the returned value.
"""

import logging
from dataclasses import asdict
from typing import Tuple

import numpy as np

from physics import (
    BallState,
    CollisionFlags,
    PhysicsEngine,
    COURT_HEIGHT,
    PERSON_HEIGHT,
)
from calibration import CalibrationResult, ForceCalibrator, validate_throw
import scoring

logger = logging.getLogger(__name__)

# Release point the interactive demo starts from: 5 m from the left edge,
# ball held just above a 2 m person.
DEFAULT_RELEASE_POINT = (5.0 + 0.4, PERSON_HEIGHT + 0.25)


class BasketballSimulation:
    """One ball, one court. Not thread-safe; calibrations run on their own state."""

    # ── Class-level constants ─────────────────────────────────────────────────
    MAX_STEPS       = 100_000   # default budget for headless runs
    TRAJECTORY_CAP  = COURT_HEIGHT + 1  # m, stop recording above this

    # ── Constructor ───────────────────────────────────────────────────────────

    def __init__(self, release_point: Tuple[float, float] = (0.0, 0.0), *,
                 fun_mode: bool = False):
        self.engine = PhysicsEngine()
        self.ball = BallState()
        self.fun_mode = fun_mode  # True: floor bounces no longer zero the score

        self.release_point: Tuple[float, float] = (0.0, 0.0)
        self.elapsed_time = 0.0   # simulated seconds since the last throw
        self.last_calibration: CalibrationResult | None = None

        self.set_release_point(*release_point)

    # ──────────────────────────────────────────────────────────────────────────
    # Throwing
    # ──────────────────────────────────────────────────────────────────────────

    def set_release_point(self, x: float, y: float) -> None:
        """Park a stopped, motionless ball at (x, y) metres."""
        self.release_point = (float(x), float(y))
        self.ball.x, self.ball.y = self.release_point
        self.ball.vx = 0.0
        self.ball.vy = 0.0
        self.ball.stopped = True

    def _reset_flags(self) -> None:
        self.ball.flags = CollisionFlags()
        self.ball.stopped = False
        self.elapsed_time = 0.0
        self.last_calibration = None

    def throw(self, force: float, angle: float, guess_the_force: bool = True) -> float:
        """
        Launch the ball from the release point.

        Args:
            force: launch force in newtons, (0, 300].
            angle: launch angle in degrees above horizontal, [15, 89].
            guess_the_force: calibrate the force for ``angle`` first.

        Returns:
            The calibrated force (0.0 if infeasible or not requested). The
            ball is always launched with ``force``.

        Raises:
            ValueError: force or angle out of domain.
        """
        validate_throw(force, angle)

        self._reset_flags()
        self.ball.x, self.ball.y = self.release_point

        required_force = 0.0
        if guess_the_force:
            calibrator = ForceCalibrator(time_step=self.engine.time_step,
                                         reference=self.ball,
                                         release_point=self.release_point)
            self.last_calibration = calibrator.calibrate(angle, self.release_point)
            required_force = self.last_calibration.force

        self.engine.launch(self.ball, force, angle)
        return required_force

    def move_ball(self) -> None:
        """Advance exactly one tick. No-op once the ball has stopped."""
        if self.ball.stopped:
            return
        self.engine.update(self.ball)
        self.elapsed_time += self.engine.time_step

    def run_to_rest(self, max_steps: int = MAX_STEPS) -> int:
        """Call move_ball() until stopped, non-finite or out of steps. Returns ticks run."""
        steps = 0
        while not self.ball.stopped and steps < max_steps:
            self.move_ball()
            steps += 1
            if not self.ball.is_finite():
                logger.warning("Ball position went non-finite after %d steps", steps)
                break
        return steps

    # ──────────────────────────────────────────────────────────────────────────
    # Accessors
    # ──────────────────────────────────────────────────────────────────────────

    @property
    def events(self) -> list:
        """Collision events of the last tick."""
        return self.engine.events

    @property
    def time_step(self) -> float:
        return self.engine.time_step

    def location(self) -> Tuple[float, float]:
        return self.ball.position

    def velocity(self) -> Tuple[float, float]:
        return self.ball.velocity

    def is_stopped(self) -> bool:
        return self.ball.stopped

    def is_in_hoop(self) -> bool:
        return scoring.is_in_hoop(self.ball)

    def score(self) -> float:
        return scoring.score(self.ball, fun_mode=self.fun_mode)

    def diagnostic_trace(self) -> list:
        """Text lines from the calibration of the last throw (empty if none ran)."""
        if self.last_calibration is None:
            return []
        return self.last_calibration.lines()

    def get_state(self) -> dict:
        """JSON-ready snapshot for the tick driver."""
        x, y = self.ball.position
        vx, vy = self.ball.velocity
        flags = asdict(self.ball.flags)
        if not self.ball.flags.reached_rim:
            flags["closest_distance_to_hoop"] = None  # inf is not valid JSON
        return {
            "pos":          [x, y],
            "vel":          [vx, vy],
            "stopped":      self.ball.stopped,
            "in_hoop":      self.is_in_hoop(),
            "score":        self.score(),
            "elapsed":      self.elapsed_time,
            "time_step":    self.engine.time_step,
            "fun_mode":     self.fun_mode,
            "release":      list(self.release_point),
            "flags":        flags,
            "events":       list(self.engine.events),
        }

    # ──────────────────────────────────────────────────────────────────────────
    # Headless API
    # ──────────────────────────────────────────────────────────────────────────

    def simulate_throw(
        self,
        force: float,
        angle: float,
        *,
        release_point: Tuple[float, float] | None = None,
        fun_mode: bool = False,
        max_steps: int = MAX_STEPS,
    ) -> dict:
        """Headless throw on a fresh engine, with the trajectory recorded.

        Non-destructive: does NOT change ``self.ball`` or the engine.

        Args:
            force:         Launch force in newtons, (0, 300].
            angle:         Launch angle in degrees, [15, 89].
            release_point: Override of ``self.release_point``.
            fun_mode:      Scoring mode for the result (default strict).
            max_steps:     Tick budget.

        Returns:
            ``dict`` with keys:

            score (float), made (bool), in_hoop (bool)
                made is ``score >= MAKE_THRESHOLD``.
            flags (dict)
                Final CollisionFlags as a dict.
            steps (int), sim_time (float)
                Ticks run and simulated seconds.
            aborted (str | None)
                "non-finite" or "step limit" if the run did not end at rest,
                "above court" if recording stopped because the ball went
                more than 1 m above the court. None otherwise.
            ball (dict)
                ``{"pos": [x, y], "vel": [vx, vy], "stopped": bool}``.
            trajectory (np.ndarray, float64, shape=(n, 2))
                Ball centre after each tick.
            obs (np.ndarray, float32, shape=(4,))

        Raises:
            ValueError: force or angle out of domain.
        """
        validate_throw(force, angle)

        rx, ry = release_point if release_point is not None else self.release_point
        sim = BasketballSimulation((rx, ry), fun_mode=fun_mode)
        sim.throw(force, angle, guess_the_force=False)

        points = []
        aborted = None
        steps = 0
        while not sim.ball.stopped:
            if steps >= max_steps:
                aborted = "step limit"
                break
            sim.move_ball()
            steps += 1
            if not sim.ball.is_finite():
                aborted = "non-finite"
                break
            if sim.ball.y > self.TRAJECTORY_CAP:
                aborted = "above court"
                break
            points.append((sim.ball.x, sim.ball.y))

        if aborted in ("non-finite", "step limit"):
            logger.warning("simulate_throw(force=%s, angle=%s) aborted: %s after %d steps",
                           force, angle, aborted, steps)
            result_score = 0.0
        else:
            result_score = sim.score()

        trajectory = np.array(points, dtype=np.float64).reshape(-1, 2)

        return {
            "score":      result_score,
            "made":       result_score >= scoring.MAKE_THRESHOLD,
            "in_hoop":    sim.is_in_hoop(),
            "flags":      asdict(sim.ball.flags),
            "steps":      steps,
            "sim_time":   sim.elapsed_time,
            "aborted":    aborted,
            "ball": {
                "pos":     [sim.ball.x, sim.ball.y],
                "vel":     [sim.ball.vx, sim.ball.vy],
                "stopped": sim.ball.stopped,
            },
            "trajectory": trajectory,
            "obs":        sim.get_obs(),
        }

    # ── Learner helper: flat observation vector ───────────────────────────────

    def get_obs(self) -> np.ndarray:
        """Return ``[x, y, vx, vy]`` as a float32 vector."""
        return self._make_obs(self.ball)

    @staticmethod
    def _make_obs(ball: BallState) -> np.ndarray:
        return np.array([ball.x, ball.y, ball.vx, ball.vy], dtype=np.float32)
