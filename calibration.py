"""
ForceCalibrator: inverse solver for the launch force.

Given a release point and a throw angle, find the force that puts the ball
through the hoop. Two phases:

  1. coarse  : binary search over force using a cheap flight-only probe
               (``simulates_hit``) that ignores every collision
  2. refine  : linear scan in REFINE_STEP increments around the coarse
               estimate, each candidate a full throw to rest on its own
               BallState + PhysicsEngine, scored with fun mode off

Each calibration collects its own list of trace events and returns it in
the CalibrationResult, so calibrations can run concurrently.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Tuple

import physics as _phys
from physics import (
    BallState,
    PhysicsEngine,
    BALL_MASS,
    BALL_RADIUS,
    COARSE_DT,
    COURT_HEIGHT,
    RIM_CENTRE_X,
    RIM_HEIGHT,
)
import scoring

logger = logging.getLogger(__name__)

# Scaling constant of the force-predicting network. Only used here to bound
# the coarse search: the ceiling is 2 * FORCE_NORMALISER newtons.
FORCE_NORMALISER: float = 20.0


def validate_throw(force: float, angle_degrees: float) -> None:
    """Raise ValueError for a force outside (0, 300] N or an angle outside [15, 89] degrees."""
    if not (_phys.MIN_FORCE < force <= _phys.MAX_FORCE):
        raise ValueError(
            f"force must be in ({_phys.MIN_FORCE:g}, {_phys.MAX_FORCE:g}] N, got {force}")
    validate_angle(angle_degrees)


def validate_angle(angle_degrees: float) -> None:
    if not (_phys.MIN_ANGLE <= angle_degrees <= _phys.MAX_ANGLE):
        raise ValueError(
            f"angle must be in [{_phys.MIN_ANGLE:g}, {_phys.MAX_ANGLE:g}] degrees, got {angle_degrees}")


@dataclass
class CalibrationResult:
    """Outcome of one calibration. ``force`` is 0.0 when no force lands the shot."""
    force: float
    approximate_force: float = 0.0
    best_score: float = 0.0
    trace: list = field(default_factory=list)

    @property
    def feasible(self) -> bool:
        return self.force > 0

    def lines(self) -> list:
        return format_trace(self.trace)


def format_trace(trace: list) -> list:
    """Render trace events as human-readable lines, one per event."""
    lines = []
    for ev in trace:
        kind = ev["type"]
        if kind == "start":
            lines.append(f"angle: {ev['angle']} targetX {ev['target_x']} targetY {ev['target_y']}")
        elif kind == "probe":
            lines.append(f"force: {ev['force']} {ev['outcome']} ({ev['x']},{ev['y']})")
        elif kind == "approximate":
            found = "match" if ev["found"] else "no match"
            lines.append(f"approximate force: {ev['force']} ({found})")
        elif kind == "trial":
            lines.append(f"mid: {ev['force']} score: {ev['score']}")
        elif kind == "abort":
            lines.append(f"mid: {ev['force']} aborted ({ev['reason']}) after {ev['steps']} steps")
        elif kind == "result":
            lines.append(f"required force: {ev['force']} best score: {ev['best_score']}")
        else:
            lines.append(str(ev))
    return lines


class ForceCalibrator:
    """
    Find the force that lands a shot at a given angle.

    The coarse probe reads two values from the live ball it is calibrating
    for: its current vy (the short/long decision for a probe that passed
    the target) and its hit_hoop flag. ``time_step`` is the step the probe
    integrates with, normally the last step the owning engine used.
    """

    # ── Class-level constants ─────────────────────────────────────────────────
    MIN_SEARCH_FORCE = 3.0        # N, floor of both search phases
    TOLERANCE        = 0.0005     # N, coarse search stops below this width
    REFINE_WINDOW    = 2.0        # N either side of the coarse estimate
    REFINE_STEP      = 0.01       # N
    TARGET_BOX       = 0.1        # m, half-size of the probe's hit box
    OVERSHOOT_HEIGHT = 11.0       # m above target: probe is long, not short
    LOW_PASS_HEIGHT  = 0.3        # m
    PERFECT_SCORE    = 999_999    # first trial above this is returned at once
    ACCEPT_SCORE     = 999_000    # best trial must beat this to be accepted
    MAX_TRIAL_STEPS  = 200_000    # per refine trial

    def __init__(self, time_step: float = COARSE_DT, reference: BallState | None = None,
                 release_point: Tuple[float, float] = (0.0, 0.0)):
        self.time_step = time_step
        self.reference = reference if reference is not None else BallState()
        self.release_point = (float(release_point[0]), float(release_point[1]))

    # ──────────────────────────────────────────────────────────────────────────
    # Coarse phase
    # ──────────────────────────────────────────────────────────────────────────

    def simulates_hit(self, force: float, angle_radians: float,
                      target_x: float, target_y: float,
                      trace: list | None = None) -> Tuple[bool, bool]:
        """
        Fly the ball from the release point (as the origin) with no
        collisions until it matches the target, overshoots, or lands.

        Args:
            target_x, target_y: rim centre relative to the release point.

        Returns:
            (hit, short). ``short`` is True when more force is needed.
        """
        x = 0.0
        y = 0.0
        vx = force / BALL_MASS * math.cos(angle_radians)
        vy = force / BALL_MASS * math.sin(angle_radians)

        target_y += BALL_RADIUS
        dt = self.time_step
        floor_y = -self.release_point[1]

        def _log(outcome: str) -> None:
            if trace is not None:
                trace.append({"type": "probe", "force": force, "outcome": outcome, "x": x, "y": y})

        while y >= floor_y:
            x, y, vx, vy = PhysicsEngine.integrate(x, y, vx, vy, dt)

            if abs(x - target_x) < self.TARGET_BOX and abs(y - target_y) < self.TARGET_BOX:
                _log("match")
                return True, False

            if y > COURT_HEIGHT:
                _log("above court")
                return False, False

            if x > target_x:
                if self.reference.flags.hit_hoop:
                    _log("hit hoop")
                    return False, True

                if y > target_y + self.OVERSHOOT_HEIGHT:
                    _log("above target")
                    return False, False

                short = y < target_y and (self.reference.vy <= 0 or y < self.LOW_PASS_HEIGHT)
                _log("short" if short else "long")
                return False, short

        _log("landed")
        return False, True

    def approximate_force(self, angle_radians: float, target_x: float, target_y: float,
                          trace: list | None = None) -> float:
        """Binary search over [MIN_SEARCH_FORCE, 2 * FORCE_NORMALISER]."""
        low = self.MIN_SEARCH_FORCE
        high = FORCE_NORMALISER * 2
        mid = 0.0
        found = False

        while high - low > self.TOLERANCE:
            mid = (low + high) / 2

            hit, short = self.simulates_hit(mid, angle_radians, target_x, target_y, trace)
            if hit:
                found = True
                break

            if not short:
                high = mid
            else:
                low = mid

        if not found:
            mid = (low + high) / 2

        if trace is not None:
            trace.append({"type": "approximate", "force": mid, "found": found})
        return mid

    # ──────────────────────────────────────────────────────────────────────────
    # Refinement phase
    # ──────────────────────────────────────────────────────────────────────────

    def run_trial(self, force: float, angle_degrees: float) -> Tuple[BallState, int]:
        """Full throw to rest on a fresh ball and engine. Returns (ball, steps)."""
        rx, ry = self.release_point
        ball = BallState(x=rx, y=ry, stopped=False)
        engine = PhysicsEngine()
        engine.launch(ball, force, angle_degrees)
        steps = engine.simulate(ball, max_steps=self.MAX_TRIAL_STEPS)
        return ball, steps

    def trial_score(self, force: float, angle_degrees: float, trace: list | None = None) -> float:
        ball, steps = self.run_trial(force, angle_degrees)

        if not ball.is_finite():
            if trace is not None:
                trace.append({"type": "abort", "force": force, "reason": "non-finite", "steps": steps})
            return 0.0
        if not ball.stopped:
            logger.warning("Trial at %.5f N did not come to rest in %d steps", force, steps)
            if trace is not None:
                trace.append({"type": "abort", "force": force, "reason": "step limit", "steps": steps})
            return 0.0

        # strict scoring: a floor bounce disqualifies the trial
        if ball.flags.bounced_on_floor:
            result = 0.0
        else:
            result = scoring.score(ball, fun_mode=False)

        if trace is not None:
            trace.append({"type": "trial", "force": force, "score": result})
        logger.debug("trial force=%.5f score=%s", force, result)
        return result

    def refine(self, approximate: float, angle_degrees: float,
               trace: list | None = None) -> Tuple[float, float]:
        """
        Scan [approximate - REFINE_WINDOW, approximate + REFINE_WINDOW].

        Returns:
            (force, best_score). force is 0.0 unless a trial beat ACCEPT_SCORE.
        """
        low = max(approximate - self.REFINE_WINDOW, self.MIN_SEARCH_FORCE)
        high = approximate + self.REFINE_WINDOW
        if high < low:
            high = low + self.REFINE_WINDOW
        if high > _phys.MAX_FORCE:
            high = _phys.MAX_FORCE

        best_score = 0.0
        best_force = 0.0

        force = low
        while force < high:
            s = self.trial_score(force, angle_degrees, trace)
            if s > self.PERFECT_SCORE:
                return force, s
            if s > best_score:
                best_score, best_force = s, force
            force += self.REFINE_STEP

        if best_score > self.ACCEPT_SCORE:
            return best_force, best_score
        return 0.0, best_score

    # ──────────────────────────────────────────────────────────────────────────
    # Entry point
    # ──────────────────────────────────────────────────────────────────────────

    def calibrate(self, angle_degrees: float, release_point: Tuple[float, float]) -> CalibrationResult:
        """
        Force (N) that lands a shot thrown at ``angle_degrees`` from
        ``release_point``, or 0.0 if none in the searched window does.

        Blocking and CPU-bound: a few hundred full sub-simulations.
        """
        validate_angle(angle_degrees)
        self.release_point = (float(release_point[0]), float(release_point[1]))

        trace: list = []
        angle_radians = angle_degrees * math.pi / 180.0
        target_x = RIM_CENTRE_X - self.release_point[0]
        target_y = RIM_HEIGHT - self.release_point[1]
        trace.append({"type": "start", "angle": angle_radians,
                      "target_x": target_x, "target_y": target_y})

        approximate = self.approximate_force(angle_radians, target_x, target_y, trace)
        force, best_score = self.refine(approximate, angle_degrees, trace)

        trace.append({"type": "result", "force": force, "best_score": best_score})
        logger.info("Calibrated angle=%g release=(%.3f, %.3f): approx=%.4f N -> force=%.5f N (best score %s)",
                    angle_degrees, self.release_point[0], self.release_point[1],
                    approximate, force, best_score)

        return CalibrationResult(force=force, approximate_force=approximate,
                                 best_score=best_score, trace=trace)
