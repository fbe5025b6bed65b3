"""
Throw presets — reproducible named throws.

Each preset places the thrower, launches the ball (calibrating first where
the preset has no fixed force) and optionally runs it to rest. Used by the
tests and by the server's preset endpoint.
"""

import logging
from dataclasses import dataclass
from typing import Tuple

from controller import BasketballSimulation
from physics import PERSON_HEIGHT, RIM_CENTRE_X

logger = logging.getLogger(__name__)

RELEASE_HEIGHT = PERSON_HEIGHT + 0.25  # m, ball held just above the head

# Placeholder launch force for the calibrating throw; only its report is used
CALIBRATION_THROW_FORCE = 3.0

# Step budget for a preset run
_MAX_STEPS = 100_000


def release_point_for_distance(distance: float) -> Tuple[float, float]:
    """Release point of a thrower standing ``distance`` metres short of the rim centre."""
    # stick person is drawn 0.5 m wide and releases 0.4 m in from their left
    return (RIM_CENTRE_X - distance + 0.01 - 0.5 + 0.4, RELEASE_HEIGHT)


@dataclass(frozen=True)
class PresetThrow:
    """Release point + angle, and a fixed force or None to calibrate one."""
    release_point: Tuple[float, float]
    angle: float
    force: float | None = None
    description: str = ""


PRESETS = {
    "bounded_run": PresetThrow(
        (2.0, RELEASE_HEIGHT), 45.0, 10.0,
        "Long way out, 10 N at 45 degrees: falls short and rolls to rest"),
    "short_lob": PresetThrow(
        (5.0, RELEASE_HEIGHT), 30.0, 3.0,
        "Weak lob that lands well short of the rim"),
    "close_swish": PresetThrow(
        release_point_for_distance(4.0), 55.0, None,
        "Calibrated shot from 4 m at 55 degrees"),
    "far_shallow": PresetThrow(
        (20.0, RELEASE_HEIGHT), 20.0, None,
        "Calibrated flat shot from 20 m at 20 degrees"),
}


def play(preset: PresetThrow, run: bool = True, fun_mode: bool = False) -> dict:
    """
    Set up ``preset`` on a fresh simulation and launch it.

    When ``preset.force`` is None the force is calibrated first and the ball
    launched with the calibrated value (two throws). An infeasible
    calibration leaves the ball parked at the release point.
    """
    sim = BasketballSimulation(preset.release_point, fun_mode=fun_mode)

    required_force = 0.0
    force = preset.force
    if force is None:
        required_force = sim.throw(CALIBRATION_THROW_FORCE, preset.angle, guess_the_force=True)
        trace = sim.diagnostic_trace()
        sim.set_release_point(*preset.release_point)
        if required_force <= 0:
            logger.info("No force lands %s at %g degrees", preset.release_point, preset.angle)
            return {"sim": sim, "force": 0.0, "required_force": 0.0, "trace": trace,
                    "steps": 0, "elapsed": 0.0, "launched": False}
        force = required_force
    else:
        trace = []

    sim.throw(force, preset.angle, guess_the_force=False)

    steps = 0
    if run:
        steps = sim.run_to_rest(_MAX_STEPS)

    return {"sim": sim, "force": force, "required_force": required_force, "trace": trace,
            "steps": steps, "elapsed": sim.elapsed_time, "launched": True}


class ThrowPreset:
    """Named presets. Each returns the dict from ``play``."""

    @staticmethod
    def bounded_run(run=True) -> dict:
        """Release (2.0, 2.25), 45 degrees, 10 N."""
        return play(PRESETS["bounded_run"], run)

    @staticmethod
    def short_lob(run=True, fun_mode=False) -> dict:
        """3 N lob at 30 degrees: bounces on the floor long before the rim."""
        return play(PRESETS["short_lob"], run, fun_mode)

    @staticmethod
    def close_swish(run=True) -> dict:
        """Calibrate from 4 m at 55 degrees, then throw the calibrated force."""
        return play(PRESETS["close_swish"], run)

    @staticmethod
    def far_shallow(run=True) -> dict:
        """Calibrate from (20.0, 2.25) at 20 degrees."""
        return play(PRESETS["far_shallow"], run)
