"""
Training data for the force-predicting network.

Sweeps thrower distance x throw angle, calibrates each cell, re-throws the
calibrated force on a fresh simulation and keeps only the cells that
actually go in. Rows are written as CSV:

    Force,Angle,XPos,Distance,Score
"""

import argparse
import csv
import logging
from dataclasses import dataclass
from typing import Iterable, Iterator

import numpy as np

from calibration import FORCE_NORMALISER
from controller import BasketballSimulation
from physics import RIM_CENTRE_X
from throw_presets import CALIBRATION_THROW_FORCE, release_point_for_distance
import scoring

logger = logging.getLogger(__name__)

CSV_HEADER = ["Force", "Angle", "XPos", "Distance", "Score"]

MIN_DISTANCE = 2.0  # m from the rim centre
MIN_ANGLE = 15.0    # degrees
MAX_ANGLE = 70.0    # degrees, exclusive

_MAX_STEPS = 100_000


def _fmt(value: float) -> str:
    return f"{value:.10g}"


@dataclass
class TrainingRow:
    force: float
    angle: float
    x_pos: float
    distance: float
    score: float

    def as_csv_row(self) -> list:
        return [f"{self.force:.5f}", _fmt(self.angle), _fmt(self.x_pos),
                _fmt(self.distance), _fmt(self.score)]


def default_distances(step: float = 1.0) -> np.ndarray:
    return np.arange(MIN_DISTANCE, RIM_CENTRE_X, step)


def default_angles(step: float = 1.0) -> np.ndarray:
    return np.arange(MIN_ANGLE, MAX_ANGLE, step)


def evaluate_cell(distance: float, angle: float) -> TrainingRow | None:
    """Calibrate and verify one (distance, angle) cell. None if it does not go in."""
    release = release_point_for_distance(distance)

    calibrating = BasketballSimulation(release)
    force = calibrating.throw(CALIBRATION_THROW_FORCE, angle, guess_the_force=True)
    if force <= 1 or force >= FORCE_NORMALISER * 2:
        logger.debug("distance=%g angle=%g: no usable force (%s)", distance, angle, force)
        return None

    sim = BasketballSimulation(release)
    sim.throw(force, angle, guess_the_force=False)
    sim.run_to_rest(_MAX_STEPS)
    if not sim.ball.is_finite():
        return None

    result = sim.score()
    if result < scoring.MAKE_THRESHOLD:
        logger.debug("distance=%g angle=%g force=%.5f missed (score %s)", distance, angle, force, result)
        return None

    return TrainingRow(force=force, angle=angle, x_pos=release[0], distance=distance, score=result)


def iter_training_rows(distances: Iterable[float] | None = None,
                       angles: Iterable[float] | None = None) -> Iterator[TrainingRow]:
    """Yield a row for every cell whose calibrated throw scores at least MAKE_THRESHOLD."""
    distances = default_distances() if distances is None else distances
    angle_list = [float(a) for a in (default_angles() if angles is None else angles)]

    for distance in distances:
        distance = float(distance)
        made = 0
        for angle in angle_list:
            row = evaluate_cell(distance, angle)
            if row is not None:
                made += 1
                yield row
        logger.info("distance %g m: %d/%d angles go in", distance, made, len(angle_list))


def write_training_csv(path: str, rows: Iterable[TrainingRow]) -> int:
    """Write header + rows to ``path``. Returns the number of rows written."""
    count = 0
    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(CSV_HEADER)
        for row in rows:
            writer.writerow(row.as_csv_row())
            count += 1
    logger.info("Saved %d rows -> %s", count, path)
    return count


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Generate calibrated-throw training data.")
    parser.add_argument("output", help="CSV file to write")
    parser.add_argument("--distance-step", type=float, default=1.0)
    parser.add_argument("--angle-step", type=float, default=1.0)
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
    write_training_csv(args.output, iter_training_rows(default_distances(args.distance_step),
                                                       default_angles(args.angle_step)))
