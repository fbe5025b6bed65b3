"""
Shot scoring. Pure functions of a BallState, callable at any time during a
throw (not only at rest).

The score is a reward signal: a make is worth 1,000,000 (minus 100 off the
backboard), misses get partial credit for height and for how close they got
to the rim. Calibration and training-data generation rely on the make
threshold being exactly MAKE_THRESHOLD.
"""

from physics import BallState, RIM_CENTRE_X

MAKE_SCORE: float = 1_000_000
BACKBOARD_PENALTY: float = 100
MAKE_THRESHOLD: float = MAKE_SCORE - BACKBOARD_PENALTY  # lowest score of any make

ABOVE_HOOP_BONUS: float = 10_000
WENT_ABOVE_HOOP_BONUS: float = 500


def is_in_hoop(ball: BallState) -> bool:
    return ball.flags.in_hoop


def score(ball: BallState, fun_mode: bool = False) -> float:
    """
    Args:
        ball: current state, including its collision flags.
        fun_mode: when True a floor bounce no longer zeroes the score.
    """
    flags = ball.flags

    if not fun_mode and flags.bounced_on_floor:
        return 0.0

    if flags.in_hoop:
        result = MAKE_SCORE
        if flags.hit_backboard:
            result -= BACKBOARD_PENALTY
        return float(result)

    result = 0.0
    if flags.on_target_above_hoop:
        result += ABOVE_HOOP_BONUS
    if flags.went_above_hoop:
        result += WENT_ABOVE_HOOP_BONUS

    if not flags.reached_rim:
        # reward height, then horizontal closeness
        result += ball.y / 10
        result -= 20 if flags.went_above_backboard else 0
        result += min(1000 - abs(ball.x - RIM_CENTRE_X) * 25, 100)
    else:
        result += min(2000 - max(flags.closest_distance_to_hoop, 4) * 250, 50000) - (
            100 if flags.went_above_backboard else 0)

    return result
