"""
Basketball Shot Physics Engine
Ball flight under gravity and quadratic drag, floor / backboard / rim+net /
court-edge collisions. Side elevation only: x runs along the court, y is
height, (0, 0) is the floor at the left edge. SI units throughout.
"""

import logging
import math
from dataclasses import dataclass, field, replace
from typing import Tuple

logger = logging.getLogger(__name__)

# ──────────────────────────────────────────────
# Constants (SI units)
# ──────────────────────────────────────────────
GRAVITY: float = 9.81  # m/s^2
DRAG_COEFFICIENT: float = 0.47  # sphere
AIR_DENSITY: float = 1.225  # kg/m^3 at sea level

BALL_RADIUS: float = 0.242 / 2  # m
BALL_MASS: float = 0.623  # kg (22 oz)
RESTITUTION: float = 0.6  # ball bounce coefficient
CROSS_SECTION: float = math.pi * BALL_RADIUS * BALL_RADIUS  # m^2

# Court
COURT_LENGTH: float = 50.0  # m
COURT_HEIGHT: float = 10.0  # m
FRICTION_COEFFICIENT: float = 0.1  # floor
VISIBLE_COURT_LENGTH: float = COURT_LENGTH + 4  # m
PERSON_HEIGHT: float = 2.0  # m

# Backboard
BACKBOARD_X: float = COURT_LENGTH - 4.6  # front face, m
BACKBOARD_HEIGHT: float = 1.1  # m
BACKBOARD_THICKNESS: float = 0.02  # m

# Rim / hoop
RIM_RADIUS: float = 0.4572 / 2  # m
RIM_THICKNESS: float = 1.6 / 100  # 5/8" steel rod, m
RIM_HEIGHT: float = 3.05  # m
RIM_CENTRE_X: float = BACKBOARD_X - 0.151 - RIM_RADIUS / 2  # m
HOOP_X: float = RIM_CENTRE_X - RIM_RADIUS  # front of the rim, m

# Timesteps
COARSE_DT: float = 0.01  # s
FINE_DT: float = 0.001  # s, near the rim and backboard

# Throw domain
MIN_FORCE: float = 0.0  # N, exclusive
MAX_FORCE: float = 300.0  # N
MIN_ANGLE: float = 15.0  # degrees
MAX_ANGLE: float = 89.0  # degrees

# Collision tuning
FLOOR_BOUNCE_FACTOR: float = 2.16  # x gravity impulse / restitution
ROLLING_VY_THRESHOLD: float = 0.3  # m/s
LEFT_WALL_X: float = 0.1  # m
EDGE_DAMPING: float = 0.8  # extra loss on court-edge bounces
RIM_EDGE_MARGIN: float = 0.016  # inward margin of the rim band, m
NET_DEPTH: float = 0.2  # m below the rim treated as net
BELOW_RIM_BAND: float = 0.3  # m, also the slow-motion band under the rim
DUNK_CENTRING: float = 0.96
DUNK_NUDGE: float = 1 / 50
DUNK_VY_DECAY: float = 0.99


@dataclass
class CollisionFlags:
    """One-shot flags collected during a throw. Reset only by a new throw."""
    bounced_on_floor: bool = False
    hit_backboard: bool = False
    hit_hoop: bool = False
    went_above_hoop: bool = False
    went_above_backboard: bool = False
    on_target_above_hoop: bool = False
    on_target_below_hoop: bool = False
    closest_distance_to_hoop: float = math.inf  # inf = never reached the rim band

    @property
    def in_hoop(self) -> bool:
        return self.on_target_above_hoop and self.on_target_below_hoop

    @property
    def reached_rim(self) -> bool:
        return self.closest_distance_to_hoop != math.inf


@dataclass
class BallState:
    """Basketball position/velocity plus the flags used for scoring."""
    x: float = 0.0
    y: float = 0.0
    vx: float = 0.0
    vy: float = 0.0
    stopped: bool = True
    flags: CollisionFlags = field(default_factory=CollisionFlags)

    @property
    def position(self) -> Tuple[float, float]:
        return (self.x, self.y)

    @property
    def velocity(self) -> Tuple[float, float]:
        return (self.vx, self.vy)

    @property
    def speed(self) -> float:
        return math.sqrt(self.vx * self.vx + self.vy * self.vy)

    def is_finite(self) -> bool:
        return math.isfinite(self.x) and math.isfinite(self.y)

    def copy(self) -> "BallState":
        return replace(self, flags=replace(self.flags))


class PhysicsEngine:
    """Single-ball basketball engine. One ``update`` call is one tick."""

    def __init__(self):
        self.time_step: float = COARSE_DT  # timestep used by the last tick
        self.events: list = []

    # ──────────────────────────────────────────
    # Launch
    # ──────────────────────────────────────────
    @staticmethod
    def launch(ball: BallState, force: float, angle_degrees: float) -> None:
        """Give the ball its release velocity (v = F / m along the throw angle)."""
        angle_radians = angle_degrees * math.pi / 180.0
        initial_velocity = force / BALL_MASS
        ball.vx = initial_velocity * math.cos(angle_radians)
        ball.vy = initial_velocity * math.sin(angle_radians)
        ball.stopped = False

    # ──────────────────────────────────────────
    # Timestep selection
    # ──────────────────────────────────────────
    @staticmethod
    def use_slow_motion(ball: BallState) -> bool:
        """True while the ball is close enough to the rim/backboard to tunnel."""
        board_top = RIM_HEIGHT + BACKBOARD_HEIGHT

        if ball.y > board_top or ball.flags.in_hoop:
            return False
        if ball.y < RIM_HEIGHT - BALL_RADIUS - BELOW_RIM_BAND:
            return False

        rim_left_edge = RIM_CENTRE_X - RIM_RADIUS
        if ball.x + BALL_RADIUS < rim_left_edge - BALL_RADIUS:
            return False

        backboard_right = BACKBOARD_X + BACKBOARD_THICKNESS
        if ball.x > backboard_right + BALL_RADIUS * 1.5:
            return False

        return True

    @classmethod
    def choose_time_step(cls, ball: BallState) -> float:
        return FINE_DT if cls.use_slow_motion(ball) else COARSE_DT

    # ──────────────────────────────────────────
    # Flight
    # ──────────────────────────────────────────
    @staticmethod
    def drag_deceleration(vx: float, vy: float) -> float:
        """Quadratic drag as a scalar deceleration (m/s^2)."""
        speed = math.sqrt(vx * vx + vy * vy)
        drag_force = 0.25 * DRAG_COEFFICIENT * AIR_DENSITY * CROSS_SECTION * speed * speed
        return drag_force / BALL_MASS

    @classmethod
    def integrate(cls, x: float, y: float, vx: float, vy: float,
                  dt: float) -> Tuple[float, float, float, float]:
        """
        Semi-implicit Euler step: move with the current velocity, then apply
        gravity, then drag.

        The drag deceleration is subtracted from vx and vy as-is rather than
        along -v_hat. Calibrated forces and recorded training data depend on
        this exact trajectory, so it must not be normalised.
        """
        x += vx * dt
        y += vy * dt

        vy -= GRAVITY * dt

        drag = cls.drag_deceleration(vx, vy)
        vx -= drag * dt
        vy -= drag * dt
        return x, y, vx, vy

    def apply_ball_physics(self, ball: BallState, dt: float) -> None:
        ball.x, ball.y, ball.vx, ball.vy = self.integrate(ball.x, ball.y, ball.vx, ball.vy, dt)

        if not ball.flags.went_above_hoop and ball.y >= RIM_HEIGHT:
            ball.flags.went_above_hoop = True

    # ──────────────────────────────────────────
    # Floor
    # ──────────────────────────────────────────
    def _handle_floor_collision(self, ball: BallState, dt: float) -> None:
        if ball.y - BALL_RADIUS > 0:
            return

        flags = ball.flags
        # a bounce at or past the rim (e.g. after a make) is not disqualifying
        if not flags.bounced_on_floor and not flags.in_hoop and ball.x < RIM_CENTRE_X:
            flags.bounced_on_floor = True

        velocity_due_to_gravity = GRAVITY * dt

        if ball.vy < -FLOOR_BOUNCE_FACTOR * velocity_due_to_gravity / RESTITUTION:
            impact_speed = abs(ball.vy)
            ball.y = BALL_RADIUS
            ball.vy = -ball.vy * RESTITUTION
            self.events.append({"type": "floor", "speed": impact_speed})

        if abs(ball.vy) < ROLLING_VY_THRESHOLD:
            ball.y = BALL_RADIUS
            ball.vy = 0.0

            friction_force = FRICTION_COEFFICIENT * BALL_MASS * GRAVITY
            friction_accel = friction_force / BALL_MASS

            if abs(ball.vx) > friction_accel * dt:
                ball.vx -= math.copysign(friction_accel * dt, ball.vx)
            else:
                ball.vx = 0.0
                ball.stopped = True

    # ──────────────────────────────────────────
    # Backboard
    # ──────────────────────────────────────────
    def _handle_backboard_collision(self, ball: BallState, dt: float) -> None:
        """
        Thin vertical slab [BACKBOARD_X, BACKBOARD_X + thickness] spanning
        [RIM_HEIGHT, RIM_HEIGHT + BACKBOARD_HEIGHT]. Tested against the next
        position so a fast ball cannot step through the board in one tick.
        """
        backboard_right = BACKBOARD_X + BACKBOARD_THICKNESS
        board_top = RIM_HEIGHT + BACKBOARD_HEIGHT
        board_bottom = RIM_HEIGHT

        next_x = ball.x + ball.vx * dt

        crosses_front = (ball.x + BALL_RADIUS < BACKBOARD_X
                         and next_x + BALL_RADIUS > BACKBOARD_X)
        crosses_back = (ball.x - BALL_RADIUS < backboard_right
                        and next_x + BALL_RADIUS > backboard_right)
        if not (crosses_front or crosses_back):
            return

        next_y = ball.y + ball.vy * dt

        if not ball.flags.went_above_backboard and next_y + BALL_RADIUS > board_top:
            ball.flags.went_above_backboard = True

        if (next_x + BALL_RADIUS > BACKBOARD_X
                and next_x - BALL_RADIUS <= backboard_right
                and next_y + BALL_RADIUS >= board_bottom
                and next_y - BALL_RADIUS <= board_top):
            impact_speed = abs(ball.vx)
            ball.vx = -ball.vx * RESTITUTION
            ball.flags.hit_backboard = True
            self.events.append({"type": "backboard", "speed": impact_speed})

    # ──────────────────────────────────────────
    # Rim / net
    # ──────────────────────────────────────────
    @staticmethod
    def _reflect_off_rim(ball: BallState, dx: float, dy: float, distance: float) -> bool:
        """
        Reflect vx about the rim normal (|dx|, |dy|) / distance and damp it.
        Only the horizontal component is reflected. Returns False when the
        normal is undefined.
        """
        if distance == 0.0:
            return False
        normal_x = dx / distance
        normal_y = dy / distance

        velocity_dot_normal = ball.vx * normal_x + ball.vy * normal_y
        ball.vx -= 2 * velocity_dot_normal * normal_x
        ball.vx *= RESTITUTION
        return True

    def _handle_rim_collision(self, ball: BallState, dt: float) -> None:
        """
        Cases, in order:
          * ball above the rim and lined up, likely to drop in
          * ball below the rim having come from above (a make)
          * ball in the net, lateral drift killed
          * ball clipping the front edge of the rim
          * ball dunked cleanly through the inner rim
          * generic bounce off the rim
        """
        flags = ball.flags
        rim_centre_y = RIM_HEIGHT
        rim_right_edge = RIM_CENTRE_X + RIM_RADIUS - RIM_EDGE_MARGIN
        rim_left_edge = RIM_CENTRE_X - RIM_RADIUS + RIM_EDGE_MARGIN

        if ball.x + BALL_RADIUS < rim_left_edge:
            return
        if ball.x - BALL_RADIUS > rim_right_edge:
            return

        dx = abs(ball.x - RIM_CENTRE_X)
        dy = abs(ball.y - rim_centre_y)
        distance = math.sqrt(dx * dx + dy * dy)

        # gated on the horizontal offset but stores the full distance, so not a true minimum
        if dx < flags.closest_distance_to_hoop:
            flags.closest_distance_to_hoop = distance

        if dx <= BALL_RADIUS * 2 and rim_left_edge < ball.x < rim_right_edge:
            if ball.y >= rim_centre_y:
                # coming up through the net from below is not a goal
                if not flags.on_target_above_hoop:
                    flags.on_target_above_hoop = not flags.on_target_below_hoop
            elif flags.on_target_above_hoop and (
                    ball.y - BALL_RADIUS / 2 > rim_centre_y - BELOW_RIM_BAND
                    or flags.on_target_below_hoop):
                flags.on_target_below_hoop = True
            elif rim_centre_y - NET_DEPTH < ball.y:
                ball.vx = -abs(ball.vx)
                self.events.append({"type": "net"})
                return

        # front edge of the rim
        if ball.y - RIM_RADIUS <= rim_centre_y <= ball.y + RIM_RADIUS:
            edge_distance = math.sqrt((rim_left_edge - ball.x) ** 2 + (RIM_HEIGHT - ball.y) ** 2)
            if edge_distance < BALL_RADIUS and self._reflect_off_rim(ball, dx, dy, distance):
                ball.x += ball.vx * dt
                flags.hit_hoop = True
                self.events.append({"type": "rim", "edge": "front"})
                return

        # all of the ball still above the rim
        if ball.y + BALL_RADIUS / 2 > rim_centre_y:
            return

        if ball.y < rim_centre_y - NET_DEPTH or ball.x < RIM_CENTRE_X - RIM_RADIUS - 0.02:
            return

        dunked = (ball.x - BALL_RADIUS > rim_left_edge
                  and ball.x + BALL_RADIUS < rim_right_edge)
        if dunked:
            # keep the ball off the inner 20% next to the rim
            ball.vx = -(RIM_CENTRE_X - ball.x) * DUNK_CENTRING
            ball.x += (RIM_CENTRE_X - ball.x) * DUNK_NUDGE
            ball.vy *= DUNK_VY_DECAY
            self.events.append({"type": "dunk"})
            return

        if self._reflect_off_rim(ball, dx, dy, distance):
            ball.x += ball.vx * dt
            self.events.append({"type": "rim", "edge": "inner"})

    # ──────────────────────────────────────────
    # Court edges
    # ──────────────────────────────────────────
    def _handle_court_edges(self, ball: BallState) -> None:
        if ball.x < LEFT_WALL_X and ball.vx < 0:
            ball.x = LEFT_WALL_X
            ball.vx = -ball.vx * RESTITUTION * EDGE_DAMPING
            self.events.append({"type": "edge", "side": "left"})

        if ball.x + BALL_RADIUS > VISIBLE_COURT_LENGTH and ball.vx > 0:
            ball.x = min(ball.x, VISIBLE_COURT_LENGTH - 0.001)
            ball.vx = -ball.vx * RESTITUTION * EDGE_DAMPING
            self.events.append({"type": "edge", "side": "right"})

    # ──────────────────────────────────────────
    # Main update loop
    # ──────────────────────────────────────────
    def update(self, ball: BallState) -> None:
        """Advance one tick: flight, then floor, backboard, rim/net, edges."""
        self.events.clear()
        if ball.stopped:
            return

        dt = self.choose_time_step(ball)
        self.time_step = dt

        self.apply_ball_physics(ball, dt)

        self._handle_floor_collision(ball, dt)
        self._handle_backboard_collision(ball, dt)
        self._handle_rim_collision(ball, dt)
        self._handle_court_edges(ball)

    def simulate(self, ball: BallState, max_steps: int = 100_000) -> int:
        """
        Run until the ball stops, its position goes non-finite, or
        ``max_steps`` ticks have run.

        Returns:
            Number of ticks executed.
        """
        steps = 0
        while not ball.stopped and steps < max_steps:
            self.update(ball)
            steps += 1
            if not ball.is_finite():
                logger.warning("Ball position went non-finite after %d steps", steps)
                break
        return steps
