"""
Physics Engine Tests — flight integration, timestep selection and each
collision resolver in isolation.

Resolver tests place the ball by hand right next to the geometry and call
the resolver once with a known timestep.
"""

import sys
import os
import math
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from physics import (
    BallState, CollisionFlags, PhysicsEngine,
    BALL_RADIUS, BALL_MASS, GRAVITY, RESTITUTION,
    RIM_CENTRE_X, RIM_HEIGHT, RIM_RADIUS, RIM_EDGE_MARGIN, HOOP_X,
    BACKBOARD_X, BACKBOARD_HEIGHT, BACKBOARD_THICKNESS,
    VISIBLE_COURT_LENGTH, COARSE_DT, FINE_DT, EDGE_DAMPING,
)


# ── Helpers ──────────────────────────────────────────────

def moving_ball(x, y, vx=0.0, vy=0.0) -> BallState:
    return BallState(x=x, y=y, vx=vx, vy=vy, stopped=False)


def event_types(engine: PhysicsEngine) -> list:
    return [ev["type"] for ev in engine.events]


# ── Geometry ─────────────────────────────────────────────

class TestGeometry:
    """Derived court positions."""

    def test_rim_centre_is_in_front_of_backboard(self):
        assert BACKBOARD_X == pytest.approx(45.4)
        assert RIM_CENTRE_X == pytest.approx(45.4 - 0.151 - 0.2286 / 2)
        assert RIM_CENTRE_X < BACKBOARD_X

    def test_hoop_x_is_front_of_rim(self):
        assert HOOP_X == pytest.approx(RIM_CENTRE_X - RIM_RADIUS)

    def test_ball_and_rim_dimensions(self):
        assert BALL_RADIUS == pytest.approx(0.121)
        assert RIM_RADIUS == pytest.approx(0.2286)
        assert VISIBLE_COURT_LENGTH == pytest.approx(54.0)


# ── Launch + flight ──────────────────────────────────────

class TestFlight:
    """Launch velocity and the semi-implicit Euler step."""

    def test_launch_speed_is_force_over_mass(self):
        ball = BallState()
        PhysicsEngine.launch(ball, force=BALL_MASS * 10.0, angle_degrees=45.0)
        assert ball.speed == pytest.approx(10.0)
        assert ball.vx == pytest.approx(ball.vy)
        assert not ball.stopped

    def test_position_moves_with_pre_step_velocity(self):
        x, y, vx, vy = PhysicsEngine.integrate(1.0, 2.0, 10.0, 5.0, 0.01)
        assert x == pytest.approx(1.1)
        assert y == pytest.approx(2.05)

    def test_gravity_then_drag_on_both_axes(self):
        dt = 0.01
        _, _, vx, vy = PhysicsEngine.integrate(0.0, 0.0, 10.0, 0.0, dt)

        vy_after_gravity = -GRAVITY * dt
        drag = PhysicsEngine.drag_deceleration(10.0, vy_after_gravity)
        assert vx == pytest.approx(10.0 - drag * dt)
        assert vy == pytest.approx(vy_after_gravity - drag * dt)

    def test_drag_decrement_is_not_directional(self):
        """The same scalar is taken off both axes, whatever the direction of travel."""
        _, _, vx, vy = PhysicsEngine.integrate(0.0, 5.0, -10.0, 0.0, 0.01)
        # moving left: drag makes vx more negative
        assert vx < -10.0
        assert (-10.0 - vx) == pytest.approx((-GRAVITY * 0.01) - vy)

    def test_went_above_hoop_flag(self):
        engine = PhysicsEngine()
        ball = moving_ball(10.0, RIM_HEIGHT - 0.05, vx=1.0, vy=10.0)
        engine.apply_ball_physics(ball, COARSE_DT)
        assert ball.flags.went_above_hoop

    def test_low_ball_does_not_set_went_above_hoop(self):
        engine = PhysicsEngine()
        ball = moving_ball(10.0, 1.0, vx=1.0, vy=1.0)
        engine.apply_ball_physics(ball, COARSE_DT)
        assert not ball.flags.went_above_hoop


# ── Timestep selection ───────────────────────────────────

class TestTimeStep:
    """Fine step near the rim/backboard only."""

    def test_fine_step_just_above_rim(self):
        ball = moving_ball(RIM_CENTRE_X, RIM_HEIGHT + 0.5)
        assert PhysicsEngine.use_slow_motion(ball)
        assert PhysicsEngine.choose_time_step(ball) == FINE_DT

    def test_coarse_step_far_from_rim(self):
        ball = moving_ball(10.0, RIM_HEIGHT + 0.5)
        assert not PhysicsEngine.use_slow_motion(ball)
        assert PhysicsEngine.choose_time_step(ball) == COARSE_DT

    def test_coarse_step_above_backboard(self):
        ball = moving_ball(RIM_CENTRE_X, RIM_HEIGHT + BACKBOARD_HEIGHT + 0.5)
        assert PhysicsEngine.choose_time_step(ball) == COARSE_DT

    def test_coarse_step_well_below_rim(self):
        ball = moving_ball(RIM_CENTRE_X, 1.0)
        assert PhysicsEngine.choose_time_step(ball) == COARSE_DT

    def test_coarse_step_once_in_hoop(self):
        ball = moving_ball(RIM_CENTRE_X, RIM_HEIGHT + 0.1)
        ball.flags.on_target_above_hoop = True
        ball.flags.on_target_below_hoop = True
        assert PhysicsEngine.choose_time_step(ball) == COARSE_DT

    def test_update_records_the_step_used(self):
        engine = PhysicsEngine()
        engine.update(moving_ball(RIM_CENTRE_X, RIM_HEIGHT + 0.5, vx=0.5))
        assert engine.time_step == FINE_DT


# ── Floor ────────────────────────────────────────────────

class TestFloor:
    """Bounce, roll with friction, and the floor-bounce flag."""

    def test_fast_fall_bounces_with_restitution(self):
        engine = PhysicsEngine()
        ball = moving_ball(10.0, 0.1, vx=1.0, vy=-5.0)
        engine._handle_floor_collision(ball, COARSE_DT)

        assert ball.y == BALL_RADIUS
        assert ball.vy == pytest.approx(5.0 * RESTITUTION)
        assert ball.flags.bounced_on_floor
        assert "floor" in event_types(engine)

    def test_ball_above_floor_untouched(self):
        engine = PhysicsEngine()
        ball = moving_ball(10.0, 1.0, vx=1.0, vy=-5.0)
        engine._handle_floor_collision(ball, COARSE_DT)
        assert ball.vy == -5.0
        assert not ball.flags.bounced_on_floor

    def test_bounce_past_rim_centre_is_not_flagged(self):
        engine = PhysicsEngine()
        ball = moving_ball(RIM_CENTRE_X + 0.5, 0.1, vx=-1.0, vy=-5.0)
        engine._handle_floor_collision(ball, COARSE_DT)
        assert not ball.flags.bounced_on_floor

    def test_bounce_after_make_is_not_flagged(self):
        engine = PhysicsEngine()
        ball = moving_ball(RIM_CENTRE_X - 0.05, 0.1, vx=-1.0, vy=-5.0)
        ball.flags.on_target_above_hoop = True
        ball.flags.on_target_below_hoop = True
        engine._handle_floor_collision(ball, COARSE_DT)
        assert not ball.flags.bounced_on_floor

    def test_rolling_ball_slows_by_friction(self):
        engine = PhysicsEngine()
        ball = moving_ball(10.0, BALL_RADIUS, vx=1.0, vy=0.0)
        engine._handle_floor_collision(ball, COARSE_DT)

        friction_step = 0.1 * GRAVITY * COARSE_DT
        assert ball.vx == pytest.approx(1.0 - friction_step)
        assert ball.vy == 0.0
        assert not ball.stopped

    def test_rolling_ball_stops(self):
        engine = PhysicsEngine()
        ball = moving_ball(10.0, BALL_RADIUS, vx=-0.005, vy=0.0)
        engine._handle_floor_collision(ball, COARSE_DT)
        assert ball.vx == 0.0
        assert ball.stopped


# ── Backboard ────────────────────────────────────────────

class TestBackboard:
    """Predictive crossing test against the slab."""

    def test_ball_crossing_front_face_reflects(self):
        engine = PhysicsEngine()
        ball = moving_ball(BACKBOARD_X - BALL_RADIUS - 0.05, RIM_HEIGHT + 0.5, vx=10.0, vy=0.0)
        engine._handle_backboard_collision(ball, COARSE_DT)

        assert ball.vx == pytest.approx(-10.0 * RESTITUTION)
        assert ball.flags.hit_backboard
        assert "backboard" in event_types(engine)

    def test_ball_below_board_passes(self):
        engine = PhysicsEngine()
        ball = moving_ball(BACKBOARD_X - BALL_RADIUS - 0.05, RIM_HEIGHT - 0.5, vx=10.0, vy=0.0)
        engine._handle_backboard_collision(ball, COARSE_DT)
        assert ball.vx == 10.0
        assert not ball.flags.hit_backboard

    def test_ball_over_the_top_sets_flag_without_bounce(self):
        engine = PhysicsEngine()
        top = RIM_HEIGHT + BACKBOARD_HEIGHT
        ball = moving_ball(BACKBOARD_X - BALL_RADIUS - 0.05, top + 0.3, vx=10.0, vy=0.0)
        engine._handle_backboard_collision(ball, COARSE_DT)
        assert ball.flags.went_above_backboard
        assert not ball.flags.hit_backboard
        assert ball.vx == 10.0

    def test_ball_moving_away_is_ignored(self):
        engine = PhysicsEngine()
        ball = moving_ball(BACKBOARD_X - BALL_RADIUS - 0.05, RIM_HEIGHT + 0.5, vx=-10.0, vy=0.0)
        engine._handle_backboard_collision(ball, COARSE_DT)
        assert ball.vx == -10.0
        assert engine.events == []

    def test_slab_thickness(self):
        assert BACKBOARD_THICKNESS == pytest.approx(0.02)


# ── Rim / net ────────────────────────────────────────────

class TestRim:
    """Above/below tracking, net capture, rim-edge bounces."""

    def test_ball_far_from_rim_is_ignored(self):
        engine = PhysicsEngine()
        ball = moving_ball(10.0, RIM_HEIGHT, vx=1.0, vy=-1.0)
        engine._handle_rim_collision(ball, FINE_DT)
        assert not ball.flags.reached_rim
        assert ball.vx == 1.0

    def test_top_down_pass_is_a_make(self):
        engine = PhysicsEngine()
        ball = moving_ball(RIM_CENTRE_X, RIM_HEIGHT + 0.05, vx=0.0, vy=-1.0)
        engine._handle_rim_collision(ball, FINE_DT)
        assert ball.flags.on_target_above_hoop
        assert not ball.flags.in_hoop

        ball.y = RIM_HEIGHT - 0.1
        engine._handle_rim_collision(ball, FINE_DT)
        assert ball.flags.on_target_below_hoop
        assert ball.flags.in_hoop

    def test_below_rim_without_above_is_net_capture(self):
        engine = PhysicsEngine()
        ball = moving_ball(RIM_CENTRE_X + 0.05, RIM_HEIGHT - 0.1, vx=1.0, vy=-1.0)
        engine._handle_rim_collision(ball, FINE_DT)

        assert not ball.flags.on_target_below_hoop
        assert ball.vx == -1.0
        assert event_types(engine) == ["net"]

    def test_premature_below_blocks_above(self):
        engine = PhysicsEngine()
        ball = moving_ball(RIM_CENTRE_X, RIM_HEIGHT + 0.05, vx=0.0, vy=1.0)
        ball.flags.on_target_below_hoop = True
        engine._handle_rim_collision(ball, FINE_DT)
        assert not ball.flags.on_target_above_hoop
        assert not ball.flags.in_hoop

    def test_closest_distance_tracking(self):
        engine = PhysicsEngine()
        ball = moving_ball(RIM_CENTRE_X + 0.05, RIM_HEIGHT - 0.1, vx=1.0, vy=-1.0)
        engine._handle_rim_collision(ball, FINE_DT)
        assert ball.flags.reached_rim
        assert ball.flags.closest_distance_to_hoop == pytest.approx(math.hypot(0.05, 0.1))

    def test_front_edge_bounce(self):
        engine = PhysicsEngine()
        rim_left_edge = RIM_CENTRE_X - RIM_RADIUS + RIM_EDGE_MARGIN
        ball = moving_ball(rim_left_edge - 0.1, RIM_HEIGHT + 0.02, vx=3.0, vy=-1.0)

        dx = abs(ball.x - RIM_CENTRE_X)
        dy = abs(ball.y - RIM_HEIGHT)
        distance = math.hypot(dx, dy)
        nx, ny = dx / distance, dy / distance
        vdn = 3.0 * nx + (-1.0) * ny
        expected_vx = (3.0 - 2 * vdn * nx) * RESTITUTION

        engine._handle_rim_collision(ball, FINE_DT)

        assert ball.vx == pytest.approx(expected_vx)
        assert ball.vx < 0, "ball clipping the front of the rim should bounce back"
        assert ball.vy == -1.0, "only vx is reflected"
        assert ball.flags.hit_hoop
        assert event_types(engine) == ["rim"]

    def test_inner_rim_bounce(self):
        engine = PhysicsEngine()
        ball = moving_ball(RIM_CENTRE_X + 0.25, RIM_HEIGHT - 0.1, vx=1.0, vy=-1.0)

        distance = math.hypot(0.25, 0.1)
        nx, ny = 0.25 / distance, 0.1 / distance
        vdn = 1.0 * nx + (-1.0) * ny
        expected_vx = (1.0 - 2 * vdn * nx) * RESTITUTION

        engine._handle_rim_collision(ball, FINE_DT)

        assert ball.vx == pytest.approx(expected_vx)
        assert ball.vy == -1.0, "only vx is reflected"
        assert ball.x == pytest.approx(RIM_CENTRE_X + 0.25 + expected_vx * FINE_DT)
        assert not ball.flags.hit_hoop
        assert engine.events == [{"type": "rim", "edge": "inner"}]

    def test_below_net_band_is_ignored(self):
        engine = PhysicsEngine()
        ball = moving_ball(RIM_CENTRE_X + 0.25, RIM_HEIGHT - 0.25, vx=1.0, vy=-1.0)
        engine._handle_rim_collision(ball, FINE_DT)

        assert (ball.vx, ball.vy) == (1.0, -1.0)
        assert ball.x == RIM_CENTRE_X + 0.25
        assert engine.events == []

    def test_dunk_pulls_ball_to_centre(self):
        engine = PhysicsEngine()
        ball = moving_ball(RIM_CENTRE_X - 0.05, RIM_HEIGHT - 0.1, vx=0.5, vy=-2.0)
        ball.flags.on_target_above_hoop = True
        ball.flags.on_target_below_hoop = True
        engine._handle_rim_collision(ball, FINE_DT)

        assert ball.vx == pytest.approx(-0.05 * 0.96)
        assert ball.vy == pytest.approx(-2.0 * 0.99)
        assert "dunk" in event_types(engine)


# ── Court edges ──────────────────────────────────────────

class TestCourtEdges:
    """Damped bounce off both ends of the visible court."""

    def test_left_wall(self):
        engine = PhysicsEngine()
        ball = moving_ball(0.05, 1.0, vx=-2.0)
        engine._handle_court_edges(ball)
        assert ball.x == 0.1
        assert ball.vx == pytest.approx(2.0 * RESTITUTION * EDGE_DAMPING)

    def test_right_wall(self):
        engine = PhysicsEngine()
        ball = moving_ball(VISIBLE_COURT_LENGTH - 0.05, 1.0, vx=3.0)
        engine._handle_court_edges(ball)
        assert ball.x <= VISIBLE_COURT_LENGTH - 0.001
        assert ball.vx == pytest.approx(-3.0 * RESTITUTION * EDGE_DAMPING)

    def test_ball_moving_inwards_is_not_reflected(self):
        engine = PhysicsEngine()
        ball = moving_ball(0.05, 1.0, vx=2.0)
        engine._handle_court_edges(ball)
        assert ball.vx == 2.0


# ── Update loop ──────────────────────────────────────────

class TestUpdate:
    """Whole-tick behaviour."""

    def test_stopped_ball_is_untouched(self):
        engine = PhysicsEngine()
        ball = BallState(x=3.0, y=2.0, vx=1.0, vy=1.0, stopped=True)
        engine.update(ball)
        assert (ball.x, ball.y, ball.vx, ball.vy) == (3.0, 2.0, 1.0, 1.0)
        assert engine.events == []

    def test_simulate_runs_to_rest(self):
        engine = PhysicsEngine()
        ball = BallState(x=2.0, y=2.25)
        engine.launch(ball, 10.0, 45.0)
        steps = engine.simulate(ball, max_steps=100_000)

        assert ball.stopped
        assert ball.is_finite()
        assert 0 < steps < 100_000
        assert ball.y == BALL_RADIUS

    def test_copy_is_independent(self):
        ball = moving_ball(1.0, 2.0, vx=3.0)
        clone = ball.copy()
        clone.x = 9.0
        clone.flags.hit_hoop = True
        assert ball.x == 1.0
        assert not ball.flags.hit_hoop
        assert isinstance(clone.flags, CollisionFlags)
