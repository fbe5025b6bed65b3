"""
Basketball Simulation Web Server (FastAPI + WebSocket)

Runs the tick loop for one shared simulation and streams ball state to
clients over WebSocket. Throws, calibrations and presets are driven over
REST; calibration runs in a worker thread so ticks keep flowing.
"""

import asyncio
import json
import logging
import math
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, Field

from calibration import FORCE_NORMALISER, CalibrationResult, ForceCalibrator, validate_throw
from controller import BasketballSimulation, DEFAULT_RELEASE_POINT
from physics import CollisionFlags
import physics as _phys
from throw_presets import PRESETS

logger = logging.getLogger(__name__)

# ── Simulation ──────────────────────────────────────────────────────────────

# interactive play: floor bounces still score
ctrl = BasketballSimulation(DEFAULT_RELEASE_POINT, fun_mode=True)


# ── Lifespan (startup/shutdown) ─────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    task = asyncio.create_task(game_loop())
    yield
    task.cancel()


app = FastAPI(title="Basketball Simulation", lifespan=lifespan)

clients: list[WebSocket] = []

# Constants exposed to clients verbatim
EXPOSED_CONSTANTS = [
    "GRAVITY", "DRAG_COEFFICIENT", "AIR_DENSITY", "BALL_RADIUS", "BALL_MASS",
    "RESTITUTION", "FRICTION_COEFFICIENT", "RIM_RADIUS", "RIM_THICKNESS",
    "RIM_HEIGHT", "RIM_CENTRE_X", "HOOP_X", "BACKBOARD_X", "BACKBOARD_HEIGHT",
    "BACKBOARD_THICKNESS", "COURT_LENGTH", "COURT_HEIGHT", "VISIBLE_COURT_LENGTH",
    "PERSON_HEIGHT", "COARSE_DT", "FINE_DT", "MIN_FORCE", "MAX_FORCE",
    "MIN_ANGLE", "MAX_ANGLE",
]

# ── Async tick loop ─────────────────────────────────────────────────────────

TARGET_FPS = 60
FRAME_DT = 1.0 / TARGET_FPS
MAX_TICKS_PER_FRAME = 50   # fine steps near the rim: cap the catch-up work


async def game_loop():
    """Advance the ball in real time at ~60 fps and broadcast a frame."""
    last_time = time.perf_counter()

    while True:
        now = time.perf_counter()
        dt = now - last_time
        last_time = now

        # Clamp dt to avoid spiral-of-death
        if dt > 0.05:
            dt = 0.05

        events = _advance(dt)

        if clients:
            frame_msg = _build_frame_message(events)
            dead: list[WebSocket] = []
            for ws in clients:
                try:
                    await ws.send_text(frame_msg)
                except Exception:
                    dead.append(ws)
            for ws in dead:
                if ws in clients:
                    clients.remove(ws)

        # Sleep to maintain target FPS
        elapsed = time.perf_counter() - now
        sleep_time = FRAME_DT - elapsed
        if sleep_time > 0:
            await asyncio.sleep(sleep_time)
        else:
            await asyncio.sleep(0)


def _advance(dt: float) -> list:
    """Tick the shared simulation for ``dt`` simulated seconds. Returns collision events."""
    events = []
    simulated = 0.0
    ticks = 0
    while not ctrl.is_stopped() and simulated < dt and ticks < MAX_TICKS_PER_FRAME:
        ctrl.move_ball()
        simulated += ctrl.time_step
        ticks += 1
        events.extend(ctrl.events)
        if not ctrl.ball.is_finite():
            logger.warning("Non-finite ball position, parking the ball")
            ctrl.set_release_point(*ctrl.release_point)
            break
    return events


def _build_frame_message(events: list) -> str:
    """Serialize current state into a JSON frame message."""
    x, y = ctrl.location()
    vx, vy = ctrl.velocity()
    frame = {
        "type": "frame",
        "ball": {
            "pos": [round(x, 5), round(y, 5)],
            "vel": [round(vx, 4), round(vy, 4)],
            "stopped": ctrl.is_stopped(),
        },
        "in_hoop": ctrl.is_in_hoop(),
        "score": round(ctrl.score(), 3),
        "elapsed": round(ctrl.elapsed_time, 4),
        "events": events,
    }
    return json.dumps(frame, separators=(',', ':'))


def _constants() -> dict:
    data = {name: getattr(_phys, name) for name in EXPOSED_CONSTANTS}
    data["FORCE_NORMALISER"] = FORCE_NORMALISER
    return data


# ── Request models ──────────────────────────────────────────────────────────

class ReleaseRequest(BaseModel):
    x: float = Field(ge=0.0, le=_phys.VISIBLE_COURT_LENGTH)
    y: float = Field(ge=0.0, le=_phys.COURT_HEIGHT)


class ThrowRequest(BaseModel):
    force: float
    angle: float
    guess_the_force: bool = False


class CalibrateRequest(BaseModel):
    angle: float
    x: float | None = None
    y: float | None = None


class SimulateRequest(BaseModel):
    force: float
    angle: float
    x: float | None = None
    y: float | None = None


class FunModeRequest(BaseModel):
    enabled: bool


# ── Calibration off the event loop ──────────────────────────────────────────

async def _calibrate(angle: float, release_point: tuple) -> CalibrationResult:
    # the probe reads vy and hit_hoop of the ball about to be thrown; flags
    # are reset by the throw, vy is whatever the ball has now
    reference = ctrl.ball.copy()
    reference.flags = CollisionFlags()
    calibrator = ForceCalibrator(time_step=ctrl.time_step, reference=reference,
                                 release_point=release_point)
    try:
        return await asyncio.to_thread(calibrator.calibrate, angle, release_point)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


def _calibration_payload(result: CalibrationResult) -> dict:
    return {
        "force": result.force,
        "approximate_force": result.approximate_force,
        "best_score": result.best_score,
        "feasible": result.feasible,
        "trace": result.lines(),
    }


def _launch(force: float, angle: float) -> None:
    try:
        ctrl.throw(force, angle, guess_the_force=False)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


# ── REST endpoints ──────────────────────────────────────────────────────────

@app.get("/api/constants")
async def get_constants():
    return _constants()


@app.get("/api/state")
async def get_state():
    return ctrl.get_state()


@app.post("/api/release")
async def set_release(req: ReleaseRequest):
    ctrl.set_release_point(req.x, req.y)
    return ctrl.get_state()


@app.post("/api/fun_mode")
async def set_fun_mode(req: FunModeRequest):
    ctrl.fun_mode = req.enabled
    return {"fun_mode": ctrl.fun_mode}


@app.post("/api/throw")
async def throw(req: ThrowRequest):
    """
    Launch with ``force``. With ``guess_the_force`` the calibrated force is
    reported too, but, as for BasketballSimulation.throw, not used.
    """
    required_force = 0.0
    trace: list = []
    if req.guess_the_force:
        # reject bad input before spending a calibration on it
        try:
            validate_throw(req.force, req.angle)
        except ValueError as e:
            raise HTTPException(status_code=422, detail=str(e))
        result = await _calibrate(req.angle, ctrl.release_point)
        required_force = result.force
        trace = result.lines()
    _launch(req.force, req.angle)
    return {"required_force": required_force, "trace": trace, "state": ctrl.get_state()}


@app.post("/api/calibrate")
async def calibrate(req: CalibrateRequest):
    if req.x is not None and req.y is not None:
        release_point = (req.x, req.y)
    else:
        release_point = ctrl.release_point
    result = await _calibrate(req.angle, release_point)
    return _calibration_payload(result)


@app.post("/api/simulate")
async def simulate(req: SimulateRequest):
    """Headless throw; the shared ball is untouched."""
    release_point = (req.x, req.y) if req.x is not None and req.y is not None else None
    try:
        result = await asyncio.to_thread(ctrl.simulate_throw, req.force, req.angle,
                                         release_point=release_point)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    flags = result["flags"]
    if math.isinf(flags["closest_distance_to_hoop"]):
        flags["closest_distance_to_hoop"] = None
    return {
        "score": result["score"],
        "made": result["made"],
        "in_hoop": result["in_hoop"],
        "flags": flags,
        "steps": result["steps"],
        "sim_time": result["sim_time"],
        "aborted": result["aborted"],
        "ball": result["ball"],
        "trajectory": result["trajectory"].round(5).tolist(),
    }


@app.get("/api/presets")
async def list_presets():
    return {
        name: {"release": list(preset.release_point), "angle": preset.angle,
               "force": preset.force, "description": preset.description}
        for name, preset in PRESETS.items()
    }


@app.post("/api/presets/{name}")
async def play_preset(name: str):
    preset = PRESETS.get(name)
    if preset is None:
        raise HTTPException(status_code=404, detail=f"unknown preset: {name}")

    ctrl.set_release_point(*preset.release_point)
    force = preset.force
    trace: list = []
    if force is None:
        result = await _calibrate(preset.angle, preset.release_point)
        trace = result.lines()
        if not result.feasible:
            return {"launched": False, "force": 0.0, "trace": trace, "state": ctrl.get_state()}
        force = result.force

    _launch(force, preset.angle)
    return {"launched": True, "force": force, "trace": trace, "state": ctrl.get_state()}


# ── WebSocket endpoint ──────────────────────────────────────────────────────

@app.websocket("/ws")
async def websocket_endpoint(ws: WebSocket):
    await ws.accept()
    # Send init message with court/physics constants and the current state,
    # before the tick loop starts broadcasting frames to this client
    await ws.send_text(json.dumps({
        "type": "init",
        "constants": _constants(),
        "target_fps": TARGET_FPS,
        "state": ctrl.get_state(),
    }))
    clients.append(ws)

    try:
        while True:
            data = await ws.receive_text()
            try:
                msg = json.loads(data)
            except json.JSONDecodeError:
                continue

            cmd = msg.get("cmd", "")
            try:
                if cmd == "throw":
                    ctrl.throw(float(msg.get("force", 0.0)), float(msg.get("angle", 0.0)),
                               guess_the_force=False)
                elif cmd == "set_release":
                    ctrl.set_release_point(float(msg.get("x", 0.0)), float(msg.get("y", 0.0)))
                elif cmd == "fun_mode":
                    ctrl.fun_mode = bool(msg.get("enabled", True))
                elif cmd == "get_state":
                    await ws.send_text(json.dumps({"type": "state", "data": ctrl.get_state()}))
            except (TypeError, ValueError) as e:
                await ws.send_text(json.dumps({"type": "error", "cmd": cmd, "detail": str(e)}))
    except WebSocketDisconnect:
        pass
    finally:
        if ws in clients:
            clients.remove(ws)


# ── Run with uvicorn ────────────────────────────────────────────────────────

if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
    uvicorn.run("server:app", host="0.0.0.0", port=8000, reload=False)
