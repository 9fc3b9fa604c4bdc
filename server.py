"""
NeuroEvo Grid Server  –  Flask + Server-Sent Events
===================================================

Endpoints:
  POST /start        Start (or restart) the simulation with a JSON params body
  POST /stop         Pause the running simulation
  POST /step         Run N frames while paused ({"frames": N}, default 1)
  GET  /status       Running flag, tick and params as JSON
  GET  /state        Board markers, agents and metrics of the current frame
  GET  /network      Graph of the best agent's network
  GET  /stream       SSE stream – browser subscribes here for live frames

Run:
  python server.py
  # → http://localhost:5000
"""

import json
import logging
import queue
import threading
import time

from flask import Flask, Response, jsonify, request

from config import (CELL_SIZE, GRID_HEIGHT, GRID_WIDTH, LEARNING_RATE,
                    MAX_AGENTS, MAX_DIFFICULTY, MIN_AGENTS, PARENT_FATE)
from simulation import FrameState, Simulation, SimulationParams

log = logging.getLogger(__name__)

# ──────────────────────────────────────────────────────────────────────────────
app = Flask(__name__)

# Global simulation state
_sim:         Simulation | None = None
_sim_thread:  threading.Thread | None = None
_stop_event   = threading.Event()
_frame_queue  = queue.Queue(maxsize=200)   # holds dicts to stream
_sim_status   = {
    "running": False,
    "tick":    0,
    "delay":   0.0,
    "params":  {},
}
_sim_lock     = threading.Lock()


# ──────────────────────────────────────────────────────────────────────────────
# CORS helper – allow a dev front-end (any origin) to call us
# ──────────────────────────────────────────────────────────────────────────────

@app.after_request
def add_cors(response):
    response.headers["Access-Control-Allow-Origin"]  = "*"
    response.headers["Access-Control-Allow-Headers"] = "Content-Type"
    response.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
    return response

@app.route("/", methods=["OPTIONS"])
@app.route("/<path:p>", methods=["OPTIONS"])
def preflight(p=""):
    return Response(status=200)


# ──────────────────────────────────────────────────────────────────────────────
# Payloads
# ──────────────────────────────────────────────────────────────────────────────

def _build_params(data: dict) -> dict:
    """Merge request JSON with defaults."""
    return {
        "grid_width":     int(data.get("gridWidth",     GRID_WIDTH)),
        "grid_height":    int(data.get("gridHeight",    GRID_HEIGHT)),
        "cell_size":      int(data.get("cellSize",      CELL_SIZE)),
        "min_agents":     int(data.get("minAgents",     MIN_AGENTS)),
        "max_agents":     int(data.get("maxAgents",     MAX_AGENTS)),
        "max_difficulty": float(data.get("maxDifficulty", MAX_DIFFICULTY)),
        "parent_fate":    str(data.get("parentFate",    PARENT_FATE)),
        "learning_rate":  float(data.get("learningRate", LEARNING_RATE)),
    }


def _frame_payload(state: FrameState) -> dict:
    """Compact per-tick frame for the SSE stream."""
    entry = state.history[-1] if state.history else {}
    return {
        "type":           "frame",
        "tick":           state.tick,
        "population":     state.population,
        "killersPerMove": round(state.killers_per_move, 3),
        "markers": [
            {"x": m.position[0], "y": m.position[1], "type": m.type, "color": m.color}
            for m in state.board.markers
        ],
        "stats": entry,
    }


def _state_payload(state: FrameState) -> dict:
    return {
        "tick":           state.tick,
        "killersPerMove": state.killers_per_move,
        "board":          state.board.to_dict(),
        "agents":         [agent.to_dict() for agent in state.agents],
        "metrics":        state.metrics,
    }


def _publish(payload: dict):
    # Non-blocking put; drop oldest frame if queue full
    if _frame_queue.full():
        try:
            _frame_queue.get_nowait()
        except queue.Empty:
            pass
    _frame_queue.put(payload)


# ──────────────────────────────────────────────────────────────────────────────
# Simulation thread
# ──────────────────────────────────────────────────────────────────────────────

def _sim_worker(sim: Simulation, delay: float, stop_evt: threading.Event):
    """Tick the simulation until stopped; push each frame into the queue."""
    with _sim_lock:
        _sim_status["running"] = True

    try:
        while not stop_evt.is_set():
            with _sim_lock:
                state = sim.step()
                _sim_status["tick"] = state.tick
            _publish(_frame_payload(state))
            if delay:
                stop_evt.wait(delay)
    except Exception:
        log.exception("simulation thread crashed at tick %d", sim.tick)
        raise
    finally:
        with _sim_lock:
            _sim_status["running"] = False
        _publish({"type": "stopped", "tick": sim.tick})


def _stop_worker():
    _stop_event.set()
    if _sim_thread and _sim_thread.is_alive():
        _sim_thread.join(timeout=3)


# ──────────────────────────────────────────────────────────────────────────────
# Routes
# ──────────────────────────────────────────────────────────────────────────────

@app.route("/start", methods=["POST"])
def start():
    global _sim, _sim_thread, _stop_event, _frame_queue

    data = request.get_json(force=True, silent=True) or {}
    try:
        cfg    = _build_params(data)
        params = SimulationParams(**cfg)
        delay  = max(0.0, float(data.get("delay", 0.0)))
        seed   = data.get("seed")
        seed   = int(seed) if seed is not None else None
    except (TypeError, ValueError) as exc:
        return jsonify({"status": "error", "error": str(exc)}), 400

    # Stop any running sim
    _stop_worker()

    # Reset
    _stop_event  = threading.Event()
    _frame_queue = queue.Queue(maxsize=200)
    with _sim_lock:
        _sim = Simulation(params=params, seed=seed)
        _sim_status["tick"]   = 0
        _sim_status["delay"]  = delay
        _sim_status["params"] = cfg

    _sim_thread = threading.Thread(
        target=_sim_worker,
        args=(_sim, delay, _stop_event),
        daemon=True,
    )
    _sim_thread.start()
    return jsonify({"status": "started", "params": cfg})


@app.route("/stop", methods=["POST"])
def stop():
    _stop_worker()
    return jsonify({"status": "stopped", "tick": _sim.tick if _sim else 0})


@app.route("/step", methods=["POST"])
def step():
    """Run N frames while paused (creates a default simulation if none exists)."""
    global _sim

    data = request.get_json(force=True, silent=True) or {}
    try:
        frames = int(data.get("frames", 1))
    except (TypeError, ValueError):
        return jsonify({"status": "error", "error": "frames must be an integer"}), 400
    if frames < 1:
        return jsonify({"status": "error", "error": "frames must be at least 1"}), 400

    with _sim_lock:
        if _sim_status["running"]:
            return jsonify({"status": "error", "error": "simulation is running"}), 409
        if _sim is None:
            _sim = Simulation()
            _sim_status["params"] = _build_params({})
        t0 = time.time()
        state = _sim.step(frames)
        _sim_status["tick"] = state.tick

    return jsonify({
        "status":     "stepped",
        "tick":       state.tick,
        "population": state.population,
        "elapsed_s":  round(time.time() - t0, 3),
    })


@app.route("/status", methods=["GET"])
def status():
    with _sim_lock:
        return jsonify(dict(_sim_status))


@app.route("/state", methods=["GET"])
def state():
    with _sim_lock:
        if _sim is None:
            return jsonify({"status": "error", "error": "no simulation"}), 404
        return jsonify(_state_payload(_sim.state))


@app.route("/network", methods=["GET"])
def network():
    with _sim_lock:
        if _sim is None:
            return jsonify({"status": "error", "error": "no simulation"}), 404
        best = _sim.best_agent()
        if best is None:
            return jsonify({"status": "error", "error": "no agents"}), 404
        return jsonify({
            "agent":   best.to_dict(),
            "summary": best.network.summary(),
            "graph":   best.network.graph(),
        })


@app.route("/stream", methods=["GET"])
def stream():
    """SSE endpoint – browser subscribes and receives each frame as an event."""
    frames = _frame_queue

    def event_gen():
        # Send a hello so the browser knows it's connected
        yield "data: {\"type\": \"connected\"}\n\n"

        while True:
            try:
                payload = frames.get(timeout=1)
                yield f"data: {json.dumps(payload)}\n\n"
                if payload.get("type") == "stopped":
                    break
            except queue.Empty:
                # Keep-alive ping
                yield "data: {\"type\": \"ping\"}\n\n"

    return Response(
        event_gen(),
        mimetype="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",    # disable nginx buffering if behind proxy
        },
    )


# ──────────────────────────────────────────────────────────────────────────────

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO,
                        format="%(levelname)s %(name)s: %(message)s")
    print("=" * 50)
    print("  NeuroEvo Grid Server  →  http://localhost:5000")
    print("  SSE stream           →  http://localhost:5000/stream")
    print("=" * 50)
    app.run(host="0.0.0.0", port=5000, threaded=True, debug=False)
