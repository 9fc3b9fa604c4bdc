"""
NeuroEvo Grid – Main Entry Point
================================

Usage examples:
  python main.py                              # 20 000 ticks, default bounds
  python main.py --ticks 5000 --seed 7        # reproducible short run
  python main.py --min-agents 20 --max-agents 200
  python main.py --parent-fate remove         # retire parents after they breed
  python main.py --grid 64x32                 # wider board
"""

import argparse
import logging
import os
from collections import deque

from config import (CHART_HISTORY, GRID_HEIGHT, GRID_WIDTH, MAX_AGENTS,
                    MIN_AGENTS, SAVE_DIR, SCRIPTED_HAZARD_PATTERNS,
                    SNAPSHOT_INTERVAL, FAST_SAMPLE_RATE)
from sampler import evaluate_sample, should_auto_sample, take_sample
from simulation import ParentFate, Simulation, SimulationParams
from visualizer import (append_csv, ensure_dirs, save_board_snapshot,
                        save_metrics_chart, save_network_diagram)


# ──────────────────────────────────────────────────────────────────────────────
# CLI
# ──────────────────────────────────────────────────────────────────────────────

def _grid(value: str):
    try:
        width, height = (int(part) for part in value.lower().split("x"))
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected WIDTHxHEIGHT, got {value!r}")
    if width <= 0 or height <= 0:
        raise argparse.ArgumentTypeError("grid dimensions must be positive")
    return width, height


def parse_args(argv=None):
    p = argparse.ArgumentParser(description="NeuroEvo Grid – neuroevolution hazard-dodging simulator")
    p.add_argument("--ticks",       type=int,   default=20_000,
                   help="Number of ticks to run")
    p.add_argument("--seed",        type=int,   default=None,
                   help="Random seed for reproducibility")
    p.add_argument("--min-agents",  type=int,   default=MIN_AGENTS,
                   help="Population floor")
    p.add_argument("--max-agents",  type=int,   default=MAX_AGENTS,
                   help="Population ceiling")
    p.add_argument("--grid",        type=_grid, default=(GRID_WIDTH, GRID_HEIGHT),
                   help="Board size as WIDTHxHEIGHT")
    p.add_argument("--parent-fate", default=ParentFate.CONTINUE.value,
                   choices=[fate.value for fate in ParentFate],
                   help="What a parent does after spawning a child")
    p.add_argument("--outdir",      default=SAVE_DIR,
                   help="Output directory")
    p.add_argument("--snapshot-interval", type=int, default=SNAPSHOT_INTERVAL,
                   help="Save a board snapshot every N ticks")
    p.add_argument("--sample-interval",   type=int, default=0,
                   help="Freeze the best agent every N ticks (0 = auto schedule)")
    p.add_argument("--print-every", type=int,   default=500,
                   help="Print stats every N ticks (0 = quiet)")
    p.add_argument("--log-level",   default="WARNING",
                   choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                   help="Logging level for library diagnostics")
    return p.parse_args(argv)


# ──────────────────────────────────────────────────────────────────────────────
# Callbacks
# ──────────────────────────────────────────────────────────────────────────────

class TickCallbacks:
    """Bundles the per-tick side effects of a CLI run."""

    def __init__(self, outdir: str, snapshot_interval: int, sample_interval: int,
                 history_length: int = CHART_HISTORY):
        self.outdir            = outdir
        self.snapshot_interval = snapshot_interval
        self.sample_interval   = sample_interval
        self.samples           = ()
        self.history           = deque(maxlen=history_length)

    def on_tick(self, state):
        entry = state.history[-1]

        if state.tick % FAST_SAMPLE_RATE == 0:
            self.history.append(entry)
            append_csv(entry, self.outdir)

        if self.snapshot_interval and state.tick % self.snapshot_interval == 0:
            path = save_board_snapshot(state.board, state.tick, self.outdir)
            print(f"  → Snapshot: {path}")

        if self.sample_interval:
            due = state.tick % self.sample_interval == 0
        else:
            due = should_auto_sample(state.tick)
        if due:
            self.samples = take_sample(state.agents, self.samples, state.tick)
            if self.samples and self.samples[-1].tick == state.tick:
                sample = self.samples[-1]
                path = save_network_diagram(
                    sample.agent.network, state.tick, sample.agent.id, self.outdir)
                print(f"  → Network diagram: {path}")


def report_samples(samples):
    """Replay every frozen agent against the scripted hazard patterns."""
    if not samples:
        return
    print(f"\nReplaying {len(samples)} sampled agents "
          f"against {len(SCRIPTED_HAZARD_PATTERNS)} hazard patterns …")
    for sample in samples:
        results = evaluate_sample(sample.agent)
        survived = sum(1 for r in results if r == "life")
        marks = "".join("✓" if r == "life" else "✗" for r in results)
        print(f"  tick {sample.tick:>7}  {sample.agent.id:<14} "
              f"lineage {sample.agent.lineage:>4}  {marks}  "
              f"({survived}/{len(results)})")


# ──────────────────────────────────────────────────────────────────────────────
# Main
# ──────────────────────────────────────────────────────────────────────────────

def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level),
                        format="%(levelname)s %(name)s: %(message)s")
    ensure_dirs(args.outdir)

    width, height = args.grid
    params = SimulationParams(
        grid_width  = width,
        grid_height = height,
        min_agents  = args.min_agents,
        max_agents  = args.max_agents,
        parent_fate = ParentFate(args.parent_fate),
    )

    print("=" * 60)
    print("  NeuroEvo Grid – Neuroevolution Hazard Simulator")
    print("=" * 60)
    print(f"  Ticks      : {args.ticks}")
    print(f"  Grid       : {width} x {height}")
    print(f"  Population : {params.min_agents} – {params.max_agents}")
    print(f"  Parent fate: {params.parent_fate.value}")
    print(f"  Seed       : {args.seed}")
    print(f"  Output dir : {args.outdir}")
    print("=" * 60)

    cb = TickCallbacks(
        outdir            = args.outdir,
        snapshot_interval = args.snapshot_interval,
        sample_interval   = args.sample_interval,
    )

    sim = Simulation(
        params           = params,
        seed             = args.seed,
        on_tick_callback = cb.on_tick,
        print_every      = args.print_every,
    )
    sim.run(args.ticks)

    # Always keep the final champion
    cb.samples = take_sample(sim.state.agents, cb.samples, sim.tick)

    print("\nSaving final metrics chart …")
    chart_path = save_metrics_chart(cb.history, args.outdir, "metrics_final.png")
    if chart_path:
        print(f"  → {chart_path}")

    snap = save_board_snapshot(sim.state.board, sim.tick, args.outdir)
    print(f"  → Final snapshot: {snap}")

    best = sim.best_agent()
    if best is not None:
        npath = save_network_diagram(best.network, sim.tick, "best", args.outdir)
        print(f"  → Best network: {npath}")

    report_samples(cb.samples)

    print("\nDone! All outputs saved to:", os.path.abspath(args.outdir))
    return sim


if __name__ == "__main__":
    main()
