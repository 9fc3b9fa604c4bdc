"""
Visualizer for NeuroEvo Grid.

Produces:
  1. Board snapshots   – coloured cells for agents and killers
  2. Metrics chart     – population, difficulty and lineage over ticks
  3. Network diagrams  – node/edge wiring of a sampled agent's genome
  4. CSV log           – one row per metrics sample
"""

import csv
import os

import matplotlib
matplotlib.use("Agg")          # non-interactive backend (no display needed)
import matplotlib.pyplot as plt
import matplotlib.patches as mpatches

from config import INPUT_LABELS, KILL_MARKER, LOG_CSV, OUTPUT_LABELS, SAVE_DIR


# ──────────────────────────────────────────────────────────────────────────────
# Directory setup
# ──────────────────────────────────────────────────────────────────────────────

def ensure_dirs(base: str = SAVE_DIR):
    for sub in ("snapshots", "charts", "networks"):
        os.makedirs(os.path.join(base, sub), exist_ok=True)


# ──────────────────────────────────────────────────────────────────────────────
# Board snapshot
# ──────────────────────────────────────────────────────────────────────────────

def save_board_snapshot(board, tick: int, base: str = SAVE_DIR):
    """Paint every marker as a filled cell; killers drawn on top."""
    W, H = board.grid_width, board.grid_height
    fig, ax = plt.subplots(figsize=(W / 6, H / 6), dpi=100)
    ax.set_xlim(0, W)
    ax.set_ylim(H, 0)          # row 0 at the top, as on screen
    ax.set_aspect("equal")
    ax.set_facecolor("#111111")
    fig.patch.set_facecolor("#111111")
    ax.tick_params(colors="white")
    for spine in ax.spines.values():
        spine.set_edgecolor("#444444")

    markers = sorted(board.markers, key=lambda m: m.type == KILL_MARKER)
    agents  = sum(1 for m in markers if m.type != KILL_MARKER)
    killers = len(markers) - agents
    for marker in markers:
        x, y = marker.position
        ax.add_patch(mpatches.Rectangle(
            (x, y), 1, 1, linewidth=0, facecolor=marker.color))

    ax.set_title(f"Tick {tick}  ({agents} agents, {killers} killers)",
                 color="white", fontsize=10)

    path = os.path.join(base, "snapshots", f"tick_{tick:08d}.png")
    plt.savefig(path, dpi=100, bbox_inches="tight", facecolor=fig.get_facecolor())
    plt.close(fig)
    return path


# ──────────────────────────────────────────────────────────────────────────────
# Metrics chart
# ──────────────────────────────────────────────────────────────────────────────

def save_metrics_chart(history, base: str = SAVE_DIR,
                       filename: str = "metrics.png"):
    """
    Population and killers per move on the left axis, lineage range on the
    right axis.
    """
    if not history:
        return
    ticks       = [h["tick"]        for h in history]
    population  = [h["population"]  for h in history]
    difficulty  = [h["difficulty"]  for h in history]
    lineage_min = [h["lineage_min"] for h in history]
    lineage_max = [h["lineage_max"] for h in history]

    fig, ax1 = plt.subplots(figsize=(12, 5), dpi=100)
    fig.patch.set_facecolor("#111111")
    ax1.set_facecolor("#111111")

    ax1.plot(ticks, population, color="#44FF44", linewidth=1.2,
             label="Population", zorder=3)
    ax1.plot(ticks, difficulty, color="#FF8800", linewidth=1.0,
             alpha=0.8, label="Difficulty", zorder=2)
    ax1.set_ylabel("Count", color="white")
    ax1.set_xlabel("Tick", color="white")
    ax1.tick_params(axis="both", colors="white")

    ax2 = ax1.twinx()
    ax2.fill_between(ticks, lineage_min, lineage_max, color="#CC44FF",
                     alpha=0.3, label="Lineage", zorder=1)
    ax2.set_ylabel("Lineage depth", color="white")
    ax2.tick_params(colors="white")

    for spine in ax1.spines.values():
        spine.set_edgecolor("#444444")

    lines1, labels1 = ax1.get_legend_handles_labels()
    lines2, labels2 = ax2.get_legend_handles_labels()
    ax1.legend(lines1 + lines2, labels1 + labels2,
               facecolor="#222222", labelcolor="white",
               loc="upper left", fontsize=8)

    ax1.set_title("Population Balance", color="white", fontsize=12)
    plt.tight_layout()
    path = os.path.join(base, "charts", filename)
    plt.savefig(path, dpi=100, bbox_inches="tight",
                facecolor=fig.get_facecolor())
    plt.close(fig)
    return path


# ──────────────────────────────────────────────────────────────────────────────
# Network diagram
# ──────────────────────────────────────────────────────────────────────────────

def network_layout(network) -> dict:
    """Node id → (x, y): inputs at x=0, hidden at x=0.5, outputs at x=1."""
    columns = (
        (0.0, network.input_nodes()),
        (0.5, network.hidden_nodes()),
        (1.0, network.output_nodes()),
    )
    positions = {}
    for x, nodes in columns:
        for i, node in enumerate(nodes):
            positions[node.id] = (x, 1.0 - (i + 1) / (len(nodes) + 1))
    return positions


def save_network_diagram(network, tick: int, label: str = "",
                         base: str = SAVE_DIR):
    """
    Draw the genome as a graph. Nodes are labelled with activation and
    bias, edges with their weight; green = positive, red = negative.
    """
    graph = network.graph()
    pos   = network_layout(network)

    fig, ax = plt.subplots(figsize=(10, 6), dpi=100)
    fig.patch.set_facecolor("#111111")
    ax.set_facecolor("#111111")
    ax.axis("off")
    ax.set_xlim(-0.25, 1.25)
    ax.set_ylim(-0.05, 1.05)

    for edge in graph["edges"]:
        x1, y1 = pos[edge["from"]]
        x2, y2 = pos[edge["to"]]
        color  = "#44FF44" if edge["weight"] >= 0 else "#FF4444"
        lw     = 0.5 + min(3.0, abs(edge["weight"]) * 2)
        ax.annotate("", xy=(x2, y2), xytext=(x1, y1),
                    arrowprops=dict(arrowstyle="-|>", color=color, lw=lw,
                                    alpha=0.7, connectionstyle="arc3,rad=0.08"),
                    zorder=1)
        ax.text((x1 + x2) / 2, (y1 + y2) / 2, edge["label"], color="#CCCCCC",
                fontsize=6, ha="center", va="center", zorder=2)

    kind_colors = {"input": "#4499FF", "hidden": "#AAAAAA", "output": "#FF88AA"}
    names = {}
    for i, node in enumerate(network.input_nodes()):
        names[node.id] = INPUT_LABELS.get(i, node.id)
    for i, node in enumerate(network.output_nodes()):
        names[node.id] = OUTPUT_LABELS.get(i, node.id)

    for node in graph["nodes"]:
        x, y = pos[node["id"]]
        ax.add_patch(plt.Circle((x, y), 0.025, color=kind_colors[node["kind"]], zorder=3))
        text = node["label"]
        if node["id"] in names:
            text = f"{names[node['id']]}\n{text}"
        ha = "right" if x == 0.0 else ("left" if x == 1.0 else "center")
        offset_x = -0.04 if x == 0.0 else (0.04 if x == 1.0 else 0)
        ax.text(x + offset_x, y, text, color="white", fontsize=6.5,
                ha=ha, va="center", zorder=4)

    for tx, title in [(0.0, "Inputs"), (0.5, "Hidden"), (1.0, "Outputs")]:
        ax.text(tx, 1.03, title, color="#CCCCCC", ha="center",
                fontsize=9, fontweight="bold")

    ax.set_title(
        f"Tick {tick} — Network of {label}  "
        f"({len(network.nodes)} nodes, {len(network.edges)} edges)",
        color="white", fontsize=10, pad=4)

    path = os.path.join(base, "networks", f"tick_{tick:08d}_{label}.png")
    plt.savefig(path, dpi=100, bbox_inches="tight",
                facecolor=fig.get_facecolor())
    plt.close(fig)
    return path


# ──────────────────────────────────────────────────────────────────────────────
# CSV log
# ──────────────────────────────────────────────────────────────────────────────

def append_csv(entry: dict, base: str = SAVE_DIR):
    """Append one history entry to a CSV file."""
    if not LOG_CSV:
        return
    path = os.path.join(base, "metrics_log.csv")
    file_exists = os.path.isfile(path)
    with open(path, "a", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=list(entry.keys()))
        if not file_exists:
            writer.writeheader()
        writer.writerow(entry)
