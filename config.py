"""
NeuroEvo Grid Configuration
All tunable parameters for the neuroevolution hazard-dodging simulation.
"""

# ─── Grid ─────────────────────────────────────────────────────────────────────
CELL_SIZE   = 16     # pixels per grid cell (renderer only)
GRID_WIDTH  = 48     # cells east-west  (768 px / CELL_SIZE)
GRID_HEIGHT = 32     # cells north-south (512 px / CELL_SIZE)

# ─── Population ───────────────────────────────────────────────────────────────
MIN_AGENTS = 10      # population floor (top-up with respawns below this)
MAX_AGENTS = 600     # population ceiling (no children at or above this)

# What happens to an agent after it reaches the far edge and spawns a child:
#   "continue" – the parent keeps running (wraps around the board)
#   "remove"   – the parent is retired once its child exists
PARENT_FATE = "continue"

# ─── Difficulty ───────────────────────────────────────────────────────────────
MAX_DIFFICULTY       = 30    # killers per move when the population is at the ceiling
DIFFICULTY_SMOOTHING = 1     # ticks of difficulty averaged into killers-per-move
MIN_KILLERS_PER_MOVE = 1.0

# ─── Network ──────────────────────────────────────────────────────────────────
LEARNING_RATE = 0.5          # mutation step size, in (0, 1)

# Sensory inputs (index → meaning): distance to the nearest threat ahead
INPUT_LABELS = {
    0: "threat_row_above",
    1: "threat_row_same",
    2: "threat_row_below",
}
NUM_INPUTS = len(INPUT_LABELS)

# Action outputs (index → meaning)
OUTPUT_LABELS = {
    0: "move_up",
    1: "move_down",
    2: "move_forward",
}
NUM_OUTPUTS = len(OUTPUT_LABELS)
FORWARD_OUTPUT_INDEX = 2     # output biased on new networks so agents move forward

# ─── Mutation ─────────────────────────────────────────────────────────────────
# Relative odds of each operator being picked for a mutation attempt.
MUTATION_WEIGHTS = {
    "add_node":               1,
    "add_edge":               1,
    "remove_node":            2,
    "remove_edge":            2,
    "mutate_edge_weight":     10,
    "mutate_node_bias":       10,
    "mutate_node_activation": 4,
}
MAX_MUTATION_ATTEMPTS = 32   # operator draws before falling back to a weight tweak

# ─── Board markers ────────────────────────────────────────────────────────────
KILL_MARKER  = "kill"
PRIZE_MARKER = "prize"

COLORS = {
    "brand":   "#da87ed",
    "green60": "#119956",
    "blue60":  "#03aacb",
    "red60":   "#bf2934",
    "black20": "#efefef",
    "black90": "#292929",
}
KILL_COLOR = COLORS["red60"]

# ─── Metrics ──────────────────────────────────────────────────────────────────
FAST_SAMPLE_RATE      = 16      # ticks between fast metric samples
FAST_SAMPLE_DURATION  = 1000    # ticks of fast samples kept
SLOW_SAMPLE_RETENTION = 200     # slow metric samples kept per series

# Slow sampling gets sparser as the run gets longer: (tick below, rate)
SLOW_SAMPLE_SCHEDULE = (
    (1_000,  100),
    (10_000, 1_000),
)
SLOW_SAMPLE_RATE_MAX = 5_000

AREA_METRIC_NAMES = ("lineage", "complexity")
LINE_METRIC_NAMES = (
    "difficulty",
    "population",
    "killers",
    "lineage_max",
    "lineage_min",
    "complexity_min",
    "complexity_max",
)

# ─── Sampler (frozen-agent replays) ───────────────────────────────────────────
SAMPLE_GRID_WIDTH     = GRID_WIDTH
SAMPLE_GRID_HEIGHT    = 5
SAMPLE_START_POSITION = (0, 2)

# Scripted hazard layouts; negative x counts back from the far edge.
SCRIPTED_HAZARD_PATTERNS = (
    ((-1, 2),),
    ((-1, 1), (-1, 2), (-1, 3)),
    ((-1, 2), (-2, 2)),
    ((-1, 1), (-1, 2), (-2, 2), (-1, 3)),
    ((-1, 0), (-2, 1), (-3, 2), (-2, 3), (-1, 4)),
    ((-1, 0), (-2, 1), (-3, 2), (-2, 2), (-2, 3), (-1, 4)),
)

# ─── Output / Logging ─────────────────────────────────────────────────────────
SAVE_DIR          = "output"   # directory for saved images and charts
SNAPSHOT_INTERVAL = 1000       # save a board snapshot every N ticks
LOG_CSV           = True       # write per-sample CSV log
CHART_HISTORY     = 5_000      # newest metric samples kept for the final chart
