"""
Network (genome) for NeuroEvo Grid.

A network is an ordered list of nodes plus a list of weighted edges that
refer to nodes by their position in that list:

  [ inputs ... | hidden ... | outputs ... ]

The node order doubles as the activation order, so one pass through the
list computes every node. Networks are values: every change produces a new
Network and the old one is left untouched.
"""

import logging
import math
from dataclasses import dataclass, replace as dc_replace
from enum import Enum

import numpy as np

from config import LEARNING_RATE

log = logging.getLogger(__name__)


# ──────────────────────────────────────────────────────────────────────────────
# Errors
# ──────────────────────────────────────────────────────────────────────────────

class NetworkError(Exception):
    """Base class for network faults."""


class InvalidSizeError(NetworkError, ValueError):
    """Input/output sizes or node lists that cannot form a network."""


class InputSizeMismatch(NetworkError, ValueError):
    """A vector passed to compute/backprop has the wrong length."""


# ──────────────────────────────────────────────────────────────────────────────
# Nodes, edges and activation functions
# ──────────────────────────────────────────────────────────────────────────────

class NodeKind(str, Enum):
    INPUT  = "input"
    HIDDEN = "hidden"
    OUTPUT = "output"


class Activation(str, Enum):
    IDENTITY   = "identity"
    SIGMOID    = "sigmoid"
    RELU       = "relu"
    TANH       = "tanh"
    HARD_LIMIT = "hard_limit"


# Hard limit is never picked at random.
MUTABLE_ACTIVATIONS = (
    Activation.SIGMOID,
    Activation.RELU,
    Activation.TANH,
    Activation.IDENTITY,
)


def _sigmoid(x: float) -> float:
    # tanh form does not overflow for large |x|
    return 0.5 * (1.0 + math.tanh(0.5 * x))


ACTIVATION_FUNCTIONS = {
    Activation.IDENTITY:   lambda x: x,
    Activation.SIGMOID:    _sigmoid,
    Activation.RELU:       lambda x: x if x > 0.0 else 0.0,
    Activation.TANH:       math.tanh,
    Activation.HARD_LIMIT: lambda x: 1.0 if x >= 0.0 else 0.0,
}


def activation_derivative(activation: Activation, x: float, y: float) -> float:
    """Derivative of an activation at input x with output y."""
    if activation is Activation.SIGMOID:
        return y * (1.0 - y)
    if activation is Activation.RELU:
        return 1.0 if x > 0.0 else 0.0
    if activation is Activation.TANH:
        return 1.0 - y * y
    # identity, and hard limit treated as a straight-through step
    return 1.0


def activate(activation: Activation, x: float) -> float:
    return ACTIVATION_FUNCTIONS[activation](x)


def random_activation(rng) -> Activation:
    return MUTABLE_ACTIVATIONS[int(rng.integers(0, len(MUTABLE_ACTIVATIONS)))]


@dataclass(frozen=True)
class Node:
    kind:       NodeKind
    id:         str
    bias:       float = 0.0
    activation: Activation = Activation.IDENTITY

    def to_dict(self) -> dict:
        return {
            "kind":       self.kind.value,
            "id":         self.id,
            "bias":       self.bias,
            "activation": self.activation.value,
        }

    @staticmethod
    def from_dict(data: dict) -> "Node":
        return Node(
            kind=NodeKind(data["kind"]),
            id=str(data["id"]),
            bias=float(data["bias"]),
            activation=Activation(data["activation"]),
        )


@dataclass(frozen=True)
class Edge:
    id:         str
    from_index: int
    to_index:   int
    weight:     float

    def to_dict(self) -> dict:
        return {
            "id":         self.id,
            "from_index": self.from_index,
            "to_index":   self.to_index,
            "weight":     self.weight,
        }

    @staticmethod
    def from_dict(data: dict) -> "Edge":
        return Edge(
            id=str(data["id"]),
            from_index=int(data["from_index"]),
            to_index=int(data["to_index"]),
            weight=float(data["weight"]),
        )

    def shifted(self, at: int, delta: int) -> "Edge":
        """Move endpoints at or beyond `at` by `delta` positions."""
        from_index = self.from_index + delta if self.from_index >= at else self.from_index
        to_index   = self.to_index + delta if self.to_index >= at else self.to_index
        if from_index == self.from_index and to_index == self.to_index:
            return self
        return dc_replace(self, from_index=from_index, to_index=to_index)


def next_id_counter(nodes, edges) -> int:
    """One past the largest numeric suffix among node and edge ids."""
    highest = -1
    for item in (*nodes, *edges):
        suffix = item.id[1:]
        if suffix.isdigit():
            highest = max(highest, int(suffix))
    return max(highest + 1, len(nodes) + len(edges))


# ──────────────────────────────────────────────────────────────────────────────
# Network
# ──────────────────────────────────────────────────────────────────────────────

class Network:
    """
    Immutable feed-forward network.

    Nodes are stored inputs first, hidden in the middle, outputs last.
    `id_counter` is the next free number for node/edge ids, so ids minted
    along a lineage never collide and stay reproducible under a fixed seed.
    """

    __slots__ = (
        "nodes", "edges", "input_size", "output_size",
        "learning_rate", "id_counter", "_incoming",
    )

    def __init__(self, nodes, edges, input_size: int, output_size: int,
                 learning_rate: float = LEARNING_RATE, id_counter: int = None):
        if input_size <= 0 or output_size <= 0:
            raise InvalidSizeError(
                f"input_size and output_size must be positive, "
                f"got {input_size} and {output_size}")
        nodes = tuple(nodes)
        edges = tuple(edges)
        if len(nodes) < input_size + output_size:
            raise InvalidSizeError(
                f"{len(nodes)} nodes cannot hold {input_size} inputs "
                f"and {output_size} outputs")

        self.nodes         = nodes
        self.edges         = edges
        self.input_size    = input_size
        self.output_size   = output_size
        self.learning_rate = learning_rate
        self.id_counter    = (id_counter if id_counter is not None
                              else next_id_counter(nodes, edges))

        # Incoming (from_index, weight) pairs per node, used by compute().
        incoming = [[] for _ in nodes]
        for edge in edges:
            if 0 <= edge.to_index < len(nodes):
                incoming[edge.to_index].append((edge.from_index, edge.weight))
        self._incoming = incoming

    # ──────────────────────────────────────────────────────────────────────────
    # Construction helpers
    # ──────────────────────────────────────────────────────────────────────────

    @classmethod
    def create(cls, input_size: int, output_size: int,
               learning_rate: float = LEARNING_RATE,
               init_output_bias: int = None, rng=None) -> "Network":
        """
        Fully connected inputs → outputs network with random weights in
        [-1, 1]. If `init_output_bias` is given, that output starts with
        bias 1.
        """
        if input_size <= 0 or output_size <= 0:
            raise InvalidSizeError(
                f"input_size and output_size must be positive, "
                f"got {input_size} and {output_size}")
        if init_output_bias is not None and not 0 <= init_output_bias < output_size:
            raise InvalidSizeError(
                f"init_output_bias {init_output_bias} is not an output index")
        if rng is None:
            rng = np.random.default_rng()

        counter = 0
        nodes = []
        for _ in range(input_size):
            nodes.append(Node(NodeKind.INPUT, f"n{counter}"))
            counter += 1
        for output_index in range(output_size):
            bias = 1.0 if output_index == init_output_bias else 0.0
            nodes.append(Node(NodeKind.OUTPUT, f"n{counter}", bias))
            counter += 1

        edges = []
        for input_index in range(input_size):
            for output_index in range(output_size):
                edges.append(Edge(
                    id=f"e{counter}",
                    from_index=input_index,
                    to_index=input_size + output_index,
                    weight=float(rng.uniform(-1.0, 1.0)),
                ))
                counter += 1

        return cls(nodes, edges, input_size, output_size,
                   learning_rate, id_counter=counter)

    @classmethod
    def layered(cls, input_size: int, output_size: int, hidden_layer_sizes,
                activation: Activation = Activation.SIGMOID,
                learning_rate: float = LEARNING_RATE, rng=None) -> "Network":
        """Fully connected layer-by-layer network (input → hidden… → output)."""
        if input_size <= 0 or output_size <= 0:
            raise InvalidSizeError(
                f"input_size and output_size must be positive, "
                f"got {input_size} and {output_size}")
        if rng is None:
            rng = np.random.default_rng()

        counter = 0
        layers  = []
        sizes   = [input_size, *hidden_layer_sizes, output_size]
        for layer_index, size in enumerate(sizes):
            if layer_index == 0:
                kind = NodeKind.INPUT
            elif layer_index == len(sizes) - 1:
                kind = NodeKind.OUTPUT
            else:
                kind = NodeKind.HIDDEN
            layer = []
            for _ in range(size):
                bias = 0.0 if kind is NodeKind.INPUT else float(rng.uniform(-1.0, 1.0))
                node_activation = Activation.IDENTITY if kind is NodeKind.INPUT else activation
                layer.append(Node(kind, f"n{counter}", bias, node_activation))
                counter += 1
            layers.append(layer)

        nodes   = [node for layer in layers for node in layer]
        offsets = np.cumsum([0] + [len(layer) for layer in layers])
        edges   = []
        for layer_index in range(1, len(layers)):
            prev_start = int(offsets[layer_index - 1])
            start      = int(offsets[layer_index])
            for to_index in range(start, start + len(layers[layer_index])):
                for from_index in range(prev_start, start):
                    edges.append(Edge(f"e{counter}", from_index, to_index,
                                      float(rng.uniform(-1.0, 1.0))))
                    counter += 1

        return cls(nodes, edges, input_size, output_size,
                   learning_rate, id_counter=counter)

    def replace(self, nodes=None, edges=None, id_counter: int = None) -> "Network":
        """New network with some parts swapped; sizes and rate are inherited."""
        return Network(
            self.nodes if nodes is None else nodes,
            self.edges if edges is None else edges,
            self.input_size,
            self.output_size,
            self.learning_rate,
            self.id_counter if id_counter is None else id_counter,
        )

    def new_ids(self, prefix: str, count: int = 1):
        """Mint `count` fresh ids; returns (ids, next counter)."""
        ids = [f"{prefix}{self.id_counter + i}" for i in range(count)]
        return ids, self.id_counter + count

    # ──────────────────────────────────────────────────────────────────────────
    # Node groups
    # ──────────────────────────────────────────────────────────────────────────

    @property
    def node_count(self) -> int:
        return len(self.nodes)

    @property
    def hidden_start(self) -> int:
        return self.input_size

    @property
    def output_start(self) -> int:
        return len(self.nodes) - self.output_size

    @property
    def complexity(self) -> int:
        return len(self.nodes) + len(self.edges)

    def input_nodes(self) -> tuple:
        return self.nodes[:self.input_size]

    def hidden_nodes(self) -> tuple:
        return self.nodes[self.input_size:self.output_start]

    def output_nodes(self) -> tuple:
        return self.nodes[self.output_start:]

    def hidden_indexes(self) -> range:
        return range(self.input_size, self.output_start)

    # ──────────────────────────────────────────────────────────────────────────
    # Activation
    # ──────────────────────────────────────────────────────────────────────────

    def _forward(self, inputs):
        """Return (pre-activation sums, node values) for one pass."""
        n      = len(self.nodes)
        sums   = [0.0] * n
        values = [0.0] * n
        for index in range(self.input_size):
            sums[index] = values[index] = float(inputs[index])

        for index in range(self.input_size, n):
            node  = self.nodes[index]
            total = node.bias
            for from_index, weight in self._incoming[index]:
                total += weight * values[from_index]
            sums[index]   = total
            values[index] = activate(node.activation, total)
        return sums, values

    def compute(self, inputs) -> list:
        """
        Run one forward pass.

        Args:
            inputs: sequence of `input_size` floats

        Returns:
            list of `output_size` floats, in output order
        """
        if len(inputs) != self.input_size:
            raise InputSizeMismatch(
                f"Expected {self.input_size} inputs, got {len(inputs)}")
        _, values = self._forward(inputs)
        return values[self.output_start:]

    def backprop(self, inputs, targets, learning_rate: float = None) -> "Network":
        """
        One gradient-descent step on squared error towards `targets`.
        Only edges that run forward in node order carry gradient.
        """
        if len(inputs) != self.input_size:
            raise InputSizeMismatch(
                f"Expected {self.input_size} inputs, got {len(inputs)}")
        if len(targets) != self.output_size:
            raise InputSizeMismatch(
                f"Expected {self.output_size} outputs, got {len(targets)}")
        rate = self.learning_rate if learning_rate is None else learning_rate

        sums, values = self._forward(inputs)
        n = len(self.nodes)
        responsibility = np.zeros(n)

        for offset, target in enumerate(targets):
            index = self.output_start + offset
            node  = self.nodes[index]
            responsibility[index] = (float(target) - values[index]) * \
                activation_derivative(node.activation, sums[index], values[index])

        outgoing = [[] for _ in range(n)]
        for edge in self.edges:
            if edge.from_index < edge.to_index:
                outgoing[edge.from_index].append(edge)

        for index in range(self.output_start - 1, self.input_size - 1, -1):
            node = self.nodes[index]
            projected = sum(edge.weight * responsibility[edge.to_index]
                            for edge in outgoing[index])
            responsibility[index] = projected * \
                activation_derivative(node.activation, sums[index], values[index])

        next_edges = []
        for edge in self.edges:
            if edge.from_index < edge.to_index:
                delta = rate * responsibility[edge.to_index] * values[edge.from_index]
                edge  = dc_replace(edge, weight=edge.weight + float(delta))
            next_edges.append(edge)

        next_nodes = list(self.nodes[:self.input_size])
        for index in range(self.input_size, n):
            node = self.nodes[index]
            next_nodes.append(dc_replace(
                node, bias=node.bias + float(rate * responsibility[index])))

        return self.replace(nodes=next_nodes, edges=next_edges)

    # ──────────────────────────────────────────────────────────────────────────
    # Validation
    # ──────────────────────────────────────────────────────────────────────────

    def validation_errors(self) -> list:
        """Describe every broken structural invariant (empty list = valid)."""
        errors = []
        n = len(self.nodes)

        node_ids = [node.id for node in self.nodes]
        if len(node_ids) != len(set(node_ids)):
            errors.append(f"Duplicate node ids found [{', '.join(node_ids)}]")

        edge_ids = [edge.id for edge in self.edges]
        if len(edge_ids) != len(set(edge_ids)):
            errors.append(f"Duplicate edge ids found [{', '.join(edge_ids)}]")

        for edge in self.edges:
            if not 0 <= edge.from_index < n - self.output_size:
                errors.append(
                    f"Edge {edge.id} from_index {edge.from_index} is out of bounds")
            if not self.input_size <= edge.to_index <= n - 1:
                errors.append(
                    f"Edge {edge.id} to_index {edge.to_index} is out of bounds")

        sources = {edge.from_index for edge in self.edges}
        sinks   = {edge.to_index for edge in self.edges}
        for input_index in range(self.input_size):
            if input_index not in sources:
                errors.append(f"Input node {input_index} has no outgoing edges")
        for output_index in range(n - self.output_size, n):
            if output_index not in sinks:
                errors.append(f"Output node {output_index} has no incoming edges")
        return errors

    def validate(self) -> bool:
        errors = self.validation_errors()
        for error in errors:
            log.debug("invalid network: %s", error)
        return not errors

    # ──────────────────────────────────────────────────────────────────────────
    # Serialisation / display
    # ──────────────────────────────────────────────────────────────────────────

    def to_dict(self) -> dict:
        return {
            "input_size":    self.input_size,
            "output_size":   self.output_size,
            "learning_rate": self.learning_rate,
            "id_counter":    self.id_counter,
            "nodes":         [node.to_dict() for node in self.nodes],
            "edges":         [edge.to_dict() for edge in self.edges],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Network":
        return cls(
            nodes=[Node.from_dict(node) for node in data["nodes"]],
            edges=[Edge.from_dict(edge) for edge in data["edges"]],
            input_size=int(data["input_size"]),
            output_size=int(data["output_size"]),
            learning_rate=float(data.get("learning_rate", LEARNING_RATE)),
            id_counter=data.get("id_counter"),
        )

    def graph(self) -> dict:
        """Nodes and edges with display labels, for diagrams and the server."""
        return {
            "nodes": [
                {
                    "id":    node.id,
                    "kind":  node.kind.value,
                    "label": f"{node.activation.value} {round(node.bias, 2)}",
                }
                for node in self.nodes
            ],
            "edges": [
                {
                    "id":     edge.id,
                    "from":   self.nodes[edge.from_index].id,
                    "to":     self.nodes[edge.to_index].id,
                    "weight": edge.weight,
                    "label":  f"{round(edge.weight, 2)}",
                }
                for edge in self.edges
                if 0 <= edge.from_index < len(self.nodes)
                and 0 <= edge.to_index < len(self.nodes)
            ],
        }

    def summary(self) -> str:
        lines = [f"Network ({len(self.nodes)} nodes, {len(self.edges)} edges)"]
        for edge in self.edges:
            lines.append(
                f"  {edge.from_index:02d} → {edge.to_index:02d}"
                f"  w={edge.weight:+.3f}"
            )
        return "\n".join(lines)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Network):
            return NotImplemented
        return (self.nodes == other.nodes
                and self.edges == other.edges
                and self.input_size == other.input_size
                and self.output_size == other.output_size
                and self.learning_rate == other.learning_rate)

    def __hash__(self) -> int:
        return hash((self.nodes, self.edges, self.input_size, self.output_size))

    def __repr__(self) -> str:
        return (f"Network(inputs={self.input_size}, outputs={self.output_size}, "
                f"hidden={len(self.hidden_nodes())}, edges={len(self.edges)})")
