"""
Mutation operators for NeuroEvo Grid networks.

Every operator is a pure function  (network, rng) → Network | None.
`None` means the operator does not apply to this network (for example
there is no hidden node to remove); `mutate()` then draws another one.

  Structural : add_node, add_edge, remove_node, remove_edge
  Parametric : mutate_edge_weight, mutate_node_bias, mutate_node_activation
"""

import logging
from dataclasses import replace
from enum import Enum

import numpy as np

from config import MAX_MUTATION_ATTEMPTS, MUTATION_WEIGHTS
from network import Edge, Network, Node, NodeKind, random_activation

log = logging.getLogger(__name__)


class Mutation(str, Enum):
    ADD_NODE               = "add_node"
    ADD_EDGE               = "add_edge"
    REMOVE_NODE            = "remove_node"
    REMOVE_EDGE            = "remove_edge"
    MUTATE_EDGE_WEIGHT     = "mutate_edge_weight"
    MUTATE_NODE_BIAS       = "mutate_node_bias"
    MUTATE_NODE_ACTIVATION = "mutate_node_activation"


_MUTATIONS     = tuple(Mutation)
_PROBABILITIES = np.array([MUTATION_WEIGHTS[m.value] for m in _MUTATIONS], dtype=float)
_PROBABILITIES /= _PROBABILITIES.sum()


# ──────────────────────────────────────────────────────────────────────────────
# Helpers
# ──────────────────────────────────────────────────────────────────────────────

def choose_mutation(rng) -> Mutation:
    """Weighted draw of one operator."""
    return _MUTATIONS[int(rng.choice(len(_MUTATIONS), p=_PROBABILITIES))]


def mutate_scalar(value: float, learning_rate: float, rng) -> float:
    """
    Blend the old value with a random multiple of itself:
        v·(1 − lr) + (v or 1)·U(−2, 2)·lr
    """
    scale = 1.0 if value == 0 else value
    return value * (1 - learning_rate) + scale * float(rng.uniform(-2.0, 2.0)) * learning_rate


def _pick(rng, items):
    return items[int(rng.integers(0, len(items)))]


def _non_input_indexes(network: Network) -> range:
    return range(network.input_size, network.node_count)


# ──────────────────────────────────────────────────────────────────────────────
# Structural operators
# ──────────────────────────────────────────────────────────────────────────────

def add_node(network: Network, rng) -> Network:
    """
    Insert a hidden node just before the outputs and route one existing
    edge through it:  a → b   becomes   a → new → b  (new edge weight 1).
    """
    if not network.edges:
        return None

    insert_at = network.output_start
    (node_id,), counter = network.new_ids("n")
    edge_id = f"e{counter}"
    counter += 1
    new_node = Node(NodeKind.HIDDEN, node_id, 1.0, random_activation(rng))

    nodes = list(network.nodes)
    nodes.insert(insert_at, new_node)

    # Reindex before intermediating so every index refers to the new layout.
    edges = [edge.shifted(insert_at, 1) for edge in network.edges]

    intermediated = int(rng.integers(0, len(edges)))
    old_to = edges[intermediated].to_index
    edges[intermediated] = replace(edges[intermediated], to_index=insert_at)
    edges.append(Edge(edge_id, insert_at, old_to, 1.0))

    return network.replace(nodes=nodes, edges=edges, id_counter=counter)


def add_edge(network: Network, rng) -> Network:
    """Connect a random input/hidden node to a random hidden/output node."""
    from_index = int(rng.integers(0, network.output_start))
    to_index   = int(rng.integers(network.input_size, network.node_count))
    (edge_id,), counter = network.new_ids("e")
    edges = list(network.edges) + [Edge(edge_id, from_index, to_index, 1.0)]
    return network.replace(edges=edges, id_counter=counter)


def remove_node(network: Network, rng) -> Network:
    """
    Delete a random hidden node. Every (source, destination) pair that ran
    through it gets a direct bridging edge of weight 1.
    """
    hidden = network.hidden_indexes()
    if len(hidden) == 0:
        return None
    removed = _pick(rng, hidden)

    into   = [edge for edge in network.edges if edge.to_index == removed]
    out_of = [edge for edge in network.edges if edge.from_index == removed]
    kept   = [edge for edge in network.edges
              if edge.to_index != removed and edge.from_index != removed]

    sources      = list(dict.fromkeys(e.from_index for e in into if e.from_index != removed))
    destinations = list(dict.fromkeys(e.to_index for e in out_of if e.to_index != removed))

    bridges = len(sources) * len(destinations)
    ids, counter = network.new_ids("e", bridges)
    ids = iter(ids)
    for to_index in destinations:
        for from_index in sources:
            kept.append(Edge(next(ids), from_index, to_index, 1.0))

    edges = [edge.shifted(removed + 1, -1) for edge in kept]
    nodes = network.nodes[:removed] + network.nodes[removed + 1:]
    return network.replace(nodes=nodes, edges=edges, id_counter=counter)


def remove_edge(network: Network, rng) -> Network:
    """
    Delete an edge whose source keeps another outgoing edge and whose
    destination keeps another incoming edge, so no node is orphaned.
    """
    edges = network.edges
    out_degree = {}
    in_degree  = {}
    for edge in edges:
        out_degree[edge.from_index] = out_degree.get(edge.from_index, 0) + 1
        in_degree[edge.to_index]    = in_degree.get(edge.to_index, 0) + 1

    for position in rng.permutation(len(edges)):
        candidate = edges[int(position)]
        if out_degree[candidate.from_index] > 1 and in_degree[candidate.to_index] > 1:
            remaining = edges[:int(position)] + edges[int(position) + 1:]
            return network.replace(edges=remaining)
    return None


# ──────────────────────────────────────────────────────────────────────────────
# Parametric operators
# ──────────────────────────────────────────────────────────────────────────────

def mutate_edge_weight(network: Network, rng) -> Network:
    if not network.edges:
        return None
    index = int(rng.integers(0, len(network.edges)))
    edges = list(network.edges)
    edge  = edges[index]
    edges[index] = replace(edge, weight=mutate_scalar(edge.weight, network.learning_rate, rng))
    return network.replace(edges=edges)


def mutate_node_bias(network: Network, rng) -> Network:
    index = _pick(rng, _non_input_indexes(network))
    nodes = list(network.nodes)
    node  = nodes[index]
    nodes[index] = replace(node, bias=mutate_scalar(node.bias, network.learning_rate, rng))
    return network.replace(nodes=nodes)


def mutate_node_activation(network: Network, rng) -> Network:
    index = _pick(rng, _non_input_indexes(network))
    nodes = list(network.nodes)
    nodes[index] = replace(nodes[index], activation=random_activation(rng))
    return network.replace(nodes=nodes)


# ──────────────────────────────────────────────────────────────────────────────
# Dispatch
# ──────────────────────────────────────────────────────────────────────────────

def apply_mutation(mutation: Mutation, network: Network, rng) -> Network:
    """Run one operator; returns None when it does not apply."""
    if mutation is Mutation.ADD_NODE:
        return add_node(network, rng)
    elif mutation is Mutation.ADD_EDGE:
        return add_edge(network, rng)
    elif mutation is Mutation.REMOVE_NODE:
        return remove_node(network, rng)
    elif mutation is Mutation.REMOVE_EDGE:
        return remove_edge(network, rng)
    elif mutation is Mutation.MUTATE_EDGE_WEIGHT:
        return mutate_edge_weight(network, rng)
    elif mutation is Mutation.MUTATE_NODE_BIAS:
        return mutate_node_bias(network, rng)
    elif mutation is Mutation.MUTATE_NODE_ACTIVATION:
        return mutate_node_activation(network, rng)
    raise ValueError(f"Unknown mutation {mutation!r}")


def mutate(network: Network, rng=None,
           max_attempts: int = MAX_MUTATION_ATTEMPTS) -> Network:
    """
    Return a mutated copy of `network`.

    Draws an operator, applies it and keeps the result only if it is
    applicable and valid. Operator errors and invalid results are logged
    and another operator is drawn. After `max_attempts` draws the edge
    weight tweak is used, and if even that fails the parent is returned.
    """
    if rng is None:
        rng = np.random.default_rng()

    for _ in range(max_attempts):
        mutation = choose_mutation(rng)
        try:
            child = apply_mutation(mutation, network, rng)
        except Exception:
            log.exception("mutation %s raised on %r", mutation.value, network)
            continue

        if child is None:
            continue

        errors = child.validation_errors()
        if errors:
            log.warning("mutation %s failed validation: %s (parent %r, child %r)",
                        mutation.value, "; ".join(errors), network, child)
            continue
        return child

    log.warning("no mutation applied to %r after %d attempts", network, max_attempts)
    fallback = mutate_edge_weight(network, rng)
    return fallback if fallback is not None else network
