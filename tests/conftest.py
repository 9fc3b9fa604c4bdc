import sys
from pathlib import Path

import numpy as np
import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from network import Edge, Network, Node, NodeKind  # noqa: E402


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--run-slow",
        action="store_true",
        default=False,
        help="run long end-to-end simulation tests",
    )


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "slow: marks long-running tests that only run with --run-slow",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    if config.getoption("--run-slow"):
        return

    skip_marker = pytest.mark.skip(reason="Long-running test (use --run-slow)")

    for item in items:
        if "slow" in item.keywords:
            item.add_marker(skip_marker)


def fixed_action_network(action_index: int, input_size: int = 3,
                         output_size: int = 3) -> Network:
    """Zero-weight network whose output `action_index` always wins."""
    nodes = [Node(NodeKind.INPUT, f"n{i}") for i in range(input_size)]
    nodes += [
        Node(NodeKind.OUTPUT, f"n{input_size + o}", 1.0 if o == action_index else 0.0)
        for o in range(output_size)
    ]
    edges = []
    for i in range(input_size):
        for o in range(output_size):
            edges.append(Edge(f"e{len(edges)}", i, input_size + o, 0.0))
    return Network(nodes, edges, input_size, output_size)


@pytest.fixture
def rng() -> np.random.Generator:
    return np.random.default_rng(1234)
