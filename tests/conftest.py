# Add project root to sys.path so pytest can import the linuxlab package
import random
import sys
from pathlib import Path

import pytest

# Insert project root (parent of this tests/ directory) at front of sys.path
# This makes `import linuxlab` work when running `pytest` from the repo root.
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from linuxlab.filesystem import VirtualFilesystem  # noqa: E402
from linuxlab.lessons import Lab  # noqa: E402
from linuxlab.network import VirtualNetwork  # noqa: E402
from linuxlab.shell import ShellInterpreter  # noqa: E402

# 2023-11-14 22:13:20 UTC
FIXED_TIME = 1700000000.0


def fixed_clock() -> float:
    return FIXED_TIME


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


@pytest.fixture
def fs() -> VirtualFilesystem:
    return VirtualFilesystem(clock=fixed_clock)


@pytest.fixture
def net(rng) -> VirtualNetwork:
    return VirtualNetwork(rng=rng, clock=fixed_clock)


@pytest.fixture
def shell(fs, net, rng) -> ShellInterpreter:
    return ShellInterpreter(fs, net, rng=rng, clock=fixed_clock)


@pytest.fixture
def lab() -> Lab:
    return Lab(rng=random.Random(1234), clock=fixed_clock)
