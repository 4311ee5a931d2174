import pytest # type: ignore

from cardinal.lib.hyperloglog import HyperLogLog


def pytest_configure(config):
    """Add markers to the pytest configuration."""
    config.addinivalue_line("markers", "quick: mark test as quick to run")
    config.addinivalue_line("markers", "full: mark test as part of the full test suite")
    config.addinivalue_line("markers", "slow: mark test as very slow to run")


def filled_sketch(items, relative_std_dev: float = 0.03, **kwargs) -> HyperLogLog:
    """Sketch with every item in `items` offered once."""
    sketch = HyperLogLog(relative_std_dev, **kwargs)
    sketch.add_batch(items)
    return sketch


@pytest.fixture
def sketch_a():
    return filled_sketch(f"item{i}" for i in range(0, 3000))


@pytest.fixture
def sketch_b():
    return filled_sketch(f"item{i}" for i in range(2000, 5000))


@pytest.fixture
def sketch_c():
    return filled_sketch(f"other{i}" for i in range(1000))
