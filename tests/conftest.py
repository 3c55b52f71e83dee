"""Pytest configuration for input-logprobs tests."""

import pytest
import torch


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (require model downloads)"
    )


def pytest_addoption(parser):
    parser.addoption(
        "--run-slow",
        action="store_true",
        default=False,
        help="Run slow tests that download models",
    )


def pytest_collection_modifyitems(config, items):
    if config.getoption("--run-slow"):
        return
    skip_slow = pytest.mark.skip(reason="need --run-slow option to run")
    for item in items:
        if "slow" in item.keywords:
            item.add_marker(skip_slow)


@pytest.fixture
def random_logits():
    """Seeded [8, 11] logits buffer with a wide value range."""
    generator = torch.Generator().manual_seed(1234)
    return torch.randn(8, 11, generator=generator) * 6.0
