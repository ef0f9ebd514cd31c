"""
Root conftest.py for cinema-explorer tests.

This file contains shared fixtures and pytest configuration
that applies to all test modules.
"""

import sys
from pathlib import Path

import pytest

# Ensure the project root is in the path
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))


SAMPLE_CSV = (
    "time,phi,theta,label,FILE\n"
    "0,10,1.5,a,img0.png\n"
    "1,20,2.5,b,img1.png\n"
    "2,30,NaN,a,img2.png\n"
    "3,,4.5,c,img3.png\n"
)

SAMPLE_AXIS_ORDER = (
    "category,name,time,phi,theta\n"
    "view,default,1,2,3\n"
    "view,reverse,3,2,1\n"
    "sort,partial,2,,1\n"
)


# ============================================================================
# Pytest Hooks
# ============================================================================


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "api: mark test as going through the HTTP API",
    )
    config.addinivalue_line(
        "markers",
        "websocket: mark test as involving WebSocket communication",
    )
    config.addinivalue_line(
        "markers",
        "slow: mark test as slow running",
    )


def pytest_collection_modifyitems(config, items):
    """
    Automatically mark tests based on their location or name.

    - Tests in test_api.py are marked with 'api'
    - Tests with 'websocket' in name are marked with 'websocket'
    """
    for item in items:
        if item.fspath.basename == "test_api.py":
            item.add_marker(pytest.mark.api)

        if "websocket" in item.name.lower():
            item.add_marker(pytest.mark.websocket)


# ============================================================================
# Shared Fixtures
# ============================================================================


@pytest.fixture
def sample_csv():
    return SAMPLE_CSV


@pytest.fixture
def sample_axis_order():
    return SAMPLE_AXIS_ORDER


@pytest.fixture
def dataset():
    """The sample dataset with its axis orderings."""
    from explorer.shared.dataset_model import load_dataset

    return load_dataset(SAMPLE_CSV, SAMPLE_AXIS_ORDER)


@pytest.fixture
def database_dir(tmp_path):
    """A database directory holding data.csv and axis_order.csv."""
    directory = tmp_path / "ensemble.cdb"
    directory.mkdir()
    (directory / "data.csv").write_text(SAMPLE_CSV, encoding="utf-8")
    (directory / "axis_order.csv").write_text(SAMPLE_AXIS_ORDER, encoding="utf-8")
    return directory


@pytest.fixture
def fresh_session():
    """The process session, emptied before and after the test."""
    from explorer.app_config import DatabaseRegistry
    from explorer.session import session

    session.reset()
    session.registry = DatabaseRegistry()
    yield session
    session.reset()
    session.registry = DatabaseRegistry()
