import shutil
from pathlib import Path

import pytest

from backend import preview, storage

TEST_DATA_DIR = Path("data-tests")


@pytest.fixture(autouse=True)
def clean_test_data():
    """Wipe and re-init data-tests/ and drop any open preview before every test."""
    if TEST_DATA_DIR.exists():
        shutil.rmtree(TEST_DATA_DIR)
    storage.init_storage(TEST_DATA_DIR)
    preview.close_manager()
    yield
    preview.close_manager()
    # leave data-tests around after tests for inspection; CI can ignore it
