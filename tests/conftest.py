"""Test configuration for pytest."""

import logging
import os

import pytest

from tests.helpers.image_factory import image_bytes, make_pattern_image


@pytest.fixture(autouse=True)
def configure_test_logging():
    """Configure logging for tests to be minimal."""
    os.environ['FACEPRINT_LOG_LEVEL'] = 'WARNING'

    logging.getLogger().setLevel(logging.WARNING)

    for logger_name in ['faceprint.api', 'faceprint.cli', 'faceprint.service']:
        logging.getLogger(logger_name).setLevel(logging.ERROR)


@pytest.fixture
def reference_png() -> bytes:
    return image_bytes(make_pattern_image(seed=1))


@pytest.fixture
def reference_path(tmp_path, reference_png):
    path = tmp_path / "reference.png"
    path.write_bytes(reference_png)
    return path
