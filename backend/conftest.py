"""Root conftest: test environment for the launcher and structlog routed for caplog."""

from pathlib import Path

import pytest
import structlog
from dotenv import load_dotenv

from shared.logging import configure_structlog

# Directory and BYOND config URLs point at .test hosts that only MockTransport answers.
load_dotenv(Path(__file__).resolve().parent.parent / ".env.tests")

configure_structlog()


@pytest.fixture(autouse=True)
def _fresh_log_context():
    """Drop contextvars bound by the previous test (server_id, method)."""
    structlog.contextvars.clear_contextvars()
    yield
    structlog.contextvars.clear_contextvars()
