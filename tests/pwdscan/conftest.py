import pytest
import structlog


@pytest.fixture(autouse=True)
def _reset_structlog():
    """Undo any structlog configuration a test (or the CLI) applied."""
    yield
    structlog.reset_defaults()
