import time

import platformdirs
import pytest

_ASYNC_NETWORK_BLOCK_MSG = (
    "Async network access is blocked during tests. Mock aiohttp.ClientSession."
)


async def _async_block_network(*_args, **_kwargs):
    """
    Prevent async network calls during tests by raising a RuntimeError.

    Raises:
        RuntimeError: `_ASYNC_NETWORK_BLOCK_MSG` suggesting to mock `aiohttp.ClientSession`.
    """
    raise RuntimeError(_ASYNC_NETWORK_BLOCK_MSG)


# Configure pytest-asyncio mode - only register if available
try:
    import importlib

    importlib.import_module("pytest_asyncio")
    pytest_plugins = ("pytest_asyncio",)
except ImportError:
    pytest_plugins = ()


def pytest_configure(config):
    """
    Register the markers used across the bundlehub test suite.

    Parameters:
        config: pytest.Config
    """
    config.addinivalue_line("markers", "asyncio: mark test as an asyncio test")
    config.addinivalue_line("markers", "unit: fast, isolated unit tests")
    config.addinivalue_line("markers", "core: registry and install lifecycle tests")
    config.addinivalue_line(
        "markers", "integration: tests spanning several components end to end"
    )


@pytest.fixture(autouse=True)
def _isolate_test_environment(tmp_path_factory, monkeypatch):
    """
    Point every bundlehub and platformdirs location at a per-test temp tree.

    Sets BUNDLEHUB_HOME and BUNDLEHUB_DISABLE_FILE_LOGGING, clears ambient git
    host tokens so the auth chain never picks up the developer's credentials,
    and patches platformdirs.user_data_dir.
    """
    base = tmp_path_factory.mktemp("bundlehub")
    data_dir = base / "data"
    data_dir.mkdir(parents=True, exist_ok=True)

    monkeypatch.setenv("BUNDLEHUB_HOME", str(data_dir))
    monkeypatch.setenv("BUNDLEHUB_DISABLE_FILE_LOGGING", "1")
    for name in ("GITHUB_TOKEN", "GH_TOKEN", "GITLAB_TOKEN"):
        monkeypatch.delenv(name, raising=False)

    monkeypatch.setattr(
        platformdirs, "user_data_dir", lambda *_args, **_kwargs: str(data_dir)
    )


def pytest_runtest_setup():
    """
    Prevent real network requests during tests.

    Replaces aiohttp's top-level request and the ClientSession HTTP methods
    with an async blocker.
    """
    import aiohttp

    aiohttp.request = _async_block_network
    aiohttp.ClientSession.request = _async_block_network  # type: ignore[assignment]
    aiohttp.ClientSession.get = _async_block_network  # type: ignore[assignment]
    aiohttp.ClientSession.post = _async_block_network  # type: ignore[assignment]
    aiohttp.ClientSession.put = _async_block_network  # type: ignore[assignment]
    aiohttp.ClientSession.delete = _async_block_network  # type: ignore[assignment]
    aiohttp.ClientSession.head = _async_block_network  # type: ignore[assignment]
    aiohttp.ClientSession.patch = _async_block_network  # type: ignore[assignment]


@pytest.fixture(autouse=True)
def _mock_time_sleep(monkeypatch):
    """Make time.sleep instant for all tests."""
    monkeypatch.setattr(time, "sleep", lambda *_args, **_kwargs: None)


# =============================================================================
# Shared Fixtures
# =============================================================================


@pytest.fixture
def storage(tmp_path):
    """A Storage rooted in a temp directory with its own workspace."""
    from bundlehub.storage import Storage

    return Storage(root=str(tmp_path / "home"), workspace=str(tmp_path / "ws"))


@pytest.fixture
def mock_aiohttp_session(mocker):
    """
    Provide a mock aiohttp.ClientSession for testing async HTTP operations.

    Yields a MagicMock configured with the aiohttp.ClientSession spec and with `closed` set to False.
    """
    import aiohttp

    mock_session = mocker.MagicMock(spec=aiohttp.ClientSession)
    mock_session.closed = False
    yield mock_session

