from __future__ import annotations

from collections.abc import Callable, Iterator
from pathlib import Path
import sys

import pytest
from fastapi.testclient import TestClient


# Ensure `import errorkit.*` works when pytest chooses an import mode that
# doesn't automatically add the project root to sys.path.
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))


ENV_PREFIX = "EXCEPTION_HANDLER_"

TEST_JWT_SECRET = "test-secret-0123456789abcdef0123456789"


@pytest.fixture()
def make_client(monkeypatch: pytest.MonkeyPatch) -> Iterator[Callable[..., TestClient]]:
    """Build an app from env overrides, e.g. ``make_client(INCLUDE_STACK_TRACE="true")``."""

    def _make(**env: str) -> TestClient:
        monkeypatch.setenv(f"{ENV_PREFIX}JWT_SECRET", TEST_JWT_SECRET)
        for key, value in env.items():
            monkeypatch.setenv(f"{ENV_PREFIX}{key}", value)

        from errorkit.core.settings import get_settings

        get_settings.cache_clear()

        from errorkit.main import create_app

        # 500s are answered by our handler; don't re-raise them into the test.
        return TestClient(create_app(), raise_server_exceptions=False)

    yield _make

    from errorkit.core.settings import get_settings

    get_settings.cache_clear()


@pytest.fixture()
def client(make_client: Callable[..., TestClient]) -> TestClient:
    return make_client()
