from __future__ import annotations

import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

# Ensure repo root is on sys.path so `import coursetrack` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from coursetrack.main import app  # noqa: E402
from coursetrack.services import stores, token_service  # noqa: E402
from coursetrack.services.task_queue import task_queue  # noqa: E402


@pytest.fixture(autouse=True)
def reset_stores() -> None:
    """Clear the in-memory collaborator singletons between tests."""
    stores.progress_source._store.clear()  # type: ignore[attr-defined]
    stores.enrollment_store._by_id.clear()  # type: ignore[attr-defined]
    stores.enrollment_store._by_key.clear()  # type: ignore[attr-defined]
    stores.certificate_repo._by_id.clear()  # type: ignore[attr-defined]
    stores.certificate_repo._by_key.clear()  # type: ignore[attr-defined]
    stores.user_repo._by_id.clear()  # type: ignore[attr-defined]


@pytest.fixture(autouse=True)
def reset_task_queue() -> None:
    """Clear task queues between tests."""
    if hasattr(task_queue, "_queues"):
        task_queue._queues.clear()  # type: ignore[union-attr]


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


def mint_token(
    username: str = "test-user",
    roles: list[str] | None = None,
    name: str | None = None,
) -> str:
    """Create a valid ES256 JWT for testing."""
    return token_service.create_access_token(sub=username, roles=roles, name=name)


def auth_headers(username: str = "test-user", **kwargs) -> dict[str, str]:
    return {"Authorization": f"Bearer {mint_token(username, **kwargs)}"}


@pytest.fixture
def token() -> str:
    """Token with default role (user)."""
    return mint_token()


@pytest.fixture
def admin_token() -> str:
    """Token with admin role."""
    return mint_token(username="test-admin", roles=["admin"])
