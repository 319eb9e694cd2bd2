from __future__ import annotations

import pathlib
import sys
import uuid
from collections.abc import Callable, Sequence

import pytest
from sqlalchemy.pool import StaticPool

ROOT = pathlib.Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def _load_dependencies():
    from app import Config, create_app
    from backend.app.extensions import db

    return Config, create_app, db


ConfigBase, create_app, db = _load_dependencies()


class TestConfig(ConfigBase):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite+pysqlite:///:memory:"
    SQLALCHEMY_ENGINE_OPTIONS = {
        "poolclass": StaticPool,
        "connect_args": {"check_same_thread": False},
    }
    CORS_ALLOWED_ORIGINS = "http://localhost"
    ADVANCEMENT_MAX_RETRIES = 3
    ADVANCEMENT_RETRY_DELAY = 0
    RECONCILE_BEFORE_READ = True
    RATELIMIT_STORAGE_URI = "memory://"


@pytest.fixture(scope="module")
def app():
    app = create_app(TestConfig)
    ctx = app.app_context()
    ctx.push()
    yield app
    db.session.remove()
    ctx.pop()


@pytest.fixture()
def file_app(tmp_path):
    """App on a file-backed SQLite database; each session gets its own connection."""

    class FileConfig(TestConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite+pysqlite:///{tmp_path / 'flowdesk.db'}"
        SQLALCHEMY_ENGINE_OPTIONS = {"connect_args": {"timeout": 5}}

    app = create_app(FileConfig)
    ctx = app.app_context()
    ctx.push()
    yield app
    db.session.remove()
    db.engine.dispose()
    ctx.pop()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def unique_user() -> Callable[[str], str]:
    def factory(prefix: str = "user") -> str:
        return f"{prefix}-{uuid.uuid4().hex[:8]}"

    return factory


@pytest.fixture()
def as_user() -> Callable[[str], dict[str, str]]:
    def factory(user_id: str) -> dict[str, str]:
        return {"X-User-Id": user_id}

    return factory


@pytest.fixture()
def make_workflow(app):
    """Create a workflow whose steps are assigned to the given users in order.

    ``None`` entries create unassigned steps.
    """

    from backend.app.workflow import definitions

    def factory(
        assignees: Sequence[str | None],
        *,
        orders: Sequence[int] | None = None,
        reusable: bool = True,
        first_config: dict | None = None,
        configs: Sequence[dict | None] | None = None,
    ):
        step_orders = list(orders) if orders is not None else list(range(1, len(assignees) + 1))
        steps = []
        for index, (assignee, order) in enumerate(zip(assignees, step_orders)):
            step = {"name": f"Step {order}", "order": order, "assignee": assignee}
            if index == 0 and first_config is not None:
                step["config"] = first_config
            if configs is not None and configs[index] is not None:
                step["config"] = configs[index]
            steps.append(step)
        return definitions.create_workflow(
            f"Workflow {uuid.uuid4().hex[:8]}",
            steps,
            "author",
            is_reusable=reusable,
        )

    return factory
