import pathlib
import sys
import uuid
from dataclasses import dataclass, field

import pytest
from fastapi import FastAPI, Request
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))
from voxbox.app_logging import init_logging
from voxbox.core.tenant_context import TenantContext
from voxbox.models import Base, Tenant
from voxbox.persistence import PersistenceContext


@dataclass
class TenantWorld:
    """Database with a host tenant and two regular tenants."""

    engine: Engine
    session_factory: sessionmaker[Session]
    tenant_ids: dict[str, uuid.UUID] = field(default_factory=dict)
    _contexts: list[PersistenceContext] = field(default_factory=list)

    def tenant_context(self, tenancy_name: str | None) -> TenantContext:
        context = TenantContext()
        if tenancy_name is not None:
            context.set(
                self.tenant_ids[tenancy_name],
                tenancy_name == "host",
                tenancy_name,
            )
        return context

    def context(
        self, tenancy_name: str | None = None, actor_id: uuid.UUID | None = None
    ) -> PersistenceContext:
        """Open a persistence context for ``tenancy_name`` (``None`` = unresolved)."""

        context = PersistenceContext(
            self.session_factory(),
            self.tenant_context(tenancy_name),
            actor_id=actor_id,
        )
        self._contexts.append(context)
        return context

    def close(self) -> None:
        for context in self._contexts:
            context.close()


@pytest.fixture
def engine(tmp_path: pathlib.Path) -> Engine:
    engine = create_engine(f"sqlite+pysqlite:///{tmp_path / 'voxbox.db'}", future=True)
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, expire_on_commit=False, future=True)


@pytest.fixture
def world(engine: Engine, session_factory: sessionmaker[Session]) -> TenantWorld:
    world = TenantWorld(engine=engine, session_factory=session_factory)

    setup = world.context()
    for tenancy_name in ("host", "tenant1", "tenant2"):
        tenant = setup.tenants.add(
            Tenant(
                name=tenancy_name.title(),
                tenancy_name=tenancy_name,
                admin_identifiers="admin",
            )
        )
        world.tenant_ids[tenancy_name] = tenant.id
    setup.save()

    yield world

    world.close()


@pytest.fixture
def app_factory(monkeypatch):
    def _create_app(log_dir: str, log_request_bodies: bool = False):
        """Create a FastAPI app with logging initialised."""
        monkeypatch.setenv("LOG_DIR", str(log_dir))
        if log_request_bodies:
            monkeypatch.setenv("LOG_REQUEST_BODIES", "true")
        app = FastAPI()

        @app.post("/echo")
        async def echo(request: Request):
            return await request.json()

        init_logging(app)
        return app

    return _create_app
