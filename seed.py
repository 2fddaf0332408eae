"""Utility script to bootstrap the database with the host tenant and a demo tenant."""

from __future__ import annotations

import logging
import os
import time
import uuid
from dataclasses import dataclass

from dotenv import load_dotenv
from sqlalchemy import Engine, select, text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from voxbox.core.tenant_context import TenantContext
from voxbox.models import HOST_TENANCY_NAME, Tenant, User
from voxbox.models.session import get_engine, get_sessionmaker, init_schema
from voxbox.persistence import PersistenceContext

logger = logging.getLogger("seed")


@dataclass(slots=True)
class SeedConfig:
    """Configuration derived from the environment for the seed process."""

    database_url: str
    host_name: str
    admin_identifiers: str
    demo_tenancy_name: str | None
    demo_tenant_name: str
    demo_admin_user_name: str


def _safe_url(database_url: str) -> str:
    """Return a version of ``database_url`` with any password redacted."""

    try:
        parsed = make_url(database_url)
    except ArgumentError:
        return database_url
    if parsed.password is None:
        return database_url
    return parsed.set(password="***").render_as_string(hide_password=False)


def _build_database_url() -> str:
    """Compute the database URL from ``DATABASE_URL`` or ``PG*`` variables."""

    direct = os.getenv("DATABASE_URL")
    if direct:
        return direct

    host = os.getenv("PGHOST")
    port = os.getenv("PGPORT", "5432")
    database = os.getenv("PGDATABASE")
    user = os.getenv("PGUSER")
    password = os.getenv("PGPASSWORD")

    if not all([host, database, user]):
        raise RuntimeError(
            "DATABASE_URL is not configured and PGHOST/PGDATABASE/PGUSER are missing."
        )

    auth = user
    if password:
        auth = f"{user}:{password}"
    return f"postgresql+psycopg://{auth}@{host}:{port}/{database}"


def load_config() -> SeedConfig:
    """Load seed configuration from environment variables."""

    demo = os.getenv("SEED_DEMO_TENANCY_NAME", "demo").strip().lower()
    return SeedConfig(
        database_url=_build_database_url(),
        host_name=os.getenv("SEED_HOST_NAME", "Host").strip(),
        admin_identifiers=os.getenv("SEED_ADMIN_IDENTIFIERS", "admin").strip(),
        demo_tenancy_name=demo or None,
        demo_tenant_name=os.getenv("SEED_DEMO_TENANT_NAME", "Demo Tenant").strip(),
        demo_admin_user_name=os.getenv("SEED_DEMO_ADMIN", "admin").strip(),
    )


def wait_for_database(engine: Engine, max_attempts: int = 10, delay: float = 3.0) -> None:
    """Attempt to establish a database connection, retrying if necessary."""

    for attempt in range(1, max_attempts + 1):
        try:
            with engine.connect() as connection:
                connection.execute(text("SELECT 1"))
        except SQLAlchemyError as exc:  # pragma: no cover - depends on external DB
            logger.info(
                "Database not ready (attempt %d/%d): %s; retrying in %.1fs",
                attempt,
                max_attempts,
                exc,
                delay,
            )
            if attempt >= max_attempts:
                raise RuntimeError("Database did not become ready in time") from exc
            time.sleep(delay)
            continue

        logger.info("Database connection established after %d attempt(s).", attempt)
        return


def _find_tenant(session: Session, tenancy_name: str) -> Tenant | None:
    return session.scalars(
        select(Tenant).where(Tenant.tenancy_name == tenancy_name)
    ).one_or_none()


def provision_tenant(
    factory: sessionmaker[Session],
    tenancy_name: str,
    name: str,
    admin_identifiers: str,
) -> uuid.UUID:
    """Create the tenant named ``tenancy_name`` unless it already exists."""

    with PersistenceContext(factory(), TenantContext()) as context:
        tenant = _find_tenant(context.session, tenancy_name)
        if tenant is not None:
            logger.info("Tenant %s already exists; reusing.", tenancy_name)
            return tenant.id

        tenant = context.tenants.add(
            Tenant(name=name, tenancy_name=tenancy_name, admin_identifiers=admin_identifiers)
        )
        context.save()
        logger.info("Created tenant %s (%s)", tenant.id, tenancy_name)
        return tenant.id


def provision_admin_user(
    factory: sessionmaker[Session], tenant_id: uuid.UUID, tenancy_name: str, user_name: str
) -> uuid.UUID:
    """Create the tenant's administrator account unless it already exists."""

    tenant_context = TenantContext()
    tenant_context.set(tenant_id, tenancy_name.lower() == HOST_TENANCY_NAME, tenancy_name)
    with PersistenceContext(factory(), tenant_context) as context:
        for user in context.users.get_all():
            if user.user_name == user_name.lower():
                logger.info("Admin user %s already exists; reusing.", user.user_name)
                return user.id

        user = context.users.add(User(user_name=user_name, name="Administrator"))
        context.save()
        logger.info("Created admin user %s for tenant %s", user.user_name, tenancy_name)
        return user.id


def main() -> None:
    """Entrypoint for the seeding workflow."""

    load_dotenv()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")

    config = load_config()
    logger.info("Starting seed process using %s", _safe_url(config.database_url))

    engine = get_engine(config.database_url)
    wait_for_database(engine)
    init_schema(engine)
    factory = get_sessionmaker(engine=engine)

    provision_tenant(factory, HOST_TENANCY_NAME, config.host_name, config.admin_identifiers)

    if config.demo_tenancy_name:
        tenant_id = provision_tenant(
            factory,
            config.demo_tenancy_name,
            config.demo_tenant_name,
            config.admin_identifiers,
        )
        provision_admin_user(
            factory, tenant_id, config.demo_tenancy_name, config.demo_admin_user_name
        )

    engine.dispose()
    logger.info("Seed process completed.")


if __name__ == "__main__":
    main()
