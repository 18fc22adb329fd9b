import json
import os

# settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOAD_PLUGINS_ON_STARTUP", "false")
os.environ.setdefault("RUN_EMBEDDED_WORKER", "false")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from cfp.config import settings
from cfp.core import database
from cfp.core.database import Base
from cfp.core.security import get_password_hash
from cfp.models.user import User
from cfp.plugins.gallery import plugin_gallery
from cfp.plugins.jobs.handlers import job_handlers
from cfp.plugins.registry import plugin_registry
from cfp.services.rate_limiter import rate_limiter


@pytest.fixture
def session_factory(monkeypatch):
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    monkeypatch.setattr(database, "SessionLocal", factory)
    yield factory
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def clean_plugin_state():
    plugin_registry.clear()
    job_handlers.clear()
    rate_limiter.clear()
    plugin_gallery.clear_cache()
    yield
    plugin_registry.clear()
    job_handlers.clear()
    rate_limiter.clear()
    plugin_gallery.clear_cache()


@pytest.fixture
def plugins_dir(tmp_path, monkeypatch):
    path = tmp_path / "plugins"
    path.mkdir()
    monkeypatch.setattr(settings, "PLUGINS_DIR", str(path))
    return path


@pytest.fixture
def make_user(db):
    def _make(email, role="USER", password="Password123", is_active=True):
        user = User(
            email=email,
            password_hash=get_password_hash(password),
            role=role,
            is_active=is_active,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
    return _make


def manifest_for(name, **overrides):
    manifest = {
        "name": name,
        "displayName": name.replace("-", " ").title(),
        "version": "1.0.0",
        "apiVersion": "1.0",
    }
    manifest.update(overrides)
    return manifest


@pytest.fixture
def write_plugin(plugins_dir):
    """Create <plugins_dir>/<name> with a manifest and an __init__.py"""
    def _write(name, code="", **manifest_overrides):
        plugin_dir = plugins_dir / name
        plugin_dir.mkdir(exist_ok=True)
        (plugin_dir / "manifest.json").write_text(json.dumps(manifest_for(name, **manifest_overrides)))
        (plugin_dir / "__init__.py").write_text(code)
        return plugin_dir
    return _write
