import os

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from clinic_scheduler.database import Base  # noqa: E402
from clinic_scheduler.models import appointment, availability, clinic  # noqa: E402,F401


@pytest.fixture
def db_engine():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def scheduling_db(db_engine, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr('clinic_scheduler.routes.availability_routes.ensure_database_ready', lambda: None)
    monkeypatch.setattr('clinic_scheduler.routes.appointment_routes.ensure_database_ready', lambda: None)

    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    db = testing_session_local()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def api_client(db_engine, monkeypatch: pytest.MonkeyPatch):
    from fastapi.testclient import TestClient

    from clinic_scheduler.main import app
    from clinic_scheduler.routes import availability_routes

    monkeypatch.setattr('clinic_scheduler.routes.availability_routes.ensure_database_ready', lambda: None)
    monkeypatch.setattr('clinic_scheduler.routes.appointment_routes.ensure_database_ready', lambda: None)

    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)

    def override_get_db():
        db = testing_session_local()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[availability_routes.get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
