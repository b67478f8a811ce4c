"""Shared test fixtures."""
import pytest
from unittest.mock import patch, MagicMock
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from clinic_crm.database import Base


@pytest.fixture
def db_engine():
    """In-memory SQLite engine with schema created."""
    engine = create_engine('sqlite:///:memory:')
    import clinic_crm.models.clinic
    import clinic_crm.models.stage
    import clinic_crm.models.lead
    import clinic_crm.models.ai_report
    import clinic_crm.models.message
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine):
    """SQLAlchemy session bound to in-memory SQLite. Rolls back after each test."""
    Session = sessionmaker(bind=db_engine, expire_on_commit=False)
    session = Session()
    yield session
    session.rollback()
    session.close()


@pytest.fixture(autouse=True)
def patch_get_session(db_session):
    """Route all get_session() calls to the test session.

    We disable close() so that store methods calling session.close()
    in their finally blocks don't invalidate the shared test session.
    """
    _real_close = db_session.close
    db_session.close = lambda: None
    with patch('clinic_crm.database.get_session', return_value=db_session):
        yield db_session
    db_session.close = _real_close


@pytest.fixture(autouse=True)
def mock_redis():
    """Mock Redis client behind the realtime feed. Every publish lands here."""
    mock = MagicMock()
    mock.publish.return_value = 1
    with patch('clinic_crm.services.realtime.r', mock):
        yield mock


@pytest.fixture
def store():
    """Fresh Store whose change events are captured on a MagicMock."""
    from clinic_crm.services.store import Store
    return Store(publish=MagicMock())


@pytest.fixture
def make_clinic(store):
    """Factory fixture — creates a clinic row, AI settings as keyword overrides."""
    def _make(name='Clínica Sorriso', **settings):
        return store.create_clinic(name, **settings)
    return _make


@pytest.fixture
def make_pipeline(store, make_clinic):
    """Factory fixture — a clinic with the named stages in order. Returns (clinic, [stages])."""
    def _make(*names, **settings):
        clinic = make_clinic(**settings)
        stages = [store.insert_stage(clinic.id, n) for n in (names or ('Novo', 'Contato', 'Agendado'))]
        return clinic, stages
    return _make


@pytest.fixture
def app():
    """Flask test app."""
    from clinic_crm import create_app
    with patch('clinic_crm.config.API_TOKEN', None):
        app = create_app()
    app.config['TESTING'] = True
    yield app


@pytest.fixture
def client(app):
    """Flask test client."""
    with app.test_client() as c:
        yield c
