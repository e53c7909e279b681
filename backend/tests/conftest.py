import os, tempfile, uuid
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event, text
from sqlalchemy.orm import sessionmaker

from main import app
from db import Base, get_db

SOURCE_COLUMNS = ("FieldName", "Label", "Options", "Description")

SOLAR_ROWS = [
    ("panelCount", "Panel Count", None, None),
    ("solarType", "Solar Type", '[{"Value":29,"Text":"Hybrid"},{"Value":28,"Text":"Photovoltaic"}]',
     "Type of installation"),
    ("installDate", "Install Date", None, None),
    ("notesText", "Notes", None, None),
]

@pytest.fixture(scope="session")
def tmp_db_path():
    fd, path = tempfile.mkstemp(suffix=".db")
    os.close(fd)
    return path

@pytest.fixture(scope="session")
def test_engine(tmp_db_path):
    url = f"sqlite:///{tmp_db_path}"
    engine = create_engine(url, connect_args={"check_same_thread": False})

    # SQLite force foreign key constraints
    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(bind=engine)
    return engine

@pytest.fixture(scope="session")
def TestingSessionLocal(test_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=test_engine)

@pytest.fixture(scope="session", autouse=True)
def override_di(TestingSessionLocal):
    def _get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()
    app.dependency_overrides[get_db] = _get_db
    yield
    app.dependency_overrides.pop(get_db, None)

@pytest.fixture
def client():
    return TestClient(app)

@pytest.fixture
def make_view(test_engine):
    """Create a source table plus a view over it; returns (view_name, table_name)."""
    def _make(rows, columns=SOURCE_COLUMNS):
        suffix = uuid.uuid4().hex[:8]
        view, table = f"vw_src_{suffix}", f"src_{suffix}"
        cols = ", ".join(columns)
        params = ", ".join(f":p{i}" for i in range(len(columns)))
        with test_engine.begin() as conn:
            conn.execute(text(f"CREATE TABLE {table} ({', '.join(c + ' TEXT' for c in columns)})"))
            for row in rows:
                conn.execute(text(f"INSERT INTO {table} ({cols}) VALUES ({params})"),
                             {f"p{i}": v for i, v in enumerate(row)})
            conn.execute(text(f"CREATE VIEW {view} AS SELECT * FROM {table}"))
        return view, table
    return _make

@pytest.fixture
def solar_view(make_view):
    return make_view(SOLAR_ROWS)

@pytest.fixture
def new_question_set(client):
    def _create(view_name=None, name=None):
        r = client.post("/api/questionsets", json={
            "name": name or f"Set {uuid.uuid4().hex[:6]}",
            "description": "Solar assets",
            "sourceViewName": view_name,
        })
        assert r.status_code == 201, r.text
        return r.json()
    return _create
