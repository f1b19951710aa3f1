"""
Pytest configuration and fixtures.
"""
import os
import tempfile
import threading
import time
from pathlib import Path
from typing import Any, Callable, Dict, Generator, Iterable, Optional

# Settings are cached on first use: point them at throwaway locations first
_TEST_ROOT = Path(tempfile.mkdtemp(prefix="invoicedesk-tests-"))
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_TEST_ROOT / 'app.db'}")
os.environ.setdefault("UPLOAD_DIR", str(_TEST_ROOT / "uploads"))

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from invoicedesk import models  # noqa: F401
from invoicedesk.api.deps import get_blob_store, get_worker
from invoicedesk.database import Base, get_db
from invoicedesk.main import app
from invoicedesk.middleware.rate_limit import limiter
from invoicedesk.models.client import Client
from invoicedesk.models.document import Document, DocumentStatus
from invoicedesk.services.storage import InMemoryBlobStore
from invoicedesk.services.worker import ProcessingWorker


# Create in-memory SQLite database for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

limiter.enabled = False

# Minimal valid PDF
SAMPLE_PDF = b"""%PDF-1.4
1 0 obj
<< /Type /Catalog /Pages 2 0 R >>
endobj
2 0 obj
<< /Type /Pages /Kids [3 0 R] /Count 1 >>
endobj
3 0 obj
<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] >>
endobj
trailer
<< /Size 4 /Root 1 0 R >>
%%EOF"""

SAMPLE_FIELDS = {
    "invoice_number": "INV-1",
    "issue_date": "2026-10-01",
    "due_date": "2026-10-31",
    "client_name": "Johnson & Partners",
    "matter": "Estate planning",
    "subtotal": "1500.00",
    "total": "1500.00",
    "line_items": [],
}


class FakeExtractor:
    """
    Stands in for DocumentExtractor.

    Counts calls, returns fixed fields or raises a configured error, and
    can block on a gate so tests can act while a run is in flight.
    """

    def __init__(self, fields: Optional[Dict[str, Any]] = None, error: Optional[Exception] = None):
        self.fields = dict(fields or SAMPLE_FIELDS)
        self.error = error
        self.calls = 0
        self.started = threading.Event()
        self.gate: Optional[threading.Event] = None

    def extract(self, data: bytes, file_type: str, checkpoint: Callable[[], None]) -> Dict[str, Any]:
        self.calls += 1
        self.started.set()
        if self.gate is not None:
            self.gate.wait(timeout=5)
        checkpoint()
        if self.error is not None:
            raise self.error
        return dict(self.fields)


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """Create a fresh database session for each test."""
    Base.metadata.create_all(bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory() -> sessionmaker:
    return TestingSessionLocal


@pytest.fixture
def blob_store() -> InMemoryBlobStore:
    return InMemoryBlobStore()


@pytest.fixture
def extractor() -> FakeExtractor:
    return FakeExtractor()


@pytest.fixture
def worker(blob_store: InMemoryBlobStore, extractor: FakeExtractor) -> Generator[ProcessingWorker, None, None]:
    worker = ProcessingWorker(
        session_factory=TestingSessionLocal,
        blob_store=blob_store,
        extractor=extractor,
        max_workers=2,
    )
    yield worker
    if extractor.gate is not None:
        extractor.gate.set()


@pytest.fixture(scope="function")
def client(
    db_session: Session,
    blob_store: InMemoryBlobStore,
    worker: ProcessingWorker,
) -> Generator[TestClient, None, None]:
    """Create a test client with database, storage and worker overrides."""

    def override_get_db():
        session = TestingSessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_blob_store] = lambda: blob_store
    app.dependency_overrides[get_worker] = lambda: worker

    with TestClient(app) as test_client:
        yield test_client
        test_client.portal.call(worker.shutdown)

    app.dependency_overrides.clear()


@pytest.fixture
def sample_client(db_session: Session) -> Client:
    client = Client(name="Johnson & Partners", email="billing@johnson.example")
    db_session.add(client)
    db_session.commit()
    db_session.refresh(client)
    return client


@pytest.fixture
def make_document(db_session: Session, blob_store: InMemoryBlobStore) -> Callable[..., Document]:
    """Insert a stored document directly, bypassing intake."""

    def _make(
        filename: str = "invoice.pdf",
        status: DocumentStatus = DocumentStatus.PENDING,
        fields: Optional[Dict[str, Any]] = None,
        data: bytes = SAMPLE_PDF,
    ) -> Document:
        document = Document(
            filename=filename,
            content_type="application/pdf",
            size_bytes=len(data),
            storage_key=f"{filename}.blob",
            status=status,
            extracted_fields=fields,
        )
        blob_store.put(document.storage_key, data)
        db_session.add(document)
        db_session.commit()
        db_session.refresh(document)
        return document

    return _make


@pytest.fixture
def sample_pdf_content() -> bytes:
    return SAMPLE_PDF


@pytest.fixture
def sample_fields() -> Dict[str, Any]:
    return dict(SAMPLE_FIELDS)


@pytest.fixture
def wait_for_status(client: TestClient) -> Callable[..., Dict[str, Any]]:
    """Poll a document over the API until it reaches one of the given statuses."""

    def _wait(document_id: str, statuses: Iterable[str], timeout: float = 5.0) -> Dict[str, Any]:
        wanted = set(statuses)
        deadline = time.monotonic() + timeout
        while True:
            data = client.get(f"/api/v1/documents/{document_id}").json()
            if data["status"] in wanted or time.monotonic() > deadline:
                return data
            time.sleep(0.02)

    return _wait
