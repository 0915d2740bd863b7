# tests/conftest.py
from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from pdfchamp.core.annotations import (
    AnnotationSyncService,
    CommentAnnotation,
    CommentReply,
    DrawingAnnotation,
    DrawingPath,
    HighlightAnnotation,
    LocalAnnotationStore,
    Point,
    Rect,
    RedactionAnnotation,
    RemoteAnnotationStore,
    RemoteSyncJournal,
    ShapeAnnotation,
    ShapeType,
    TextAnnotation,
)
from pdfchamp.core.exceptions import LocalPersistenceError

CREATED = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class CountingLocalStore(LocalAnnotationStore):
    """Local store that records reads and can be made to fail on save."""

    def __init__(self, annotations_dir):
        super().__init__(annotations_dir)
        self.load_calls = 0
        self.save_calls = 0
        self.fail_save = False

    def load(self, pdf_path):
        self.load_calls += 1
        return super().load(pdf_path)

    def save(self, pdf_path, annotations):
        self.save_calls += 1
        if self.fail_save:
            raise LocalPersistenceError("Disk full", operation='save',
                                        original_error=OSError(28, "No space left on device"))
        super().save(pdf_path, annotations)


class FakeQuery:
    """Chainable stand-in for a supabase query builder."""

    def __init__(self, client, table):
        self.client = client
        self.table = table
        self.action = None
        self.payload = None
        self.filters = []
        self.order_by = None

    def insert(self, row):
        self.action, self.payload = 'insert', row
        return self

    def update(self, changes):
        self.action, self.payload = 'update', changes
        return self

    def delete(self):
        self.action = 'delete'
        return self

    def select(self, columns='*'):
        self.action = 'select'
        return self

    def eq(self, column, value):
        self.filters.append((column, value))
        return self

    def order(self, column):
        self.order_by = column
        return self

    def _matches(self, row):
        return all(row.get(column) == value for column, value in self.filters)

    async def execute(self):
        self.client.calls.append(self.action)
        if self.client.fail or self.action in self.client.fail_actions:
            raise ConnectionError("backend unreachable")

        rows = self.client.tables.setdefault(self.table, [])
        if self.action == 'insert':
            rows.append(dict(self.payload))
            return SimpleNamespace(data=[self.payload])
        if self.action == 'update':
            matched = [row for row in rows if self._matches(row)]
            for row in matched:
                row.update(self.payload)
            return SimpleNamespace(data=matched)
        if self.action == 'delete':
            kept = [row for row in rows if not self._matches(row)]
            removed = len(rows) - len(kept)
            rows[:] = kept
            return SimpleNamespace(data=[None] * removed)

        matched = [dict(row) for row in rows if self._matches(row)]
        if self.order_by:
            matched.sort(key=lambda row: row[self.order_by])
        return SimpleNamespace(data=matched)


class FakeSupabaseClient:
    def __init__(self):
        self.tables = {}
        self.calls = []
        self.fail = False
        self.fail_actions = set()

    def table(self, name):
        return FakeQuery(self, name)

    def rows(self, table="pdf_annotations"):
        return self.tables.get(table, [])


@pytest.fixture
def annotations_dir(tmp_path):
    return tmp_path / "annotations"


@pytest.fixture
def local_store(annotations_dir):
    return CountingLocalStore(annotations_dir)


@pytest.fixture
def fake_client():
    return FakeSupabaseClient()


@pytest.fixture
def remote_store(fake_client):
    return RemoteAnnotationStore(fake_client, url="https://example.supabase.co")


@pytest.fixture
def service(local_store):
    """Local-only service."""
    return AnnotationSyncService(local_store)


@pytest.fixture
def synced_service(local_store, remote_store, annotations_dir):
    journal = RemoteSyncJournal(annotations_dir / "pending_remote_ops.json")
    return AnnotationSyncService(local_store, remote_store, journal=journal)


@pytest.fixture(scope="session")
def qapp():
    from PyQt5.QtCore import QCoreApplication
    app = QCoreApplication.instance()
    if app is None:
        app = QCoreApplication([])
    return app


@pytest.fixture
def make_highlight():
    def _make(annotation_id, page_number=0, rect=(0, 0, 100, 20)):
        return HighlightAnnotation(
            id=annotation_id,
            page_number=page_number,
            created_at=CREATED,
            rect=Rect(*rect),
            selected_text="quarterly results",
        )
    return _make


@pytest.fixture
def sample_annotations():
    """One annotation of every kind."""
    return [
        HighlightAnnotation(id="hl-1", page_number=0, created_at=CREATED,
                            rect=Rect(10, 20, 110, 40), selected_text="summary"),
        CommentAnnotation(id="cm-1", page_number=0, created_at=CREATED, author="ana",
                          position=Point(50, 60), comment="Check this figure",
                          replies=[CommentReply(id="r-1", author="ben", text="Fixed",
                                                created_at=CREATED)]),
        DrawingAnnotation(id="dr-1", page_number=1, created_at=CREATED, color=0xFFFF0000,
                          paths=[DrawingPath(points=[Point(1, 1), Point(5, 8), Point(9, 3)])],
                          stroke_width=3.0),
        TextAnnotation(id="tx-1", page_number=1, created_at=CREATED, color=0xFF0000FF,
                       position=Point(72, 72), text="Approved"),
        ShapeAnnotation(id="sh-1", page_number=0, created_at=CREATED, color=0xFF00FF00,
                        shape_type=ShapeType.ARROW, bounds=Rect(20, 20, 80, 90)),
        RedactionAnnotation(id="rd-1", page_number=1, created_at=CREATED,
                            rect=Rect(100, 100, 200, 120), replacement_text="[removed]"),
    ]
