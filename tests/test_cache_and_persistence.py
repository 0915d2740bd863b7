import hashlib
import json

import pytest

from pdfchamp.core.annotations import AnnotationCache, LocalAnnotationStore
from pdfchamp.core.exceptions import (
    LocalPersistenceError,
    MalformedAnnotationData,
    UnknownAnnotationType,
)


def test_cache_unseen_path_is_empty():
    cache = AnnotationCache()
    assert cache.get("/nowhere.pdf") == []
    assert "/nowhere.pdf" not in cache


def test_cache_append_put_remove(make_highlight):
    cache = AnnotationCache()
    cache.append("/a.pdf", make_highlight("h1", page_number=0))
    cache.append("/a.pdf", make_highlight("h2", page_number=3))
    assert [a.id for a in cache.get("/a.pdf")] == ["h1", "h2"]
    assert [a.id for a in cache.page("/a.pdf", 3)] == ["h2"]

    replacement = [make_highlight("h3")]
    cache.put("/a.pdf", replacement)
    replacement.append(make_highlight("h4"))
    assert [a.id for a in cache.get("/a.pdf")] == ["h3"]

    cache.remove_document("/a.pdf")
    cache.remove_document("/a.pdf")
    assert "/a.pdf" not in cache
    assert len(cache) == 0


def test_file_name_is_hash_of_pdf_path(tmp_path):
    store = LocalAnnotationStore(tmp_path)
    expected = hashlib.md5("/docs/report.pdf".encode('utf-8')).hexdigest() + "_annotations.json"
    assert store.json_path_for("/docs/report.pdf").name == expected


def test_save_then_load(tmp_path, sample_annotations):
    store = LocalAnnotationStore(tmp_path)
    store.save("/docs/report.pdf", sample_annotations)

    assert store.has_saved_annotations("/docs/report.pdf")
    assert store.load("/docs/report.pdf") == sample_annotations

    with open(store.json_path_for("/docs/report.pdf"), encoding='utf-8') as f:
        data = json.load(f)
    assert data['pdfPath'] == "/docs/report.pdf"
    assert 'savedAt' in data
    assert len(data['annotations']) == len(sample_annotations)


def test_save_overwrites_whole_file(tmp_path, make_highlight):
    store = LocalAnnotationStore(tmp_path)
    store.save("/a.pdf", [make_highlight("h1"), make_highlight("h2")])
    store.save("/a.pdf", [make_highlight("h2")])
    assert [a.id for a in store.load("/a.pdf")] == ["h2"]
    assert list(tmp_path.glob("*.tmp")) == []


def test_load_missing_file_is_empty(tmp_path):
    assert LocalAnnotationStore(tmp_path).load("/never-saved.pdf") == []


def test_load_invalid_json(tmp_path):
    store = LocalAnnotationStore(tmp_path)
    store.json_path_for("/a.pdf").write_text("{not json", encoding='utf-8')
    with pytest.raises(MalformedAnnotationData):
        store.load("/a.pdf")


def test_load_aborts_on_unknown_type(tmp_path, make_highlight):
    store = LocalAnnotationStore(tmp_path)
    payload = {
        'pdfPath': "/a.pdf",
        'savedAt': "2024-01-01T00:00:00",
        'annotations': [make_highlight("h1").to_dict(), {'id': 'x', 'type': 'sticker'}],
    }
    store.json_path_for("/a.pdf").write_text(json.dumps(payload), encoding='utf-8')
    with pytest.raises(UnknownAnnotationType):
        store.load("/a.pdf")


def test_load_without_annotations_key(tmp_path):
    store = LocalAnnotationStore(tmp_path)
    store.json_path_for("/a.pdf").write_text(json.dumps({'pdfPath': "/a.pdf"}), encoding='utf-8')
    with pytest.raises(MalformedAnnotationData):
        store.load("/a.pdf")


def test_clear(tmp_path, make_highlight):
    store = LocalAnnotationStore(tmp_path)
    store.save("/a.pdf", [make_highlight("h1")])
    store.clear("/a.pdf")
    assert not store.has_saved_annotations("/a.pdf")
    # Absent file is not an error
    store.clear("/a.pdf")


def test_save_into_unwritable_location(tmp_path, make_highlight):
    blocker = tmp_path / "blocker"
    blocker.write_text("a file, not a directory", encoding='utf-8')
    store = LocalAnnotationStore(blocker / "annotations")
    with pytest.raises(LocalPersistenceError) as excinfo:
        store.save("/a.pdf", [make_highlight("h1")])
    assert excinfo.value.original_error is not None
