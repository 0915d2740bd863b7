import asyncio
import json
import logging

from pdfchamp.core.annotations import PendingRemoteOp, RemoteSyncJournal


def record_all(journal, *ops):
    async def _record():
        for op in ops:
            await journal.record(op)
    asyncio.run(_record())


def test_record_persists_across_instances(tmp_path, make_highlight):
    path = tmp_path / "pending.json"
    journal = RemoteSyncJournal(path)
    record_all(journal,
               PendingRemoteOp.create("/doc.pdf", make_highlight("h1")),
               PendingRemoteOp.delete("/doc.pdf", "h0"))

    reopened = RemoteSyncJournal(path)
    assert len(reopened) == 2
    assert [op.operation for op in reopened.pending()] == ["create", "delete"]
    assert reopened.pending()[0].annotation == make_highlight("h1")
    assert reopened.has_pending("/doc.pdf")
    assert not reopened.has_pending("/other.pdf")


def test_replay_delivers_in_order(tmp_path, remote_store, fake_client, make_highlight):
    journal = RemoteSyncJournal(tmp_path / "pending.json")
    record_all(journal,
               PendingRemoteOp.create("/doc.pdf", make_highlight("h1")),
               PendingRemoteOp.update("/doc.pdf", make_highlight("h1", page_number=7)),
               PendingRemoteOp.create("/doc.pdf", make_highlight("h2")))

    assert asyncio.run(journal.replay(remote_store)) == 3
    assert len(journal) == 0
    assert fake_client.calls == ["insert", "update", "insert"]
    assert {row['id']: row['page_number'] for row in fake_client.rows()} == {"h1": 7, "h2": 0}


def test_failure_holds_back_only_its_document(tmp_path, remote_store, fake_client, make_highlight):
    journal = RemoteSyncJournal(tmp_path / "pending.json")
    record_all(journal,
               PendingRemoteOp.create("/a.pdf", make_highlight("a1")),
               PendingRemoteOp.clear("/b.pdf"),
               PendingRemoteOp.delete("/a.pdf", "a0"),
               PendingRemoteOp.update("/b.pdf", make_highlight("b1")))
    fake_client.fail_actions = {"insert"}

    assert asyncio.run(journal.replay(remote_store)) == 2
    remaining = journal.pending()
    assert [(op.pdf_path, op.operation) for op in remaining] == [("/a.pdf", "create"),
                                                                  ("/a.pdf", "delete")]
    assert remaining[0].attempts == 1
    # The delete waits behind the failed create of the same document
    assert remaining[1].attempts == 0
    assert fake_client.calls == ["insert", "delete", "update"]

    saved = json.loads((tmp_path / "pending.json").read_text(encoding='utf-8'))
    assert len(saved['operations']) == 2


def test_replay_of_one_document(tmp_path, remote_store, fake_client, make_highlight):
    journal = RemoteSyncJournal(tmp_path / "pending.json")
    record_all(journal,
               PendingRemoteOp.create("/a.pdf", make_highlight("a1")),
               PendingRemoteOp.create("/b.pdf", make_highlight("b1")))

    assert asyncio.run(journal.replay(remote_store, "/b.pdf")) == 1
    assert [op.pdf_path for op in journal.pending()] == ["/a.pdf"]


def test_operation_is_set_aside_after_max_attempts(tmp_path, remote_store, fake_client,
                                                   make_highlight, caplog):
    path = tmp_path / "pending.json"
    journal = RemoteSyncJournal(path, max_attempts=3)
    record_all(journal,
               PendingRemoteOp.create("/a.pdf", make_highlight("dup")),
               PendingRemoteOp.delete("/a.pdf", "old"))
    fake_client.fail_actions = {"insert"}

    with caplog.at_level(logging.ERROR, logger="pdfchamp.core.annotations.journal"):
        assert asyncio.run(journal.replay(remote_store)) == 0
        assert asyncio.run(journal.replay(remote_store)) == 0
        # Third failure gives up, which unblocks the delete behind it
        assert asyncio.run(journal.replay(remote_store)) == 1

    assert len(journal) == 0
    assert [op.annotation_id for op in journal.abandoned] == ["dup"]
    assert "Giving up on remote create" in caplog.text
    assert [op.annotation_id for op in RemoteSyncJournal(path).abandoned] == ["dup"]


def test_unreadable_journal_starts_empty(tmp_path):
    path = tmp_path / "pending.json"
    path.write_text("garbage", encoding='utf-8')
    assert len(RemoteSyncJournal(path)) == 0
