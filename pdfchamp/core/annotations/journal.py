"""
Durable queue of remote mutations that could not be delivered.
"""
import asyncio
import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from pdfchamp.core.exceptions import MalformedAnnotationData

from .models import Annotation, annotation_from_dict, utc_now

logger = logging.getLogger(__name__)

JOURNAL_FILENAME = "pending_remote_ops.json"
MAX_ATTEMPTS = 5

CREATE = "create"
UPDATE = "update"
DELETE = "delete"
CLEAR = "clear"
OPERATIONS = (CREATE, UPDATE, DELETE, CLEAR)


@dataclass
class PendingRemoteOp:
    """One remote mutation, replayable against a RemoteAnnotationStore."""

    operation: str
    pdf_path: str
    annotation_id: Optional[str] = None
    annotation: Optional[Annotation] = None
    queued_at: str = field(default_factory=lambda: utc_now().isoformat())
    attempts: int = 0

    @staticmethod
    def create(pdf_path: str, annotation: Annotation) -> "PendingRemoteOp":
        return PendingRemoteOp(CREATE, pdf_path, annotation.id, annotation)

    @staticmethod
    def update(pdf_path: str, annotation: Annotation) -> "PendingRemoteOp":
        return PendingRemoteOp(UPDATE, pdf_path, annotation.id, annotation)

    @staticmethod
    def delete(pdf_path: str, annotation_id: str) -> "PendingRemoteOp":
        return PendingRemoteOp(DELETE, pdf_path, annotation_id)

    @staticmethod
    def clear(pdf_path: str) -> "PendingRemoteOp":
        return PendingRemoteOp(CLEAR, pdf_path)

    async def apply(self, remote) -> None:
        """Send this mutation to ``remote``."""
        if self.operation == CREATE:
            await remote.create(self.pdf_path, self.annotation)
        elif self.operation == UPDATE:
            await remote.update(self.pdf_path, self.annotation)
        elif self.operation == DELETE:
            await remote.delete(self.annotation_id)
        elif self.operation == CLEAR:
            await remote.clear(self.pdf_path)
        else:
            raise ValueError(f"Unknown remote operation: {self.operation}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            'operation': self.operation,
            'pdfPath': self.pdf_path,
            'annotationId': self.annotation_id,
            'annotation': self.annotation.to_dict() if self.annotation is not None else None,
            'queuedAt': self.queued_at,
            'attempts': self.attempts,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "PendingRemoteOp":
        operation = data['operation']
        if operation not in OPERATIONS:
            raise ValueError(f"Unknown remote operation: {operation!r}")
        payload = data.get('annotation')
        return PendingRemoteOp(
            operation=operation,
            pdf_path=data['pdfPath'],
            annotation_id=data.get('annotationId'),
            annotation=annotation_from_dict(payload) if payload is not None else None,
            queued_at=data.get('queuedAt') or utc_now().isoformat(),
            attempts=int(data.get('attempts', 0)),
        )


class RemoteSyncJournal:
    """
    File-backed list of remote mutations awaiting delivery.

    Order is kept per document: an operation is never sent ahead of an
    earlier undelivered one for the same path, while other documents'
    operations go through. An operation that fails ``max_attempts`` times is
    set aside in ``abandoned`` so it stops blocking its document.

    The journal is best-effort itself: failures to read or write its file are
    logged and the in-memory queue keeps working.
    """

    def __init__(self, journal_path: Path, max_attempts: int = MAX_ATTEMPTS):
        self.journal_path = Path(journal_path)
        self.max_attempts = max_attempts
        self._ops, self.abandoned = self._read()
        self._replay_lock = asyncio.Lock()
        self._write_lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._ops)

    def pending(self, pdf_path: Optional[str] = None) -> List[PendingRemoteOp]:
        """Get queued operations, optionally only those for one document."""
        if pdf_path is None:
            return list(self._ops)
        return [op for op in self._ops if op.pdf_path == pdf_path]

    def has_pending(self, pdf_path: str) -> bool:
        return any(op.pdf_path == pdf_path for op in self._ops)

    async def record(self, op: PendingRemoteOp) -> None:
        """Queue an operation for later delivery."""
        self._ops.append(op)
        logger.info("Queued remote %s for %s (%d pending)", op.operation, op.pdf_path, len(self._ops))
        await self._save()

    async def replay(self, remote, pdf_path: Optional[str] = None) -> int:
        """
        Deliver queued operations in order.

        A failed operation stays queued along with every later operation for
        the same document; other documents are not held up.

        Args:
            remote: The RemoteAnnotationStore to deliver to
            pdf_path: Only replay this document's operations

        Returns:
            Number of operations delivered
        """
        delivered = 0
        async with self._replay_lock:
            blocked = set()
            for op in list(self._ops):
                if op.pdf_path in blocked or (pdf_path is not None and op.pdf_path != pdf_path):
                    continue
                try:
                    await op.apply(remote)
                except Exception as e:
                    op.attempts += 1
                    if op.attempts >= self.max_attempts:
                        logger.error("Giving up on remote %s for %s after %d attempts: %s",
                                     op.operation, op.pdf_path, op.attempts, e)
                        self._discard(op)
                        self.abandoned.append(op)
                    else:
                        logger.warning("Remote replay of %s for %s failed (attempt %d): %s",
                                       op.operation, op.pdf_path, op.attempts, e)
                        blocked.add(op.pdf_path)
                    continue
                self._discard(op)
                delivered += 1

            if delivered:
                logger.info("Replayed %d remote operations, %d still pending", delivered, len(self._ops))
            await self._save()
        return delivered

    def _discard(self, op: PendingRemoteOp) -> None:
        # Operations recorded during the replay must survive
        self._ops = [queued for queued in self._ops if queued is not op]

    def _read(self) -> Tuple[List[PendingRemoteOp], List[PendingRemoteOp]]:
        if not self.journal_path.exists():
            return [], []
        try:
            with open(self.journal_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
            return (
                [PendingRemoteOp.from_dict(item) for item in data.get('operations', [])],
                [PendingRemoteOp.from_dict(item) for item in data.get('abandoned', [])],
            )
        except (OSError, ValueError, KeyError, TypeError, AttributeError, MalformedAnnotationData) as e:
            logger.error("Discarding unreadable remote sync journal %s: %s", self.journal_path, e)
            return [], []

    async def _save(self) -> None:
        async with self._write_lock:
            data = {
                'operations': [op.to_dict() for op in self._ops],
                'abandoned': [op.to_dict() for op in self.abandoned],
            }
            await asyncio.to_thread(self._write, data)

    def _write(self, data: Dict[str, Any]) -> None:
        temp_path = None
        try:
            self.journal_path.parent.mkdir(parents=True, exist_ok=True)
            temp_fd, temp_path = tempfile.mkstemp(suffix='.tmp', dir=self.journal_path.parent)
            with os.fdopen(temp_fd, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2)
            os.replace(temp_path, self.journal_path)
        except OSError as e:
            if temp_path and os.path.exists(temp_path):
                os.remove(temp_path)
            logger.error("Failed to write remote sync journal %s: %s", self.journal_path, e)
