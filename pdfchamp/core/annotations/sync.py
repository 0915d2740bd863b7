"""
Annotation synchronization service.

The single entry point for annotation reads and writes. Reads go cache ->
remote (when enabled) -> local -> empty. Writes go cache -> remote
(best-effort) -> local (mandatory, full list).
"""
import asyncio
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from pdfchamp.core.config import AppConfig
from pdfchamp.core.exceptions import (
    AnnotationNotFound,
    AnnotationSaveError,
    LocalPersistenceError,
    MalformedAnnotationData,
    PDFProcessingException,
    RemotePersistenceError,
)

from .cache import AnnotationCache
from .journal import JOURNAL_FILENAME, PendingRemoteOp, RemoteSyncJournal
from .models import Annotation, annotations_from_list, utc_now
from .persistence import LocalAnnotationStore
from .remote import RemoteAnnotationStore, connect_remote_store

logger = logging.getLogger(__name__)


class StoreStatus(Enum):
    OK = "ok"
    FAILED = "failed"      # attempted and failed
    SKIPPED = "skipped"    # store not involved (disabled, unconfigured)
    DEFERRED = "deferred"  # queued behind earlier undelivered remote writes


@dataclass
class StoreResult:
    """What happened at one store during a mutation."""

    status: StoreStatus
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.status is StoreStatus.OK

    @classmethod
    def success(cls) -> "StoreResult":
        return cls(StoreStatus.OK)

    @classmethod
    def skipped(cls) -> "StoreResult":
        return cls(StoreStatus.SKIPPED)

    @classmethod
    def deferred(cls) -> "StoreResult":
        return cls(StoreStatus.DEFERRED)

    @classmethod
    def failed(cls, error: BaseException) -> "StoreResult":
        return cls(StoreStatus.FAILED, error)


@dataclass
class SyncOutcome:
    """Per-store result of one mutation. Local is authoritative."""

    pdf_path: str
    operation: str
    local: StoreResult
    remote: StoreResult

    @property
    def succeeded(self) -> bool:
        return self.local.ok

    @property
    def remote_degraded(self) -> bool:
        return self.remote.status in (StoreStatus.FAILED, StoreStatus.DEFERRED)


class AnnotationSyncService:
    """
    Owns the annotation cache and coordinates the local and remote stores.

    Mutations for one document path are serialized, so the local file always
    reflects the latest mutation issued for that path. Mutations on different
    paths run independently.
    """

    def __init__(self, local_store: LocalAnnotationStore,
                 remote_store: Optional[RemoteAnnotationStore] = None,
                 cache: Optional[AnnotationCache] = None,
                 cloud_sync_enabled: bool = True,
                 journal: Optional[RemoteSyncJournal] = None):
        self.cache = cache if cache is not None else AnnotationCache()
        self.local_store = local_store
        self.remote_store = remote_store
        self.cloud_sync_enabled = cloud_sync_enabled
        self.journal = journal
        self._locks: Dict[str, asyncio.Lock] = {}

    @classmethod
    async def from_config(cls, config: AppConfig) -> "AnnotationSyncService":
        """
        Wire a service to the stores described by ``config``.

        A Supabase connection failure leaves the service running local-only.
        """
        local_store = LocalAnnotationStore(config.resolve_annotations_dir())

        remote_store = None
        if config.enable_cloud_sync:
            try:
                remote_store = await connect_remote_store(config)
            except RemotePersistenceError as e:
                logger.warning("Cloud sync unavailable, continuing local-only: %s", e)

        journal = None
        if remote_store is not None:
            journal = RemoteSyncJournal(local_store.annotations_dir / JOURNAL_FILENAME)

        return cls(local_store, remote_store,
                   cloud_sync_enabled=config.enable_cloud_sync, journal=journal)

    @property
    def remote_enabled(self) -> bool:
        """True when a remote store is configured and cloud sync is switched on."""
        return self.remote_store is not None and self.cloud_sync_enabled

    @property
    def pending_remote_count(self) -> int:
        return len(self.journal) if self.journal is not None else 0

    # ======================
    # Reads
    # ======================

    async def get_annotations(self, pdf_path: str) -> List[Annotation]:
        """
        Get all annotations for a document. Never raises.

        Args:
            pdf_path: Path of the document

        Returns:
            A copy of the document's annotation list
        """
        if pdf_path in self.cache:
            logger.debug("Returning cached annotations for %s", pdf_path)
            return list(self.cache.get(pdf_path))

        async with self._lock_for(pdf_path):
            # A mutation may have created the entry while we waited
            if pdf_path not in self.cache:
                self.cache.put(pdf_path, await self._load(pdf_path))
            return list(self.cache.get(pdf_path))

    def get_page_annotations(self, pdf_path: str, page_number: int) -> List[Annotation]:
        """Get the cached annotations on one page. Does no I/O."""
        return self.cache.page(pdf_path, page_number)

    async def _load(self, pdf_path: str) -> List[Annotation]:
        if self.remote_enabled:
            if self.journal is not None and self.journal.has_pending(pdf_path):
                logger.info("Remote copy of %s has undelivered changes, reading local", pdf_path)
            else:
                try:
                    return await self.remote_store.load_all(pdf_path)
                except Exception as e:
                    # Remote is best-effort; any failure falls through to local
                    logger.warning("Failed to load %s from remote, trying local: %s", pdf_path, e)

        try:
            return await asyncio.to_thread(self.local_store.load, pdf_path)
        except (LocalPersistenceError, MalformedAnnotationData):
            logger.error("Failed to load local annotations for %s", pdf_path, exc_info=True)
            return []

    # ======================
    # Mutations
    # ======================

    async def add_annotation(self, pdf_path: str, annotation: Annotation) -> SyncOutcome:
        """
        Add an annotation to a document.

        Args:
            pdf_path: Path of the document
            annotation: The new annotation; its id must not already be in use

        Returns:
            The per-store outcome

        Raises:
            PDFProcessingException: if the id is already in use
            AnnotationSaveError: if the local save failed
        """
        async with self._lock_for(pdf_path):
            logger.info("Adding %s annotation %s to %s", annotation.type, annotation.id, pdf_path)
            if pdf_path not in self.cache:
                # Load first so the full-list save cannot drop stored annotations
                self.cache.put(pdf_path, await self._load(pdf_path))

            if _index_of(self.cache.get(pdf_path), annotation.id) is not None:
                raise PDFProcessingException(
                    f"Annotation id already in use: {annotation.id}",
                    file_path=pdf_path,
                    operation='add',
                )

            self.cache.append(pdf_path, annotation)
            remote = await self._mirror(PendingRemoteOp.create(pdf_path, annotation))
            return await self._save_local(pdf_path, 'add', remote)

    async def update_annotation(self, pdf_path: str, annotation: Annotation) -> SyncOutcome:
        """
        Replace the stored annotation that has the same id.

        Raises:
            AnnotationNotFound: if the document has no cached annotations or
                none with this id; no store is touched
            AnnotationSaveError: if the local save failed
        """
        async with self._lock_for(pdf_path):
            logger.info("Updating annotation %s on %s", annotation.id, pdf_path)
            annotations = self._cached_list(pdf_path, annotation.id)
            index = _index_of(annotations, annotation.id)
            if index is None:
                raise AnnotationNotFound(annotation.id, pdf_path)

            annotations[index] = annotation
            remote = await self._mirror(PendingRemoteOp.update(pdf_path, annotation))
            return await self._save_local(pdf_path, 'update', remote)

    async def delete_annotation(self, pdf_path: str, annotation_id: str) -> SyncOutcome:
        """
        Remove an annotation by id.

        Raises:
            AnnotationNotFound: if the document has no cached annotations or
                none with this id; no store is touched
            AnnotationSaveError: if the local save failed
        """
        async with self._lock_for(pdf_path):
            logger.info("Deleting annotation %s from %s", annotation_id, pdf_path)
            annotations = self._cached_list(pdf_path, annotation_id)
            index = _index_of(annotations, annotation_id)
            if index is None:
                raise AnnotationNotFound(annotation_id, pdf_path)

            del annotations[index]
            remote = await self._mirror(PendingRemoteOp.delete(pdf_path, annotation_id))
            return await self._save_local(pdf_path, 'delete', remote)

    async def clear_annotations(self, pdf_path: str) -> SyncOutcome:
        """
        Remove every annotation of a document from the cache and both stores.

        Store failures are logged and reported in the outcome, never raised.
        """
        async with self._lock_for(pdf_path):
            logger.info("Clearing all annotations for %s", pdf_path)
            self.cache.remove_document(pdf_path)
            remote = await self._mirror(PendingRemoteOp.clear(pdf_path))

            try:
                await asyncio.to_thread(self.local_store.clear, pdf_path)
                local = StoreResult.success()
            except LocalPersistenceError as e:
                logger.error("Failed to delete local annotations for %s: %s", pdf_path, e)
                local = StoreResult.failed(e)

            return SyncOutcome(pdf_path, 'clear', local, remote)

    def forget(self, pdf_path: str) -> None:
        """Drop a document from the cache without touching its stored copies."""
        self.cache.remove_document(pdf_path)
        self._locks.pop(pdf_path, None)

    # ======================
    # Export / import
    # ======================

    async def export_annotations(self, pdf_path: str) -> str:
        """
        Serialize a document's annotations for backup.

        Returns:
            JSON text with ``pdfPath``, ``exportedAt`` and ``annotations``
        """
        annotations = await self.get_annotations(pdf_path)
        return json.dumps({
            'pdfPath': pdf_path,
            'exportedAt': utc_now().isoformat(),
            'annotations': [ann.to_dict() for ann in annotations],
        }, indent=2)

    async def import_annotations(self, pdf_path: str, json_data: str) -> SyncOutcome:
        """
        Replace a document's annotations with a previously exported set.

        The whole payload is validated before anything changes, so a bad
        payload leaves the cached and stored annotations as they were. The
        remote store is not written.

        Raises:
            MalformedAnnotationData: if the payload is not a valid export
            UnknownAnnotationType: if any record has an unknown type
            AnnotationSaveError: if the local save failed
        """
        annotations = parse_export(json_data)

        async with self._lock_for(pdf_path):
            self.cache.put(pdf_path, annotations)
            outcome = await self._save_local(pdf_path, 'import', StoreResult.skipped())
            logger.info("Imported %d annotations into %s", len(annotations), pdf_path)
            return outcome

    # ======================
    # Remote retry
    # ======================

    async def retry_pending_remote(self) -> int:
        """
        Deliver queued remote writes.

        Returns:
            Number of operations delivered
        """
        if not self.remote_enabled or self.journal is None or not len(self.journal):
            return 0
        return await self.journal.replay(self.remote_store)

    # ======================
    # Internals
    # ======================

    def _lock_for(self, pdf_path: str) -> asyncio.Lock:
        lock = self._locks.get(pdf_path)
        if lock is None:
            lock = self._locks[pdf_path] = asyncio.Lock()
        return lock

    def _cached_list(self, pdf_path: str, annotation_id: str) -> List[Annotation]:
        if pdf_path not in self.cache:
            raise AnnotationNotFound(annotation_id, pdf_path,
                                     message="No annotations loaded for this PDF")
        return self.cache.get(pdf_path)

    async def _mirror(self, op: PendingRemoteOp) -> StoreResult:
        """Send one mutation to the remote store. Never raises."""
        if not self.remote_enabled:
            return StoreResult.skipped()

        if self.journal is not None and self.journal.has_pending(op.pdf_path):
            await self.journal.replay(self.remote_store, op.pdf_path)
            if self.journal.has_pending(op.pdf_path):
                # Keep this document's remote writes in order
                await self.journal.record(op)
                return StoreResult.deferred()

        try:
            await op.apply(self.remote_store)
        except Exception as e:
            logger.warning("Remote %s failed for %s, continuing with local copy: %s",
                           op.operation, op.pdf_path, e)
            if self.journal is not None:
                op.attempts = 1
                await self.journal.record(op)
            return StoreResult.failed(e)
        return StoreResult.success()

    async def _save_local(self, pdf_path: str, operation: str,
                          remote: StoreResult) -> SyncOutcome:
        snapshot = list(self.cache.get(pdf_path))
        try:
            await asyncio.to_thread(self.local_store.save, pdf_path, snapshot)
        except LocalPersistenceError as e:
            logger.error("Failed to save annotations for %s after %s", pdf_path, operation,
                         exc_info=True)
            outcome = SyncOutcome(pdf_path, operation, StoreResult.failed(e), remote)
            raise AnnotationSaveError(
                "Failed to save annotations",
                outcome=outcome,
                original_error=e,
                file_path=pdf_path,
                operation=operation,
            ) from e

        logger.debug("%s on %s saved locally (remote: %s)", operation, pdf_path, remote.status.value)
        return SyncOutcome(pdf_path, operation, StoreResult.success(), remote)


def parse_export(json_data: str) -> List[Annotation]:
    """
    Parse and validate an exported annotation document.

    Raises:
        MalformedAnnotationData: for invalid JSON, a missing annotations
            array, a bad record or duplicate ids
        UnknownAnnotationType: for a record with an unknown type
    """
    try:
        data = json.loads(json_data)
    except (TypeError, ValueError) as e:
        raise MalformedAnnotationData("Import data is not valid JSON", original_error=e,
                                      operation='import') from e

    if not isinstance(data, dict) or 'annotations' not in data:
        raise MalformedAnnotationData("Import data has no 'annotations' array", operation='import')

    annotations = annotations_from_list(data['annotations'])

    seen = set()
    for ann in annotations:
        if ann.id in seen:
            raise MalformedAnnotationData(f"Duplicate annotation id in import: {ann.id}",
                                          operation='import')
        seen.add(ann.id)
    return annotations


def _index_of(annotations: List[Annotation], annotation_id: str) -> Optional[int]:
    for index, ann in enumerate(annotations):
        if ann.id == annotation_id:
            return index
    return None
