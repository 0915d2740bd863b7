"""
Controller for managing annotation operations.
"""
import asyncio
import logging
from pathlib import Path
from typing import List, Optional

import pyperclip
from PyQt5.QtCore import QObject, pyqtSignal

from pdfchamp.core.annotations import Annotation, AnnotationSyncService, SyncOutcome
from pdfchamp.core.exceptions import (
    AnnotationNotFound,
    AnnotationSaveError,
    MalformedAnnotationData,
    PDFProcessingException,
    user_message,
)

logger = logging.getLogger(__name__)

REMOTE_DEGRADED_MESSAGE = "Cloud sync is unavailable; changes are saved on this device only."


class AnnotationController(QObject):
    """Connects the annotation sync service to the open document and the UI."""

    # Signals
    annotations_changed = pyqtSignal(str)  # pdf path
    save_failed = pyqtSignal(str)  # user-facing message
    remote_sync_degraded = pyqtSignal(str)  # user-facing message

    def __init__(self, sync_service: AnnotationSyncService, parent: Optional[QObject] = None):
        super().__init__(parent)
        self.sync_service = sync_service
        self.current_pdf_path: Optional[str] = None

    async def open_document(self, pdf_path: str) -> List[Annotation]:
        """
        Make ``pdf_path`` the current document and load its annotations.

        Args:
            pdf_path: Path of the opened PDF

        Returns:
            The document's annotations
        """
        self.current_pdf_path = pdf_path
        annotations = await self.sync_service.get_annotations(pdf_path)
        logger.info("Opened %s with %d annotations", pdf_path, len(annotations))
        self.annotations_changed.emit(pdf_path)
        return annotations

    def close_document(self) -> None:
        """Forget the current document; stored annotations are kept."""
        if self.current_pdf_path is not None:
            self.sync_service.forget(self.current_pdf_path)
            self.current_pdf_path = None

    def annotations_for_page(self, page_number: int) -> List[Annotation]:
        """Get the current document's annotations on one page."""
        if self.current_pdf_path is None:
            return []
        return self.sync_service.get_page_annotations(self.current_pdf_path, page_number)

    async def add_annotation(self, annotation: Annotation) -> bool:
        """
        Add an annotation to the current document.

        Returns:
            True if the annotation was saved locally
        """
        pdf_path = self._require_document('add')
        if pdf_path is None:
            return False
        try:
            outcome = await self.sync_service.add_annotation(pdf_path, annotation)
        except AnnotationSaveError as e:
            self._on_save_error(pdf_path, e)
            return False
        except PDFProcessingException as e:
            logger.warning("Could not add annotation %s: %s", annotation.id, e.message)
            return False
        self._on_outcome(outcome)
        return True

    async def update_annotation(self, annotation: Annotation) -> bool:
        """
        Replace the annotation with the same id.

        Returns:
            True if the annotation was found and saved locally
        """
        pdf_path = self._require_document('update')
        if pdf_path is None:
            return False
        try:
            outcome = await self.sync_service.update_annotation(pdf_path, annotation)
        except AnnotationNotFound as e:
            logger.warning("Could not update annotation: %s", e.message)
            return False
        except AnnotationSaveError as e:
            self._on_save_error(pdf_path, e)
            return False
        self._on_outcome(outcome)
        return True

    async def delete_annotation(self, annotation_id: str) -> bool:
        """
        Delete an annotation by id.

        Returns:
            True if the annotation was found and the deletion saved locally
        """
        pdf_path = self._require_document('delete')
        if pdf_path is None:
            return False
        try:
            outcome = await self.sync_service.delete_annotation(pdf_path, annotation_id)
        except AnnotationNotFound as e:
            logger.warning("Could not delete annotation: %s", e.message)
            return False
        except AnnotationSaveError as e:
            self._on_save_error(pdf_path, e)
            return False
        self._on_outcome(outcome)
        return True

    async def clear_annotations(self) -> bool:
        """
        Remove every annotation from the current document.

        Returns:
            True if the local copy was removed
        """
        pdf_path = self._require_document('clear')
        if pdf_path is None:
            return False
        outcome = await self.sync_service.clear_annotations(pdf_path)
        if not outcome.local.ok:
            self.save_failed.emit(user_message(outcome.local.error))
        self._on_outcome(outcome)
        return outcome.succeeded

    async def export_to_file(self, file_path: str) -> bool:
        """
        Write the current document's annotations to a JSON backup file.

        Returns:
            True if the file was written
        """
        pdf_path = self._require_document('export')
        if pdf_path is None:
            return False
        data = await self.sync_service.export_annotations(pdf_path)
        try:
            await asyncio.to_thread(Path(file_path).write_text, data, encoding='utf-8')
        except OSError as e:
            logger.error("Failed to write annotation export %s: %s", file_path, e)
            return False
        logger.info("Exported annotations of %s to %s", pdf_path, file_path)
        return True

    async def import_from_file(self, file_path: str) -> bool:
        """
        Replace the current document's annotations with a JSON backup file.

        Returns:
            True if the backup was valid and saved locally
        """
        pdf_path = self._require_document('import')
        if pdf_path is None:
            return False
        try:
            data = await asyncio.to_thread(Path(file_path).read_text, encoding='utf-8')
        except OSError as e:
            logger.error("Failed to read annotation import %s: %s", file_path, e)
            return False

        try:
            outcome = await self.sync_service.import_annotations(pdf_path, data)
        except MalformedAnnotationData as e:
            logger.error("Rejected annotation import %s: %s", file_path, e.message)
            return False
        except AnnotationSaveError as e:
            self._on_save_error(pdf_path, e)
            return False
        self._on_outcome(outcome)
        return True

    async def copy_export_to_clipboard(self) -> bool:
        """Copy the current document's annotation export to the clipboard."""
        pdf_path = self._require_document('copy')
        if pdf_path is None:
            return False
        data = await self.sync_service.export_annotations(pdf_path)
        try:
            pyperclip.copy(data)
        except pyperclip.PyperclipException as e:
            logger.error("Failed to copy annotations to clipboard: %s", e)
            return False
        return True

    def _require_document(self, operation: str) -> Optional[str]:
        if self.current_pdf_path is None:
            logger.warning("Cannot %s annotations: no document is open", operation)
        return self.current_pdf_path

    def _on_outcome(self, outcome: SyncOutcome) -> None:
        if outcome.remote_degraded:
            self.remote_sync_degraded.emit(REMOTE_DEGRADED_MESSAGE)
        self.annotations_changed.emit(outcome.pdf_path)

    def _on_save_error(self, pdf_path: str, error: AnnotationSaveError) -> None:
        self.save_failed.emit(user_message(error))
        # The cache already holds the change even though the disk does not
        if error.outcome is not None and error.outcome.remote_degraded:
            self.remote_sync_degraded.emit(REMOTE_DEGRADED_MESSAGE)
        self.annotations_changed.emit(pdf_path)
