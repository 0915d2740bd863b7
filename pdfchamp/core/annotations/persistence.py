"""
Local JSON persistence of annotations, one file per document.
"""
import hashlib
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import List, Optional, Union

from pdfchamp.core.exceptions import (
    ErrorCode,
    LocalPersistenceError,
    MalformedAnnotationData,
)
from pdfchamp.utils.resource_loader import get_annotations_dir

from .models import Annotation, annotations_from_list, utc_now

logger = logging.getLogger(__name__)

FILE_SUFFIX = "_annotations.json"


class LocalAnnotationStore:
    """Saves and loads a document's full annotation list to/from disk."""

    def __init__(self, annotations_dir: Optional[Union[str, Path]] = None):
        """
        Args:
            annotations_dir: Directory holding the JSON files. Defaults to the
                application's private annotations directory.
        """
        self._annotations_dir: Optional[Path] = Path(annotations_dir) if annotations_dir else None

    @property
    def annotations_dir(self) -> Path:
        """Get or create the directory annotation files are stored in."""
        if self._annotations_dir is None:
            self._annotations_dir = get_annotations_dir()
        self._annotations_dir.mkdir(parents=True, exist_ok=True)
        return self._annotations_dir

    def json_path_for(self, pdf_path: str) -> Path:
        """
        Get the JSON file path for a given PDF.

        The filename is a hash of the PDF path, so each document gets its own
        file regardless of where it lives.

        Args:
            pdf_path: Path to the PDF file

        Returns:
            Path to the corresponding JSON annotations file
        """
        path_hash = hashlib.md5(pdf_path.encode('utf-8')).hexdigest()
        return self.annotations_dir / f"{path_hash}{FILE_SUFFIX}"

    def _resolve(self, pdf_path: str, operation: str) -> Path:
        try:
            return self.json_path_for(pdf_path)
        except OSError as e:
            raise LocalPersistenceError(
                "Annotations directory is not available",
                operation=operation,
                original_error=e,
                file_path=str(self._annotations_dir),
            ) from e

    def has_saved_annotations(self, pdf_path: str) -> bool:
        """Check if a JSON file exists for this PDF."""
        return self.json_path_for(pdf_path).exists()

    def load(self, pdf_path: str) -> List[Annotation]:
        """
        Load a document's annotations.

        Args:
            pdf_path: Path to the PDF file

        Returns:
            The stored annotations; an empty list if nothing was saved

        Raises:
            LocalPersistenceError: if the file cannot be read
            MalformedAnnotationData: if the file is not a valid annotation
                document or any single record is invalid
        """
        file_path = self._resolve(pdf_path, "load")
        if not file_path.exists():
            logger.debug("No local annotations file for %s", pdf_path)
            return []

        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise MalformedAnnotationData(
                f"Annotation file is not valid UTF-8 JSON: {file_path}",
                original_error=e,
                file_path=str(file_path),
                operation='load',
            ) from e
        except OSError as e:
            raise LocalPersistenceError(
                "Failed to read annotations",
                operation='load',
                code=ErrorCode.FILE_READ_ERROR,
                original_error=e,
                file_path=str(file_path),
            ) from e

        if not isinstance(data, dict) or 'annotations' not in data:
            raise MalformedAnnotationData(
                f"Annotation file has no 'annotations' array: {file_path}",
                file_path=str(file_path),
                operation='load',
            )

        stored_pdf_path = data.get('pdfPath')
        if stored_pdf_path is not None and stored_pdf_path != pdf_path:
            logger.warning("Annotation file %s belongs to a different PDF: %s",
                           file_path, stored_pdf_path)

        annotations = annotations_from_list(data['annotations'])
        logger.debug("Loaded %d annotations for %s from disk", len(annotations), pdf_path)
        return annotations

    def save(self, pdf_path: str, annotations: List[Annotation]) -> None:
        """
        Write the full annotation list, replacing any previous file.

        The data goes to a temp file first and is moved into place, so a
        failed write never leaves a truncated file behind.

        Raises:
            LocalPersistenceError: if the file cannot be written
        """
        file_path = self._resolve(pdf_path, "save")
        data = {
            'pdfPath': pdf_path,
            'savedAt': utc_now().isoformat(),
            'annotations': [ann.to_dict() for ann in annotations],
        }

        temp_path = None
        try:
            temp_fd, temp_path = tempfile.mkstemp(suffix='.tmp', dir=file_path.parent)
            with os.fdopen(temp_fd, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2)
            os.replace(temp_path, file_path)
        except (OSError, TypeError, ValueError) as e:
            if temp_path and os.path.exists(temp_path):
                os.remove(temp_path)
            raise LocalPersistenceError(
                "Failed to save annotations locally",
                operation='save',
                code=ErrorCode.FILE_WRITE_ERROR,
                original_error=e,
                file_path=str(file_path),
            ) from e

        logger.debug("Saved %d annotations for %s to %s", len(annotations), pdf_path, file_path)

    def clear(self, pdf_path: str) -> None:
        """
        Delete the JSON annotation file for a PDF. Missing files are ignored.

        Raises:
            LocalPersistenceError: if an existing file cannot be removed
        """
        file_path = self._resolve(pdf_path, "clear")
        try:
            file_path.unlink()
        except FileNotFoundError:
            return
        except OSError as e:
            raise LocalPersistenceError(
                "Failed to delete annotations file",
                operation='clear',
                code=ErrorCode.FILE_DELETE_ERROR,
                original_error=e,
                file_path=str(file_path),
            ) from e
        logger.debug("Deleted annotation file %s", file_path)
