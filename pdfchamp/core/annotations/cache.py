"""
Process-lifetime cache of annotation lists keyed by document path.
"""
from typing import Dict, Iterator, List

from .models import Annotation


class AnnotationCache:
    """
    Maps a document path to its annotation list, in insertion order.

    There is no expiry; entries live until removed. Access is expected from
    a single event loop, so no locking is done here.
    """

    def __init__(self):
        self._entries: Dict[str, List[Annotation]] = {}

    def __contains__(self, pdf_path: str) -> bool:
        return pdf_path in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, pdf_path: str) -> List[Annotation]:
        """
        Get the cached list for a document.

        Args:
            pdf_path: Path of the document

        Returns:
            The cached list, or an empty list if the path has not been seen
        """
        return self._entries.get(pdf_path, [])

    def put(self, pdf_path: str, annotations: List[Annotation]) -> None:
        """Replace the cached list for a document wholesale."""
        self._entries[pdf_path] = list(annotations)

    def append(self, pdf_path: str, annotation: Annotation) -> None:
        """Append an annotation, creating the entry for unseen paths."""
        self._entries.setdefault(pdf_path, []).append(annotation)

    def remove_document(self, pdf_path: str) -> None:
        """Evict a document entirely. Unknown paths are ignored."""
        self._entries.pop(pdf_path, None)

    def page(self, pdf_path: str, page_number: int) -> List[Annotation]:
        """Get the cached annotations on one page of a document."""
        return [ann for ann in self.get(pdf_path) if ann.page_number == page_number]

    def paths(self) -> Iterator[str]:
        return iter(list(self._entries))

    def clear(self) -> None:
        self._entries.clear()
