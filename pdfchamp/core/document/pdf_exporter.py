import logging
from typing import Dict, List

import fitz  # PyMuPDF
from PyQt5.QtCore import QObject, pyqtSignal

from pdfchamp.core.annotations.models import (
    Annotation,
    CommentAnnotation,
    DrawingAnnotation,
    HighlightAnnotation,
    Rect,
    RedactionAnnotation,
    ShapeAnnotation,
    ShapeType,
    TextAnnotation,
    argb_to_rgb,
)

logger = logging.getLogger(__name__)


def _to_fitz_rect(rect: Rect) -> fitz.Rect:
    r = rect.normalized()
    return fitz.Rect(r.left, r.top, r.right, r.bottom)


class AnnotationPdfExporter(QObject):
    """Burns stored annotations into a copy of a PDF."""

    progress_signal = pyqtSignal(int, int)  # current, total

    def __init__(self):
        super().__init__()

    def export_annotations_to_pdf(self, source_pdf_path: str, output_pdf_path: str,
                                  annotations: List[Annotation]) -> bool:
        """
        Export annotations to a PDF file with progress updates.

        Args:
            source_pdf_path: Path to the original PDF
            output_pdf_path: Path where the annotated PDF should be saved
            annotations: Annotations to add to the PDF

        Returns:
            True if successful, False otherwise
        """
        try:
            doc = fitz.open(source_pdf_path)
        except Exception as e:
            logger.error("Failed to open %s for export: %s", source_pdf_path, e)
            return False

        try:
            annotations_by_page: Dict[int, List[Annotation]] = {}
            for ann in annotations:
                annotations_by_page.setdefault(ann.page_number, []).append(ann)

            total_pages = len(annotations_by_page)
            for current, page_number in enumerate(sorted(annotations_by_page)):
                self.progress_signal.emit(current, total_pages)
                if page_number >= len(doc):
                    logger.warning("Skipping %d annotations on page %d of a %d-page document",
                                   len(annotations_by_page[page_number]), page_number, len(doc))
                    continue

                page = doc[page_number]
                redacted = False
                for ann in annotations_by_page[page_number]:
                    redacted |= self._add_annotation_to_page(page, ann)
                if redacted:
                    page.apply_redactions()

            self.progress_signal.emit(total_pages, total_pages)
            doc.save(output_pdf_path, garbage=4, deflate=True)
            logger.info("Exported %d annotations to %s", len(annotations), output_pdf_path)
            return True
        except Exception as e:
            logger.error("Failed to export annotations to PDF: %s", e, exc_info=True)
            return False
        finally:
            doc.close()

    def _add_annotation_to_page(self, page: fitz.Page, annotation: Annotation) -> bool:
        """
        Add a single annotation to a PDF page.

        Returns:
            True if a redaction was added and the page needs redactions applied
        """
        color = argb_to_rgb(annotation.color)

        try:
            if isinstance(annotation, HighlightAnnotation):
                annot = page.add_highlight_annot(_to_fitz_rect(annotation.rect))
                annot.set_colors(stroke=color)

            elif isinstance(annotation, CommentAnnotation):
                content = annotation.comment
                for reply in annotation.replies:
                    content += f"\n\n{reply.author}: {reply.text}"
                point = fitz.Point(annotation.position.dx, annotation.position.dy)
                annot = page.add_text_annot(point, content, icon="Comment")
                annot.set_colors(stroke=color)

            elif isinstance(annotation, DrawingAnnotation):
                # Each path is a separate stroke
                ink_list = [[(p.dx, p.dy) for p in path.points]
                            for path in annotation.paths if len(path.points) >= 2]
                if not ink_list:
                    return False
                annot = page.add_ink_annot(ink_list)
                annot.set_colors(stroke=color)
                annot.set_border(width=annotation.stroke_width)

            elif isinstance(annotation, TextAnnotation):
                annot = page.add_freetext_annot(
                    self._text_box(annotation),
                    annotation.text,
                    fontsize=annotation.font_size,
                    fontname="helv",
                    text_color=color,
                )

            elif isinstance(annotation, ShapeAnnotation):
                annot = self._add_shape(page, annotation, color)

            elif isinstance(annotation, RedactionAnnotation):
                page.add_redact_annot(
                    _to_fitz_rect(annotation.rect),
                    text=annotation.replacement_text,
                    fill=color,
                )
                return True

            else:
                logger.warning("No PDF mapping for %s annotation %s", annotation.type, annotation.id)
                return False

            if annotation.author:
                annot.set_info(title=annotation.author)
            annot.set_opacity(annotation.opacity)
            annot.update()

        except Exception as e:
            logger.warning("Failed to add %s annotation on page %d: %s",
                           annotation.type, annotation.page_number, e)
        return False

    @staticmethod
    def _add_shape(page: fitz.Page, annotation: ShapeAnnotation, color: List[float]):
        bounds = annotation.bounds

        if annotation.shape_type in (ShapeType.LINE, ShapeType.ARROW):
            start = fitz.Point(bounds.left, bounds.top)
            end = fitz.Point(bounds.right, bounds.bottom)
            annot = page.add_line_annot(start, end)
            if annotation.shape_type == ShapeType.ARROW:
                annot.set_line_ends(fitz.PDF_ANNOT_LE_NONE, fitz.PDF_ANNOT_LE_OPEN_ARROW)
            annot.set_colors(stroke=color)
        else:
            rect = _to_fitz_rect(bounds)
            if annotation.shape_type == ShapeType.CIRCLE:
                annot = page.add_circle_annot(rect)
            else:
                annot = page.add_rect_annot(rect)
            if annotation.filled:
                annot.set_colors(stroke=color, fill=color)
            else:
                annot.set_colors(stroke=color)

        annot.set_border(width=annotation.stroke_width)
        return annot

    @staticmethod
    def _text_box(annotation: TextAnnotation) -> fitz.Rect:
        # Rough box from the text extent; free-text annotations need a rect
        lines = annotation.text.splitlines() or [""]
        size = annotation.font_size
        width = max(len(line) for line in lines) * size * 0.6 + 8
        height = len(lines) * size * 1.3 + 8
        x, y = annotation.position.dx, annotation.position.dy
        return fitz.Rect(x, y, x + max(width, size), y + height)
