import logging
import os
import shutil
import tempfile

from PyQt5.QtCore import QThread, pyqtSignal

from .pdf_exporter import AnnotationPdfExporter

logger = logging.getLogger(__name__)


class ExportWorker(QThread):
    """Worker thread for exporting annotations to PDF without freezing the UI."""

    finished = pyqtSignal(bool, str)  # success, message
    progress = pyqtSignal(str)  # status message
    page_progress = pyqtSignal(int, int)  # current, total pages

    def __init__(self, source_pdf, output_pdf, annotations, use_temp_file=False):
        super().__init__()
        self.source_pdf = source_pdf
        self.output_pdf = output_pdf
        self.annotations = list(annotations)
        self.use_temp_file = use_temp_file
        self.temp_path = None
        self.exporter = AnnotationPdfExporter()
        self.exporter.progress_signal.connect(self.page_progress)

    def run(self):
        """Execute the export in a background thread."""
        try:
            target = self.output_pdf
            if self.use_temp_file:
                # Same directory so the final move is a rename
                output_dir = os.path.dirname(os.path.abspath(self.output_pdf))
                temp_fd, self.temp_path = tempfile.mkstemp(suffix='.pdf', dir=output_dir)
                os.close(temp_fd)
                target = self.temp_path

            self.progress.emit("Exporting annotations...")
            success = self.exporter.export_annotations_to_pdf(self.source_pdf, target, self.annotations)

            if not success:
                self._remove_temp_file()
                self.finished.emit(False, "Failed to export annotations to PDF.")
                return

            if self.temp_path:
                self.progress.emit("Finalizing...")
                shutil.move(self.temp_path, self.output_pdf)
                self.temp_path = None

            self.finished.emit(True, "Annotations saved successfully to PDF!")

        except Exception as e:
            logger.error("Export to %s failed: %s", self.output_pdf, e, exc_info=True)
            self._remove_temp_file()
            self.finished.emit(False, f"Error during export: {e}")

    def _remove_temp_file(self):
        if self.temp_path and os.path.exists(self.temp_path):
            os.remove(self.temp_path)
        self.temp_path = None
