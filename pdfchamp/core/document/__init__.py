"""
Writing annotations into PDF documents.
"""
from .pdf_exporter import AnnotationPdfExporter
from .export_worker import ExportWorker

__all__ = ['AnnotationPdfExporter', 'ExportWorker']
