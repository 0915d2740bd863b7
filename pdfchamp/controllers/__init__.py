"""
Controllers connecting annotation storage to the viewer.
"""
from .annotation_controller import AnnotationController

__all__ = ['AnnotationController']
