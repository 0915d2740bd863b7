"""
Annotation records, their stores, and the service that keeps them in sync.
"""
from .cache import AnnotationCache
from .journal import PendingRemoteOp, RemoteSyncJournal
from .models import (
    Annotation,
    CommentAnnotation,
    CommentReply,
    DrawingAnnotation,
    DrawingPath,
    FontWeight,
    HighlightAnnotation,
    Point,
    Rect,
    RedactionAnnotation,
    ShapeAnnotation,
    ShapeType,
    TextAnnotation,
    annotation_from_dict,
    touch,
)
from .persistence import LocalAnnotationStore
from .remote import RemoteAnnotationStore, connect_remote_store
from .sync import AnnotationSyncService, StoreResult, StoreStatus, SyncOutcome

__all__ = [
    'Annotation',
    'AnnotationCache',
    'AnnotationSyncService',
    'CommentAnnotation',
    'CommentReply',
    'DrawingAnnotation',
    'DrawingPath',
    'FontWeight',
    'HighlightAnnotation',
    'LocalAnnotationStore',
    'PendingRemoteOp',
    'Point',
    'Rect',
    'RedactionAnnotation',
    'RemoteAnnotationStore',
    'RemoteSyncJournal',
    'ShapeAnnotation',
    'ShapeType',
    'StoreResult',
    'StoreStatus',
    'SyncOutcome',
    'TextAnnotation',
    'annotation_from_dict',
    'connect_remote_store',
    'touch',
]
