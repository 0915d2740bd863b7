"""
Annotation records and their JSON representation.

Six variants share a common header (id, page, timestamps, author, color,
opacity). Every variant declares its ``TYPE`` discriminator; the set of
variants is closed and ``annotation_from_dict`` rejects any tag it does not
know instead of dropping the record.
"""
import dataclasses
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import Any, ClassVar, Dict, List, Optional, Type, Union

from pdfchamp.core.exceptions import MalformedAnnotationData, UnknownAnnotationType

BLACK = 0xFF000000
YELLOW = 0xFFFFFF00


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ==============================================================================
# Geometry
# ==============================================================================


@dataclass
class Rect:
    """Axis-aligned rectangle in page coordinates."""

    left: float
    top: float
    right: float
    bottom: float

    @property
    def width(self) -> float:
        return self.right - self.left

    @property
    def height(self) -> float:
        return self.bottom - self.top

    def normalized(self) -> "Rect":
        """Return the same rectangle with left <= right and top <= bottom."""
        return Rect(
            min(self.left, self.right),
            min(self.top, self.bottom),
            max(self.left, self.right),
            max(self.top, self.bottom),
        )

    def to_dict(self) -> Dict[str, float]:
        return {
            'left': self.left,
            'top': self.top,
            'right': self.right,
            'bottom': self.bottom,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "Rect":
        return Rect(
            left=_number(data['left']),
            top=_number(data['top']),
            right=_number(data['right']),
            bottom=_number(data['bottom']),
        )


@dataclass
class Point:
    """A 2D point (offset from the page origin)."""

    dx: float
    dy: float

    def to_dict(self) -> Dict[str, float]:
        return {'dx': self.dx, 'dy': self.dy}

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "Point":
        return Point(dx=_number(data['dx']), dy=_number(data['dy']))


# ==============================================================================
# Variant helpers
# ==============================================================================


class ShapeType(Enum):
    RECTANGLE = "rectangle"
    CIRCLE = "circle"
    LINE = "line"
    ARROW = "arrow"


class FontWeight(IntEnum):
    """Font weights, stored by index (w100 == 0 ... w900 == 8)."""

    W100 = 0
    W200 = 1
    W300 = 2
    W400 = 3
    W500 = 4
    W600 = 5
    W700 = 6
    W800 = 7
    W900 = 8

    NORMAL = 3
    BOLD = 6

    @property
    def css_weight(self) -> int:
        return (self.value + 1) * 100


@dataclass
class CommentReply:
    """A threaded reply under a comment annotation."""

    id: str
    author: str
    text: str
    created_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'author': self.author,
            'text': self.text,
            'createdAt': self.created_at.isoformat(),
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "CommentReply":
        return CommentReply(
            id=_string(data['id']),
            author=_string(data['author']),
            text=_string(data['text']),
            created_at=_parse_time(data['createdAt']),
        )


@dataclass
class DrawingPath:
    """One freehand stroke: an ordered list of points."""

    points: List[Point] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {'points': [p.to_dict() for p in self.points]}

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "DrawingPath":
        return DrawingPath(points=[Point.from_dict(p) for p in _list(data['points'])])


# ==============================================================================
# Annotations
# ==============================================================================


@dataclass(kw_only=True)
class AnnotationBase:
    """Fields shared by every annotation variant."""

    TYPE: ClassVar[str] = ""
    DEFAULT_OPACITY: ClassVar[float] = 1.0

    id: str
    page_number: int
    created_at: datetime = field(default_factory=utc_now)
    modified_at: Optional[datetime] = None
    author: Optional[str] = None
    color: int = YELLOW
    opacity: Optional[float] = None

    def __post_init__(self):
        if self.opacity is None:
            self.opacity = self.DEFAULT_OPACITY

    @property
    def type(self) -> str:
        return self.TYPE

    def to_dict(self) -> Dict[str, Any]:
        """Convert annotation to dictionary for JSON serialization."""
        data = {
            'id': self.id,
            'type': self.TYPE,
            'pageNumber': self.page_number,
            'createdAt': self.created_at.isoformat(),
            'modifiedAt': self.modified_at.isoformat() if self.modified_at else None,
            'author': self.author,
            'color': self.color,
            'opacity': self.opacity,
        }
        data.update(self._variant_dict())
        return data

    def _variant_dict(self) -> Dict[str, Any]:
        raise NotImplementedError

    @classmethod
    def _common_fields(cls, data: Dict[str, Any]) -> Dict[str, Any]:
        page_number = data['pageNumber']
        if isinstance(page_number, bool) or not isinstance(page_number, int):
            raise TypeError(f"pageNumber must be an integer, got {page_number!r}")
        if page_number < 0:
            raise ValueError(f"pageNumber must be non-negative, got {page_number}")

        opacity = data.get('opacity')
        opacity = cls.DEFAULT_OPACITY if opacity is None else _number(opacity)
        if not 0.0 <= opacity <= 1.0:
            raise ValueError(f"opacity out of range: {opacity}")

        modified_at = data.get('modifiedAt')
        author = data.get('author')
        return {
            'id': _string(data['id']),
            'page_number': page_number,
            'created_at': _parse_time(data['createdAt']),
            'modified_at': _parse_time(modified_at) if modified_at is not None else None,
            'author': _string(author) if author is not None else None,
            'color': _color(data.get('color', cls._default_color())),
            'opacity': opacity,
        }

    @classmethod
    def _default_color(cls) -> int:
        return YELLOW


@dataclass(kw_only=True)
class HighlightAnnotation(AnnotationBase):
    TYPE: ClassVar[str] = "highlight"
    DEFAULT_OPACITY: ClassVar[float] = 0.3

    rect: Rect
    selected_text: Optional[str] = None

    def _variant_dict(self) -> Dict[str, Any]:
        return {'rect': self.rect.to_dict(), 'selectedText': self.selected_text}

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "HighlightAnnotation":
        selected_text = data.get('selectedText')
        return HighlightAnnotation(
            **HighlightAnnotation._common_fields(data),
            rect=Rect.from_dict(data['rect']),
            selected_text=_string(selected_text) if selected_text is not None else None,
        )


@dataclass(kw_only=True)
class CommentAnnotation(AnnotationBase):
    TYPE: ClassVar[str] = "comment"

    position: Point
    comment: str
    replies: List[CommentReply] = field(default_factory=list)

    def _variant_dict(self) -> Dict[str, Any]:
        return {
            'position': self.position.to_dict(),
            'comment': self.comment,
            'replies': [r.to_dict() for r in self.replies],
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "CommentAnnotation":
        replies = data.get('replies') or []
        return CommentAnnotation(
            **CommentAnnotation._common_fields(data),
            position=Point.from_dict(data['position']),
            comment=_string(data['comment']),
            replies=[CommentReply.from_dict(r) for r in _list(replies)],
        )


@dataclass(kw_only=True)
class DrawingAnnotation(AnnotationBase):
    TYPE: ClassVar[str] = "drawing"

    paths: List[DrawingPath] = field(default_factory=list)
    stroke_width: float = 2.0

    def _variant_dict(self) -> Dict[str, Any]:
        return {
            'paths': [p.to_dict() for p in self.paths],
            'strokeWidth': self.stroke_width,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "DrawingAnnotation":
        return DrawingAnnotation(
            **DrawingAnnotation._common_fields(data),
            paths=[DrawingPath.from_dict(p) for p in _list(data['paths'])],
            stroke_width=_number(data['strokeWidth']),
        )


@dataclass(kw_only=True)
class TextAnnotation(AnnotationBase):
    TYPE: ClassVar[str] = "text"

    position: Point
    text: str
    font_family: str = "Roboto"
    font_size: float = 14.0
    font_weight: FontWeight = FontWeight.NORMAL

    def _variant_dict(self) -> Dict[str, Any]:
        return {
            'position': self.position.to_dict(),
            'text': self.text,
            'fontFamily': self.font_family,
            'fontSize': self.font_size,
            'fontWeight': int(self.font_weight),
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "TextAnnotation":
        font_size = data.get('fontSize')
        font_weight = data.get('fontWeight')
        return TextAnnotation(
            **TextAnnotation._common_fields(data),
            position=Point.from_dict(data['position']),
            text=_string(data['text']),
            font_family=_string(data.get('fontFamily') or "Roboto"),
            font_size=_number(font_size) if font_size is not None else 14.0,
            font_weight=FontWeight(font_weight) if font_weight is not None else FontWeight.NORMAL,
        )


@dataclass(kw_only=True)
class ShapeAnnotation(AnnotationBase):
    TYPE: ClassVar[str] = "shape"

    shape_type: ShapeType
    bounds: Rect
    stroke_width: float = 2.0
    filled: bool = False

    def _variant_dict(self) -> Dict[str, Any]:
        return {
            'shapeType': self.shape_type.value,
            'bounds': self.bounds.to_dict(),
            'strokeWidth': self.stroke_width,
            'filled': self.filled,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "ShapeAnnotation":
        return ShapeAnnotation(
            **ShapeAnnotation._common_fields(data),
            shape_type=ShapeType(data['shapeType']),
            bounds=Rect.from_dict(data['bounds']),
            stroke_width=_number(data['strokeWidth']),
            filled=_bool(data.get('filled', False)),
        )


@dataclass(kw_only=True)
class RedactionAnnotation(AnnotationBase):
    TYPE: ClassVar[str] = "redaction"

    color: int = BLACK
    rect: Rect
    replacement_text: Optional[str] = None

    def _variant_dict(self) -> Dict[str, Any]:
        return {'rect': self.rect.to_dict(), 'replacementText': self.replacement_text}

    @classmethod
    def _default_color(cls) -> int:
        return BLACK

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "RedactionAnnotation":
        replacement = data.get('replacementText')
        return RedactionAnnotation(
            **RedactionAnnotation._common_fields(data),
            rect=Rect.from_dict(data['rect']),
            replacement_text=_string(replacement) if replacement is not None else None,
        )


Annotation = Union[
    HighlightAnnotation,
    CommentAnnotation,
    DrawingAnnotation,
    TextAnnotation,
    ShapeAnnotation,
    RedactionAnnotation,
]

ANNOTATION_TYPES: Dict[str, Type[AnnotationBase]] = {
    cls.TYPE: cls
    for cls in (
        HighlightAnnotation,
        CommentAnnotation,
        DrawingAnnotation,
        TextAnnotation,
        ShapeAnnotation,
        RedactionAnnotation,
    )
}


def annotation_from_dict(data: Any) -> Annotation:
    """
    Build the annotation variant selected by ``data["type"]``.

    Args:
        data: Decoded JSON object for one annotation

    Returns:
        The deserialized annotation

    Raises:
        UnknownAnnotationType: if the discriminator names no known variant
        MalformedAnnotationData: if the record is structurally invalid
    """
    if not isinstance(data, dict):
        raise MalformedAnnotationData(f"Annotation must be an object, got {type(data).__name__}")
    if 'type' not in data:
        raise MalformedAnnotationData("Annotation is missing its 'type' field")

    type_tag = data['type']
    cls = ANNOTATION_TYPES.get(type_tag) if isinstance(type_tag, str) else None
    if cls is None:
        raise UnknownAnnotationType(type_tag)

    try:
        return cls.from_dict(data)
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise MalformedAnnotationData(
            f"Invalid {type_tag} annotation {data.get('id')!r}: {e!r}",
            original_error=e,
        ) from e


def annotations_from_list(items: Any) -> List[Annotation]:
    """Deserialize a JSON array of annotations; the first bad record aborts."""
    if not isinstance(items, list):
        raise MalformedAnnotationData(f"'annotations' must be an array, got {type(items).__name__}")
    return [annotation_from_dict(item) for item in items]


def touch(annotation: Annotation, **changes) -> Annotation:
    """Return a copy of ``annotation`` with ``changes`` applied and a fresh modified time."""
    changes.setdefault('modified_at', utc_now())
    return dataclasses.replace(annotation, **changes)


def argb_to_rgb(color: int) -> List[float]:
    """Split a 32-bit ARGB integer into [r, g, b] in the 0-1 range."""
    return [((color >> shift) & 0xFF) / 255.0 for shift in (16, 8, 0)]


# ==============================================================================
# Field coercion
# ==============================================================================


def _number(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"expected a number, got {value!r}")
    return float(value)


def _string(value: Any) -> str:
    if not isinstance(value, str):
        raise TypeError(f"expected a string, got {value!r}")
    return value


def _bool(value: Any) -> bool:
    if not isinstance(value, bool):
        raise TypeError(f"expected true or false, got {value!r}")
    return value


def _list(value: Any) -> list:
    if not isinstance(value, list):
        raise TypeError(f"expected an array, got {value!r}")
    return value


def _color(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"color must be an ARGB integer, got {value!r}")
    if not 0 <= value <= 0xFFFFFFFF:
        raise ValueError(f"color out of 32-bit range: {value}")
    return value


def _parse_time(value: Any) -> datetime:
    text = _string(value)
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    return datetime.fromisoformat(text)
