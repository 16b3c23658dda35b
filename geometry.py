"""
Axis-aligned rectangles in pixel coordinates.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class Rect:
    """Rectangle with an inclusive top-left corner and exclusive right/bottom edges."""
    x: int
    y: int
    width: int
    height: int

    @classmethod
    def from_ltrb(cls, left: int, top: int, right: int, bottom: int) -> 'Rect':
        return cls(left, top, right - left, bottom - top)

    @classmethod
    def from_size(cls, size) -> 'Rect':
        """Rectangle at the origin covering a (width, height) size."""
        return cls(0, 0, size[0], size[1])

    @property
    def left(self) -> int:
        return self.x

    @property
    def top(self) -> int:
        return self.y

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    @property
    def area(self) -> int:
        if self.is_empty:
            return 0
        return self.width * self.height

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    def intersect(self, other: 'Rect') -> 'Rect':
        """Overlapping part of both rectangles, or an empty rectangle when disjoint."""
        left = max(self.left, other.left)
        top = max(self.top, other.top)
        right = min(self.right, other.right)
        bottom = min(self.bottom, other.bottom)
        if right <= left or bottom <= top:
            return Rect(0, 0, 0, 0)
        return Rect.from_ltrb(left, top, right, bottom)

    def union(self, other: 'Rect') -> 'Rect':
        """Smallest rectangle containing both rectangles."""
        if self.is_empty:
            return other
        if other.is_empty:
            return self
        return Rect.from_ltrb(
            min(self.left, other.left),
            min(self.top, other.top),
            max(self.right, other.right),
            max(self.bottom, other.bottom)
        )

    def contains(self, other: 'Rect') -> bool:
        return (other.left >= self.left and other.top >= self.top and
                other.right <= self.right and other.bottom <= self.bottom)

    def to_tuple(self):
        return (self.x, self.y, self.width, self.height)


@dataclass(frozen=True)
class Match:
    """A detected occurrence of the target: its zone in source pixels and a similarity in [0, 1]."""
    zone: Rect
    similarity: float

    def to_dict(self) -> dict:
        return {
            'x': self.zone.x,
            'y': self.zone.y,
            'width': self.zone.width,
            'height': self.zone.height,
            'similarity': float(self.similarity)
        }
