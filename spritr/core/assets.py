# spritr/core/assets.py
from __future__ import annotations
import enum
import functools
import uuid
from dataclasses import dataclass, field
from typing import ClassVar, Dict, List, Optional, Tuple

from app_config import MAX_PIVOTS
from spritr.core.image import Raster

Point = Tuple[int, int]

# Composite child with no parent / composite with no root
NO_PARENT = -1


class AssetKind(enum.Enum):
    PART = "part"
    COMPOSITE = "composite"
    FOLDER = "folder"


@functools.total_ordering
class AssetRef:
    """
    Typed opaque identity of a Folder, Part or Composite.
    Two null refs are equal whatever their kind; otherwise both the uuid
    and the kind must match.
    """
    __slots__ = ("uuid", "kind")

    def __init__(self, uid: Optional[uuid.UUID], kind: AssetKind):
        self.uuid = uid
        self.kind = kind

    @classmethod
    def null(cls, kind: AssetKind = AssetKind.FOLDER) -> "AssetRef":
        return cls(None, kind)

    @classmethod
    def create(cls, kind: AssetKind) -> "AssetRef":
        return cls(uuid.uuid4(), kind)

    @classmethod
    def parse(cls, text: str, kind: AssetKind) -> "AssetRef":
        """Accepts braced ``{...}`` and bare forms. Raises ValueError."""
        return cls(uuid.UUID(text), kind)

    def is_null(self) -> bool:
        return self.uuid is None

    def to_string(self) -> str:
        return "" if self.uuid is None else "{%s}" % self.uuid

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AssetRef):
            return NotImplemented
        if self.uuid is None and other.uuid is None:
            return True
        return self.uuid == other.uuid and self.kind == other.kind

    def __lt__(self, other: "AssetRef") -> bool:
        # identity only; null sorts first
        if not isinstance(other, AssetRef):
            return NotImplemented
        if other.uuid is None:
            return False
        if self.uuid is None:
            return True
        return self.uuid < other.uuid

    def __hash__(self) -> int:
        return hash(self.uuid)

    def __repr__(self) -> str:
        return f"AssetRef({self.kind.value}, {self.to_string() or 'null'})"


def _null_folder() -> AssetRef:
    return AssetRef.null(AssetKind.FOLDER)


@dataclass
class Asset:
    """Shared surface of every asset: identity, name and containing folder."""
    kind: ClassVar[AssetKind]

    ref: AssetRef
    name: str = ""
    parent: AssetRef = field(default_factory=_null_folder)


@dataclass
class Folder(Asset):
    kind: ClassVar[AssetKind] = AssetKind.FOLDER


def _empty_pivots() -> List[Point]:
    return [(0, 0)] * MAX_PIVOTS


@dataclass
class Frame:
    raster: Raster
    anchor: Point = (0, 0)
    pivots: List[Point] = field(default_factory=_empty_pivots)


@dataclass
class Mode:
    width: int
    height: int
    num_pivots: int = 0
    frames_per_second: int = 0
    frames: List[Frame] = field(default_factory=list)

    @property
    def num_frames(self) -> int:
        return len(self.frames)


@dataclass
class Part(Asset):
    kind: ClassVar[AssetKind] = AssetKind.PART

    properties: str = ""
    modes: Dict[str, Mode] = field(default_factory=dict)


@dataclass
class Child:
    part: AssetRef
    parent: int = NO_PARENT
    parent_pivot: int = 0
    z: int = 0
    children: List[int] = field(default_factory=list)
    index: int = 0


@dataclass
class Composite(Asset):
    kind: ClassVar[AssetKind] = AssetKind.COMPOSITE

    properties: str = ""
    root: int = NO_PARENT
    children: List[str] = field(default_factory=list)
    children_map: Dict[str, Child] = field(default_factory=dict)

    def add_child(self, name: str, child: Child) -> Child:
        """Append a child, assigning its positional index."""
        if name in self.children_map:
            raise ValueError(f"composite {self.name!r} already has a child named {name!r}")
        child.index = len(self.children)
        self.children.append(name)
        self.children_map[name] = child
        return child

    def ordered_children(self) -> List[Tuple[str, Child]]:
        return [(n, self.children_map[n]) for n in self.children]


ASSET_TYPES: Dict[AssetKind, type] = {
    AssetKind.FOLDER: Folder,
    AssetKind.PART: Part,
    AssetKind.COMPOSITE: Composite,
}
