# spritr/core/errors.py
from __future__ import annotations


class ProjectError(Exception):
    """Base for every failure raised while reading or writing a project."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class ArchiveCorrupt(ProjectError):
    pass


class ImageCorrupt(ProjectError):
    def __init__(self, entry: str, detail: str = "cannot decode image"):
        super().__init__(f"{entry}: {detail}")
        self.entry = entry


class ProjectLoadError(ProjectError):
    """Container or envelope problem; str() is the user-facing reason."""


class UnsupportedVersion(ProjectLoadError):
    def __init__(self, found):
        super().__init__("Internal data.json has an invalid version")
        self.found = found


class SchemaError(ProjectError):
    pass


class DanglingImageReference(ProjectError):
    def __init__(self, image: str, where: str = ""):
        msg = f"Missing image {image!r}"
        super().__init__(f"{msg} referenced by {where}" if where else msg)
        self.image = image


class DanglingAssetReference(ProjectError):
    pass


class DimensionMismatch(ProjectError):
    pass


class FrameCountMismatch(ProjectError):
    pass


class InvalidCompositeTree(ProjectError):
    pass


class ProjectSaveError(ProjectError):
    pass
