# spritr/core/project.py
from __future__ import annotations
import os
import stat
import tempfile
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Union

from app_config import DATA_ENTRY, IMAGE_EXT, PREFS_ENTRY
from spritr.core import archive, image, schema
from spritr.core.assets import (
    ASSET_TYPES, Asset, AssetKind, AssetRef, Composite, Folder, Part,
)
from spritr.core.config import SettingsStore
from spritr.core.errors import (
    ArchiveCorrupt, DanglingAssetReference, ProjectError, ProjectLoadError, ProjectSaveError,
)
from spritr.core.image import Raster
from spritr.core.logging import get_logger

PathLike = Union[str, Path]

# envelope section -> kind stored there
SECTIONS = (
    ("folders", AssetKind.FOLDER),
    ("parts", AssetKind.PART),
    ("comps", AssetKind.COMPOSITE),
)


def _empty_store() -> Dict[AssetKind, Dict[AssetRef, Asset]]:
    return {kind: {} for kind in AssetKind}


def _target_mode(path: Path) -> int:
    """Permission bits for a saved project: the existing file's, else 0666 less the umask."""
    try:
        return stat.S_IMODE(os.stat(path).st_mode)
    except FileNotFoundError:
        umask = os.umask(0)
        os.umask(umask)
        return 0o666 & ~umask


class ProjectModel:
    """
    Owns every Folder, Part and Composite of one open project.
    Collaborators keep AssetRefs and look assets up here; load() and save()
    move the whole graph to and from a project file.

    Not thread-safe: callers serialise load/save against editing.
    """

    def __init__(self, settings: Optional[SettingsStore] = None) -> None:
        self._log = get_logger(__name__)
        self._settings = settings
        self._assets = _empty_store()
        self._file_name: Optional[Path] = None

    # ──────────────────────────────────────────────────────────────────────────
    # Refs and lookup
    # ──────────────────────────────────────────────────────────────────────────
    @staticmethod
    def create_ref(kind: AssetKind = AssetKind.PART) -> AssetRef:
        return AssetRef.create(kind)

    def get_asset(self, ref: AssetRef) -> Optional[Asset]:
        if ref.is_null():
            return None
        return self._assets[ref.kind].get(ref)

    def has_asset(self, ref: AssetRef) -> bool:
        return self.get_asset(ref) is not None

    def _get_typed(self, ref: AssetRef, kind: AssetKind):
        if ref.kind is not kind:
            return None
        return self.get_asset(ref)

    def get_part(self, ref: AssetRef) -> Optional[Part]:
        return self._get_typed(ref, AssetKind.PART)

    def has_part(self, ref: AssetRef) -> bool:
        return self.get_part(ref) is not None

    def get_composite(self, ref: AssetRef) -> Optional[Composite]:
        return self._get_typed(ref, AssetKind.COMPOSITE)

    def has_composite(self, ref: AssetRef) -> bool:
        return self.get_composite(ref) is not None

    def get_folder(self, ref: AssetRef) -> Optional[Folder]:
        return self._get_typed(ref, AssetKind.FOLDER)

    def has_folder(self, ref: AssetRef) -> bool:
        return self.get_folder(ref) is not None

    def find_by_name(self, kind: AssetKind, name: str) -> Optional[Asset]:
        """First asset of ``kind`` called ``name``. Names are not unique."""
        for asset in self._assets[kind].values():
            if asset.name == name:
                return asset
        return None

    def find_part_by_name(self, name: str) -> Optional[Part]:
        return self.find_by_name(AssetKind.PART, name)

    def find_composite_by_name(self, name: str) -> Optional[Composite]:
        return self.find_by_name(AssetKind.COMPOSITE, name)

    def find_folder_by_name(self, name: str) -> Optional[Folder]:
        return self.find_by_name(AssetKind.FOLDER, name)

    def assets(self, kind: AssetKind) -> Iterator[Asset]:
        return iter(list(self._assets[kind].values()))

    def folders(self) -> Iterator[Folder]:
        return self.assets(AssetKind.FOLDER)

    def parts(self) -> Iterator[Part]:
        return self.assets(AssetKind.PART)

    def composites(self) -> Iterator[Composite]:
        return self.assets(AssetKind.COMPOSITE)

    def count(self, kind: Optional[AssetKind] = None) -> int:
        if kind is None:
            return sum(len(v) for v in self._assets.values())
        return len(self._assets[kind])

    @property
    def file_name(self) -> Optional[Path]:
        return self._file_name

    @property
    def settings(self) -> Optional[SettingsStore]:
        return self._settings

    # ──────────────────────────────────────────────────────────────────────────
    # Mutation
    # ──────────────────────────────────────────────────────────────────────────
    def add_asset(self, asset: Asset) -> AssetRef:
        ref = asset.ref
        if ref.is_null():
            raise ValueError("cannot add an asset with a null ref")
        if ASSET_TYPES[ref.kind] is not type(asset):
            raise ValueError(f"{type(asset).__name__} cannot be stored under a {ref.kind.value} ref")
        self._assets[ref.kind][ref] = asset
        return ref

    def remove_asset(self, ref: AssetRef) -> Optional[Asset]:
        if ref.is_null():
            return None
        return self._assets[ref.kind].pop(ref, None)

    def clear(self) -> None:
        self._assets = _empty_store()
        self._file_name = None

    # ──────────────────────────────────────────────────────────────────────────
    # Load
    # ──────────────────────────────────────────────────────────────────────────
    def load(self, file_name: PathLike) -> None:
        """
        Replace the model with the project stored in ``file_name``.
        Raises ProjectError; on failure the model and settings are untouched.
        """
        path = Path(file_name)
        self._log.info("Loading project %s", path)
        try:
            assets, prefs = self._read_project(path)
        except ProjectError as ex:
            self._log.error("Loading %s failed: %s", path, ex)
            raise

        self._assets = assets
        if prefs and self._settings is not None:
            for key, value in prefs.items():
                self._settings.set(key, value)
        self._file_name = path
        self._log.info(
            "Loaded %s: %d folders, %d parts, %d composites",
            path.name, self.count(AssetKind.FOLDER), self.count(AssetKind.PART), self.count(AssetKind.COMPOSITE),
        )

    def _read_project(self, path: Path):
        try:
            with open(path, "rb") as fh:
                try:
                    records = archive.read(fh)
                except ArchiveCorrupt as ex:
                    raise ProjectLoadError("Cannot read project file") from ex
        except OSError as ex:
            raise ProjectLoadError("Cannot open file") from ex

        data = records.get(DATA_ENTRY)
        if data is None:
            raise ProjectLoadError("Internal data.json is missing")
        length = data.text_length()
        if length == 0:
            raise ProjectLoadError("Internal data.json is empty")
        envelope = schema.parse_envelope(data.buffer[:length])

        prefs = None
        prefs_rec = records.get(PREFS_ENTRY)
        if prefs_rec is not None:
            prefs = schema.parse_prefs(prefs_rec.buffer[: prefs_rec.text_length()])

        rasters: Dict[str, Raster] = {}
        for name, rec in records.items():
            if name.endswith(IMAGE_EXT):
                rasters[name] = image.decode(rec.data, name)
                self._log.debug("Decoded %s (%dx%d)", name, rasters[name].width, rasters[name].height)

        assets = _empty_store()
        for section, kind in SECTIONS:
            for key, obj in schema.envelope_section(envelope, section).items():
                ref = schema.parse_ref(key, kind, f"{section} key")
                if kind is AssetKind.FOLDER:
                    asset = schema.load_folder(ref, obj)
                elif kind is AssetKind.PART:
                    asset = schema.load_part(ref, obj, rasters)
                else:
                    asset = schema.load_composite(ref, obj)
                assets[kind][ref] = asset

        self._check_parents(assets)
        return assets, prefs

    @staticmethod
    def _check_parents(assets: Dict[AssetKind, Dict[AssetRef, Asset]]) -> None:
        folders = assets[AssetKind.FOLDER]
        for group in assets.values():
            for asset in group.values():
                if not asset.parent.is_null() and asset.parent not in folders:
                    raise DanglingAssetReference(
                        f"{asset.kind.value} {asset.name!r} has unknown parent folder {asset.parent.to_string()}"
                    )

    # ──────────────────────────────────────────────────────────────────────────
    # Save
    # ──────────────────────────────────────────────────────────────────────────
    def build_entries(self) -> Dict[str, bytes]:
        """Serialise the model into archive entries, in a stable order."""
        images = schema.ImageTable()

        def dump_section(kind: AssetKind, dump) -> Dict[str, Any]:
            return {ref.to_string(): dump(self._assets[kind][ref]) for ref in sorted(self._assets[kind])}

        envelope = schema.dump_envelope(
            dump_section(AssetKind.FOLDER, schema.dump_folder),
            dump_section(AssetKind.PART, lambda p: schema.dump_part(p, images)),
            dump_section(AssetKind.COMPOSITE, schema.dump_composite),
        )

        entries: Dict[str, bytes] = {DATA_ENTRY: schema.to_json_bytes(envelope)}
        if self._settings is not None:
            entries[PREFS_ENTRY] = schema.to_json_bytes(schema.dump_prefs(self._settings))
        for name, raster in images.items():
            entries[name] = image.encode(raster, name)
            self._log.debug("Encoded %s (%dx%d)", name, raster.width, raster.height)
        return entries

    def save(self, file_name: PathLike) -> None:
        """
        Write the model to ``file_name``. The file is written next to the
        destination and moved into place only once complete.
        """
        path = Path(file_name)
        self._log.info("Saving project %s", path)
        try:
            entries = self.build_entries()
        except ProjectError as ex:
            self._log.error("Saving %s failed: %s", path, ex)
            raise ProjectSaveError(f"Cannot save project: {ex}") from ex

        try:
            fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
        except OSError as ex:
            raise ProjectSaveError(f"Cannot open file: {ex}") from ex
        try:
            with os.fdopen(fd, "wb") as fh:
                archive.write(entries, fh)
                fh.flush()
                os.fsync(fh.fileno())
            os.chmod(tmp_name, _target_mode(path))
            os.replace(tmp_name, path)
        except (OSError, ProjectError) as ex:
            self._log.error("Saving %s failed: %s", path, ex)
            try:
                os.unlink(tmp_name)
            except OSError:
                pass
            raise ProjectSaveError(f"Cannot write project file: {ex}") from ex

        self._file_name = path
        self._log.info("Saved %s (%d entries)", path.name, len(entries))
