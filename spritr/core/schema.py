# spritr/core/schema.py
"""
Mapping between the JSON documents stored in a project file and live assets.

Nothing here touches the filesystem: loaders take already-parsed document
fragments (plus the decoded raster registry for parts) and dumpers return
plain dicts ready for ``json.dumps``.
"""
from __future__ import annotations
import json
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Mapping, Optional, Tuple

from app_config import MAX_PIVOTS, PROJECT_FILE_VERSION, UINT_PREF_KEYS
from spritr.core.assets import (
    AssetKind, AssetRef, Child, Composite, Folder, Frame, Mode, NO_PARENT, Part,
)
from spritr.core.errors import (
    DanglingImageReference, DimensionMismatch, FrameCountMismatch,
    InvalidCompositeTree, ProjectLoadError, SchemaError, UnsupportedVersion,
)
from spritr.core.image import Raster
from spritr.core.logging import get_logger

if TYPE_CHECKING:
    from spritr.core.config import SettingsStore

_log = get_logger(__name__)

PART_RESERVED_KEYS = frozenset({"name", "parent", "properties"})
UINT32_MASK = 0xFFFFFFFF


# ──────────────────────────────────────────────────────────────────────────────
# Field helpers
# ──────────────────────────────────────────────────────────────────────────────
def _as_int(value: Any, what: str) -> int:
    if isinstance(value, bool):
        raise SchemaError(f"{what} must be an integer, got {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            pass
    raise SchemaError(f"{what} must be an integer, got {value!r}")


def _as_str(value: Any, what: str) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise SchemaError(f"{what} must be a string, got {value!r}")
    return value


def _as_object(value: Any, what: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise SchemaError(f"{what} must be an object")
    return value


def _as_array(value: Any, what: str) -> List[Any]:
    if not isinstance(value, list):
        raise SchemaError(f"{what} must be an array")
    return value


def parse_ref(text: Any, kind: AssetKind, what: str) -> AssetRef:
    if not isinstance(text, str):
        raise SchemaError(f"{what} must be a UUID string, got {text!r}")
    try:
        return AssetRef.parse(text, kind)
    except ValueError as ex:
        raise SchemaError(f"{what} is not a valid UUID: {text!r}") from ex


def _optional_parent(obj: Mapping[str, Any], what: str) -> AssetRef:
    if "parent" not in obj:
        return AssetRef.null(AssetKind.FOLDER)
    return parse_ref(obj["parent"], AssetKind.FOLDER, f"{what} parent")


def _put_parent(asset, obj: Dict[str, Any]) -> None:
    if not asset.parent.is_null():
        obj["parent"] = asset.parent.to_string()


# ──────────────────────────────────────────────────────────────────────────────
# Envelope
# ──────────────────────────────────────────────────────────────────────────────
def parse_envelope(text: bytes) -> Dict[str, Any]:
    """Parse data.json text into the envelope object, enforcing the version gate."""
    try:
        doc = json.loads(text.decode("utf-8"))
    except UnicodeDecodeError as ex:
        raise ProjectLoadError(f"Internal data.json parse error: {ex}") from ex
    except json.JSONDecodeError as ex:
        raise ProjectLoadError(f"Internal data.json parse error: {ex}") from ex
    if not isinstance(doc, dict) or not doc:
        raise ProjectLoadError("Internal data.json is not a valid json object")
    if "version" not in doc:
        raise ProjectLoadError("Internal data.json has no version field")
    version = doc["version"]
    if isinstance(version, bool) or not isinstance(version, (int, float)) or version != PROJECT_FILE_VERSION:
        raise UnsupportedVersion(version)
    return doc


def envelope_section(doc: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    section = doc.get(key, {})
    if section is None:
        return {}
    return _as_object(section, f"data.json {key!r}")


def dump_envelope(folders: Dict[str, Any], parts: Dict[str, Any], comps: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "version": PROJECT_FILE_VERSION,
        "folders": folders,
        "parts": parts,
        "comps": comps,
    }


def to_json_bytes(doc: Mapping[str, Any]) -> bytes:
    return json.dumps(doc, indent=4, sort_keys=True, ensure_ascii=False).encode("utf-8") + b"\n"


# ──────────────────────────────────────────────────────────────────────────────
# Folder
# ──────────────────────────────────────────────────────────────────────────────
def load_folder(ref: AssetRef, obj: Mapping[str, Any]) -> Folder:
    obj = _as_object(obj, f"folder {ref.to_string()}")
    return Folder(
        ref=ref,
        name=_as_str(obj.get("name"), "folder name"),
        parent=_optional_parent(obj, "folder"),
    )


def dump_folder(folder: Folder) -> Dict[str, Any]:
    obj: Dict[str, Any] = {"name": folder.name}
    _put_parent(folder, obj)
    return obj


# ──────────────────────────────────────────────────────────────────────────────
# Part
# ──────────────────────────────────────────────────────────────────────────────
def _load_frame(obj: Any, mode: Mode, num_pivots: int, images: Mapping[str, Raster], where: str) -> Frame:
    obj = _as_object(obj, where)
    anchor = (_as_int(obj.get("ax", 0), f"{where} ax"), _as_int(obj.get("ay", 0), f"{where} ay"))

    image_name = obj.get("image")
    if not isinstance(image_name, str) or not image_name:
        raise SchemaError(f"{where} has no image")
    raster = images.get(image_name)
    if raster is None:
        raise DanglingImageReference(image_name, where)
    if raster.width != mode.width or raster.height != mode.height:
        raise DimensionMismatch(
            f"{where}: image {image_name!r} is {raster.width}x{raster.height}, "
            f"mode is {mode.width}x{mode.height}"
        )

    pivots = [
        (_as_int(obj.get(f"p{p}x", 0), f"{where} p{p}x"), _as_int(obj.get(f"p{p}y", 0), f"{where} p{p}y"))
        for p in range(num_pivots)
    ]
    pivots.extend([(0, 0)] * (MAX_PIVOTS - num_pivots))
    return Frame(raster=raster, anchor=anchor, pivots=pivots)


def load_mode(name: str, obj: Mapping[str, Any], images: Mapping[str, Raster], where: str = "") -> Mode:
    where = f"{where} mode {name!r}".strip()
    obj = _as_object(obj, where)
    width = _as_int(obj.get("width"), f"{where} width")
    height = _as_int(obj.get("height"), f"{where} height")
    if width <= 0 or height <= 0:
        raise SchemaError(f"{where} has invalid size {width}x{height}")
    num_frames = _as_int(obj.get("numFrames"), f"{where} numFrames")
    num_pivots = _as_int(obj.get("numPivots", 0), f"{where} numPivots")
    if not 0 <= num_pivots <= MAX_PIVOTS:
        raise SchemaError(f"{where} numPivots {num_pivots} outside 0..{MAX_PIVOTS}")
    fps = _as_int(obj.get("framesPerSecond", 0), f"{where} framesPerSecond")

    frames = _as_array(obj.get("frames", []), f"{where} frames")
    if len(frames) != num_frames:
        raise FrameCountMismatch(f"{where} declares {num_frames} frames but stores {len(frames)}")

    mode = Mode(width=width, height=height, num_pivots=num_pivots, frames_per_second=fps)
    for i, frame_obj in enumerate(frames):
        mode.frames.append(_load_frame(frame_obj, mode, num_pivots, images, f"{where} frame {i}"))
    return mode


def load_part(ref: AssetRef, obj: Mapping[str, Any], images: Mapping[str, Raster]) -> Part:
    where = f"part {ref.to_string()}"
    obj = _as_object(obj, where)
    part = Part(
        ref=ref,
        name=_as_str(obj.get("name"), f"{where} name"),
        parent=_optional_parent(obj, where),
        properties=_as_str(obj.get("properties"), f"{where} properties"),
    )
    for key, value in obj.items():
        if key in PART_RESERVED_KEYS:
            continue
        part.modes[key] = load_mode(key, value, images, where)
    return part


def image_entry_name(part_name: str, mode_name: str, frame: int) -> str:
    index = f"{frame:03d}".upper()
    return f"{part_name.replace(' ', '_')}_{mode_name.replace(' ', '_')}_{index}.png"


class ImageTable:
    """
    Collects the rasters a save needs, one entry per raster object.
    A raster already seen keeps its first name; a name already taken by a
    different raster gets a numeric suffix.
    """
    def __init__(self) -> None:
        self._by_name: Dict[str, Raster] = {}
        self._name_of: Dict[int, str] = {}

    def name_for(self, raster: Raster, wanted: str) -> str:
        known = self._name_of.get(id(raster))
        if known is not None:
            return known
        name = wanted
        stem, dot, ext = wanted.rpartition(".")
        n = 1
        while name in self._by_name:
            name = f"{stem}_{n}{dot}{ext}"
            n += 1
        self._by_name[name] = raster
        self._name_of[id(raster)] = name
        return name

    def items(self) -> Iterable[Tuple[str, Raster]]:
        return sorted(self._by_name.items())

    def __len__(self) -> int:
        return len(self._by_name)


def _check_pivots(frame: Frame, num_pivots: int, where: str) -> None:
    # unused slots are not written, so anything but (0, 0) there would be lost
    if len(frame.pivots) != MAX_PIVOTS:
        raise SchemaError(f"{where} has {len(frame.pivots)} pivot slots, expected {MAX_PIVOTS}")
    for p in range(num_pivots, MAX_PIVOTS):
        if tuple(frame.pivots[p]) != (0, 0):
            raise SchemaError(f"{where} sets unused pivot {p} to {tuple(frame.pivots[p])}")


def dump_mode(part_name: str, mode_name: str, mode: Mode, images: ImageTable) -> Dict[str, Any]:
    where = f"part {part_name!r} mode {mode_name!r}"
    if not 0 <= mode.num_pivots <= MAX_PIVOTS:
        raise SchemaError(f"{where} numPivots {mode.num_pivots} outside 0..{MAX_PIVOTS}")
    frames = []
    for i, frame in enumerate(mode.frames):
        if frame.raster.width != mode.width or frame.raster.height != mode.height:
            raise DimensionMismatch(
                f"{where} frame {i} is "
                f"{frame.raster.width}x{frame.raster.height}, mode is {mode.width}x{mode.height}"
            )
        _check_pivots(frame, mode.num_pivots, f"{where} frame {i}")
        frame_obj: Dict[str, Any] = {
            "ax": int(frame.anchor[0]),
            "ay": int(frame.anchor[1]),
            "image": images.name_for(frame.raster, image_entry_name(part_name, mode_name, i)),
        }
        for p in range(mode.num_pivots):
            px, py = frame.pivots[p]
            frame_obj[f"p{p}x"] = int(px)
            frame_obj[f"p{p}y"] = int(py)
        frames.append(frame_obj)
    return {
        "width": mode.width,
        "height": mode.height,
        "numFrames": mode.num_frames,
        "numPivots": mode.num_pivots,
        "framesPerSecond": mode.frames_per_second,
        "frames": frames,
    }


def dump_part(part: Part, images: ImageTable) -> Dict[str, Any]:
    obj: Dict[str, Any] = {"name": part.name}
    _put_parent(part, obj)
    if part.properties:
        obj["properties"] = part.properties
    for mode_name, mode in part.modes.items():
        if mode_name in PART_RESERVED_KEYS:
            raise SchemaError(f"part {part.name!r} uses reserved mode name {mode_name!r}")
        obj[mode_name] = dump_mode(part.name, mode_name, mode, images)
    return obj


# ──────────────────────────────────────────────────────────────────────────────
# Composite
# ──────────────────────────────────────────────────────────────────────────────
def validate_composite(comp: Composite) -> None:
    """
    The child list must form one tree rooted at ``root``.

    Indices stay inside the child list, the root has no parent, every other
    child names exactly one parent and appears in that parent's ``children``,
    and walking down from the root reaches every child once. A composite
    without children has no root.
    """
    nodes = comp.ordered_children()
    count = len(nodes)
    label = f"composite {comp.name!r}"
    if count == 0:
        if comp.root != NO_PARENT:
            raise InvalidCompositeTree(f"{label}: root {comp.root} set but there are no children")
        return
    if not 0 <= comp.root < count:
        raise InvalidCompositeTree(f"{label}: root {comp.root} outside 0..{count - 1}")

    listed_by: Dict[int, int] = {}
    for index, (name, child) in enumerate(nodes):
        if child.parent != NO_PARENT and not 0 <= child.parent < count:
            raise InvalidCompositeTree(f"{label}: child {name!r} has parent {child.parent} out of range")
        for ci in child.children:
            if not 0 <= ci < count:
                raise InvalidCompositeTree(f"{label}: child {name!r} lists child {ci} out of range")
            if ci in listed_by:
                raise InvalidCompositeTree(f"{label}: child {ci} is listed by more than one parent")
            listed_by[ci] = index

    for index, (name, child) in enumerate(nodes):
        if index == comp.root:
            if child.parent != NO_PARENT:
                raise InvalidCompositeTree(f"{label}: root child {name!r} has parent {child.parent}")
            if index in listed_by:
                raise InvalidCompositeTree(f"{label}: root child {name!r} is listed as a child")
        elif child.parent == NO_PARENT:
            raise InvalidCompositeTree(f"{label}: child {name!r} has no parent but is not the root")
        elif listed_by.get(index) != child.parent:
            raise InvalidCompositeTree(
                f"{label}: child {name!r} has parent {child.parent} but is not in its children"
            )

    # parent links and children lists agree, so a cycle shows up as unreached children
    seen = {comp.root}
    pending = [comp.root]
    while pending:
        for ci in nodes[pending.pop()][1].children:
            if ci not in seen:
                seen.add(ci)
                pending.append(ci)
    if len(seen) != count:
        missing = sorted(set(range(count)) - seen)
        raise InvalidCompositeTree(f"{label}: children {missing} are not reachable from root {comp.root}")


def load_composite(ref: AssetRef, obj: Mapping[str, Any]) -> Composite:
    where = f"composite {ref.to_string()}"
    obj = _as_object(obj, where)
    comp = Composite(
        ref=ref,
        name=_as_str(obj.get("name"), f"{where} name"),
        parent=_optional_parent(obj, where),
        properties=_as_str(obj.get("properties"), f"{where} properties"),
        root=_as_int(obj.get("root", NO_PARENT), f"{where} root"),
    )
    for i, child_obj in enumerate(_as_array(obj.get("parts", []), f"{where} parts")):
        cw = f"{where} child {i}"
        child_obj = _as_object(child_obj, cw)
        name = _as_str(child_obj.get("name"), f"{cw} name")
        if name in comp.children_map:
            raise InvalidCompositeTree(f"{where}: duplicate child name {name!r}")
        child = Child(
            part=parse_ref(child_obj.get("part"), AssetKind.PART, f"{cw} part"),
            parent=_as_int(child_obj.get("parent", NO_PARENT), f"{cw} parent"),
            parent_pivot=_as_int(child_obj.get("parentPivot", 0), f"{cw} parentPivot"),
            z=_as_int(child_obj.get("z", 0), f"{cw} z"),
            children=[_as_int(c, f"{cw} children") for c in _as_array(child_obj.get("children", []), f"{cw} children")],
        )
        comp.add_child(name, child)
    validate_composite(comp)
    return comp


def dump_composite(comp: Composite) -> Dict[str, Any]:
    validate_composite(comp)
    obj: Dict[str, Any] = {
        "root": comp.root,
        "name": comp.name,
        "properties": comp.properties,
    }
    _put_parent(comp, obj)
    obj["parts"] = [
        {
            "name": name,
            "parent": child.parent,
            "parentPivot": child.parent_pivot,
            "z": child.z,
            "part": child.part.to_string(),
            "children": list(child.children),
        }
        for name, child in comp.ordered_children()
    ]
    return obj


# ──────────────────────────────────────────────────────────────────────────────
# Preferences sidecar
# ──────────────────────────────────────────────────────────────────────────────
def parse_prefs(text: bytes) -> Optional[Dict[str, Any]]:
    """
    Parse prefs.json into the values to store. Problems are logged and
    yield None (or drop the offending key) instead of raising.
    """
    try:
        doc = json.loads(text.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as ex:
        _log.warning("Internal prefs.json parse error: %s", ex)
        return None
    if not isinstance(doc, dict) or not doc:
        _log.warning("Internal prefs.json is not a valid json object")
        return None

    values: Dict[str, Any] = {}
    for key, value in doc.items():
        if key in UINT_PREF_KEYS:
            try:
                col = int(str(value).strip())
            except ValueError:
                _log.warning("prefs.json %s is not an unsigned integer: %r", key, value)
                continue
            if not 0 <= col <= UINT32_MASK:
                _log.warning("prefs.json %s out of range: %r", key, value)
                continue
            values[key] = col
        else:
            values[key] = value
    return values


def dump_prefs(settings: "SettingsStore") -> Dict[str, Any]:
    """Collect every settings key into a prefs.json object."""
    prefs: Dict[str, Any] = {}
    for key in sorted(settings.keys()):
        value = settings.get(key)
        if key in UINT_PREF_KEYS:
            try:
                prefs[key] = str(int(value) & UINT32_MASK)
            except (TypeError, ValueError):
                _log.warning("Setting %s is not an integer, skipping: %r", key, value)
            continue
        try:
            json.dumps(value)
        except (TypeError, ValueError):
            _log.warning("Setting %s is not JSON serialisable, skipping", key)
            continue
        prefs[key] = value
    return prefs
