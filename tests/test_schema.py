"""
test_schema.py

Document <-> asset mapping for folders, parts, composites and preferences.
"""

import json

import pytest

from app_config import MAX_PIVOTS
from builders import make_raster
from mocks import MemorySettings
from spritr.core import schema
from spritr.core.assets import AssetKind, AssetRef, Child, Composite, Folder, Frame, Mode, NO_PARENT, Part
from spritr.core.errors import (
    DanglingImageReference, DimensionMismatch, FrameCountMismatch, InvalidCompositeTree,
    ProjectLoadError, SchemaError, UnsupportedVersion,
)


def _mode_doc(**overrides):
    doc = {
        "width": 4,
        "height": 4,
        "numFrames": 2,
        "numPivots": 1,
        "framesPerSecond": 12,
        "frames": [
            {"ax": 1, "ay": 2, "image": "a.png", "p0x": 3, "p0y": 4},
            {"ax": 5, "ay": 6, "image": "b.png", "p0x": 7, "p0y": 8},
        ],
    }
    doc.update(overrides)
    return doc


@pytest.fixture
def images():
    return {"a.png": make_raster(4, 4, 1), "b.png": make_raster(4, 4, 2), "big.png": make_raster(8, 4, 3)}


# Envelope ─────────────────────────────────────────────────────────────────────

def test_envelope_accepts_current_version():
    doc = schema.parse_envelope(b'{"version": 1, "parts": {}}')
    assert doc["version"] == 1


@pytest.mark.parametrize("text, reason", [
    (b"{nope", "Internal data.json parse error: "),
    (b"[1, 2]", "Internal data.json is not a valid json object"),
    (b"{}", "Internal data.json is not a valid json object"),
    (b'{"folders": {}}', "Internal data.json has no version field"),
])
def test_envelope_failures(text, reason):
    with pytest.raises(ProjectLoadError) as exc:
        schema.parse_envelope(text)
    assert str(exc.value).startswith(reason)


@pytest.mark.parametrize("version", [0, 2, "1", None, True])
def test_envelope_version_gate(version):
    with pytest.raises(UnsupportedVersion) as exc:
        schema.parse_envelope(json.dumps({"version": version}).encode())
    assert str(exc.value) == "Internal data.json has an invalid version"


# Folder ───────────────────────────────────────────────────────────────────────

def test_folder_without_parent_has_null_parent():
    ref = AssetRef.create(AssetKind.FOLDER)
    folder = schema.load_folder(ref, {"name": "Props"})
    assert folder.name == "Props"
    assert folder.parent.is_null()
    assert schema.dump_folder(folder) == {"name": "Props"}


def test_folder_parent_is_a_folder_ref():
    parent = AssetRef.create(AssetKind.FOLDER)
    folder = schema.load_folder(AssetRef.create(AssetKind.FOLDER), {"name": "", "parent": parent.to_string()})
    assert folder.parent == parent
    assert folder.parent.kind is AssetKind.FOLDER


def test_folder_bad_parent_uuid():
    with pytest.raises(SchemaError):
        schema.load_folder(AssetRef.create(AssetKind.FOLDER), {"name": "x", "parent": "zzz"})


# Part ─────────────────────────────────────────────────────────────────────────

def test_part_modes_frames_and_pivots(images):
    ref = AssetRef.create(AssetKind.PART)
    part = schema.load_part(ref, {"name": "hero", "properties": "speed=3", "walk": _mode_doc()}, images)
    assert part.properties == "speed=3"
    assert list(part.modes) == ["walk"]
    mode = part.modes["walk"]
    assert (mode.width, mode.height, mode.num_frames, mode.num_pivots, mode.frames_per_second) == (4, 4, 2, 1, 12)
    first = mode.frames[0]
    assert first.anchor == (1, 2)
    assert first.raster is images["a.png"]
    assert len(first.pivots) == MAX_PIVOTS
    assert first.pivots[0] == (3, 4)
    assert first.pivots[1:] == [(0, 0)] * (MAX_PIVOTS - 1)


def test_frame_count_mismatch(images):
    with pytest.raises(FrameCountMismatch):
        schema.load_part(AssetRef.create(AssetKind.PART), {"walk": _mode_doc(numFrames=3)}, images)


def test_dangling_image(images):
    doc = _mode_doc(numFrames=1, frames=[{"ax": 0, "ay": 0, "image": "missing.png"}])
    with pytest.raises(DanglingImageReference) as exc:
        schema.load_part(AssetRef.create(AssetKind.PART), {"walk": doc}, images)
    assert exc.value.image == "missing.png"


def test_dimension_mismatch(images):
    doc = _mode_doc(numFrames=1, frames=[{"ax": 0, "ay": 0, "image": "big.png"}])
    with pytest.raises(DimensionMismatch):
        schema.load_part(AssetRef.create(AssetKind.PART), {"walk": doc}, images)


@pytest.mark.parametrize("overrides", [{"numPivots": MAX_PIVOTS + 1}, {"width": 0}, {"height": "tall"}])
def test_mode_shape_errors(images, overrides):
    with pytest.raises(SchemaError):
        schema.load_part(AssetRef.create(AssetKind.PART), {"walk": _mode_doc(**overrides)}, images)


def test_dump_part_names_images_and_shares_rasters():
    shared = make_raster(2, 2, 9)
    part = Part(ref=AssetRef.create(AssetKind.PART), name="big goblin")
    part.modes["run fast"] = Mode(width=2, height=2, num_pivots=1, frames_per_second=6, frames=[
        Frame(raster=shared, anchor=(1, 1), pivots=[(2, 3)] + [(0, 0)] * (MAX_PIVOTS - 1)),
        Frame(raster=shared),
        Frame(raster=make_raster(2, 2, 10)),
    ])
    table = schema.ImageTable()
    doc = schema.dump_part(part, table)

    frames = doc["run fast"]["frames"]
    assert [f["image"] for f in frames] == [
        "big_goblin_run_fast_000.png", "big_goblin_run_fast_000.png", "big_goblin_run_fast_002.png",
    ]
    assert frames[0]["p0x"] == 2 and frames[0]["p0y"] == 3
    assert "p1x" not in frames[0]
    assert doc["run fast"]["numFrames"] == 3
    assert "properties" not in doc
    assert len(table) == 2


@pytest.mark.parametrize("pivots", [
    [(1, 1)],
    [(1, 1), (2, 2)] + [(0, 0)] * (MAX_PIVOTS - 2) + [(0, 0)],
    [(1, 1), (2, 2), (3, 3)] + [(0, 0)] * (MAX_PIVOTS - 3),
])
def test_dump_mode_rejects_pivots_it_cannot_store(pivots):
    part = Part(ref=AssetRef.create(AssetKind.PART), name="p")
    part.modes["idle"] = Mode(width=2, height=2, num_pivots=2, frames=[
        Frame(raster=make_raster(2, 2), pivots=pivots),
    ])
    with pytest.raises(SchemaError):
        schema.dump_part(part, schema.ImageTable())


def test_dump_mode_rejects_pivot_count_out_of_range():
    part = Part(ref=AssetRef.create(AssetKind.PART), name="p")
    part.modes["idle"] = Mode(width=2, height=2, num_pivots=MAX_PIVOTS + 1, frames=[Frame(raster=make_raster(2, 2))])
    with pytest.raises(SchemaError):
        schema.dump_part(part, schema.ImageTable())


def test_image_table_disambiguates_name_collisions():
    table = schema.ImageTable()
    a, b = make_raster(1, 1, 1), make_raster(1, 1, 2)
    assert table.name_for(a, "x_idle_000.png") == "x_idle_000.png"
    assert table.name_for(b, "x_idle_000.png") == "x_idle_000_1.png"
    assert table.name_for(a, "anything.png") == "x_idle_000.png"


def test_dump_part_rejects_mismatched_frame():
    part = Part(ref=AssetRef.create(AssetKind.PART), name="p")
    part.modes["idle"] = Mode(width=4, height=4, frames=[Frame(raster=make_raster(2, 2))])
    with pytest.raises(DimensionMismatch):
        schema.dump_part(part, schema.ImageTable())


# Composite ────────────────────────────────────────────────────────────────────

def _comp_doc(part_id, **overrides):
    doc = {
        "root": 0,
        "name": "rig",
        "properties": "",
        "parts": [
            {"name": "body", "parent": -1, "parentPivot": 0, "z": 0, "part": part_id, "children": [1]},
            {"name": "head", "parent": 0, "parentPivot": 2, "z": 1, "part": part_id, "children": []},
        ],
    }
    doc.update(overrides)
    return doc


def test_composite_children_in_order():
    part_ref = AssetRef.create(AssetKind.PART)
    comp = schema.load_composite(AssetRef.create(AssetKind.COMPOSITE), _comp_doc(part_ref.to_string()))
    assert comp.root == 0
    assert comp.children == ["body", "head"]
    head = comp.children_map["head"]
    assert (head.parent, head.parent_pivot, head.z, head.index) == (0, 2, 1, 1)
    assert head.part == part_ref
    assert comp.children_map["body"].children == [1]


def test_composite_dump_matches_load_side():
    part_ref = AssetRef.create(AssetKind.PART)
    doc = _comp_doc(part_ref.to_string())
    comp = schema.load_composite(AssetRef.create(AssetKind.COMPOSITE), doc)
    assert schema.dump_composite(comp) == doc


@pytest.mark.parametrize("mutate", [
    lambda d: d.update(root=5),
    lambda d: d["parts"][1].update(parent=9),
    lambda d: d["parts"][0].update(children=[2]),
    lambda d: d["parts"][1].update(name="body"),
    # two children pointing at each other
    lambda d: (d["parts"][0].update(parent=1), d["parts"][1].update(children=[0])),
    lambda d: d.update(root=NO_PARENT),
    lambda d: d.update(root=1),
    lambda d: d["parts"][1].update(parent=NO_PARENT),
    lambda d: d["parts"][0].update(children=[]),
    lambda d: d["parts"][1].update(parent=1, children=[1]),
    lambda d: d["parts"][0].update(children=[1, 1]),
    lambda d: d["parts"][0].update(children=[0, 1]),
])
def test_composite_tree_errors(mutate):
    doc = _comp_doc(AssetRef.create(AssetKind.PART).to_string())
    mutate(doc)
    with pytest.raises(InvalidCompositeTree):
        schema.load_composite(AssetRef.create(AssetKind.COMPOSITE), doc)


def test_deeper_tree_is_accepted():
    part_id = AssetRef.create(AssetKind.PART).to_string()
    doc = _comp_doc(part_id, root=1)
    doc["parts"] = [
        {"name": "hand", "parent": 2, "parentPivot": 0, "z": 2, "part": part_id, "children": []},
        {"name": "body", "parent": -1, "parentPivot": 0, "z": 0, "part": part_id, "children": [2, 3]},
        {"name": "arm", "parent": 1, "parentPivot": 1, "z": 1, "part": part_id, "children": [0]},
        {"name": "head", "parent": 1, "parentPivot": 0, "z": 1, "part": part_id, "children": []},
    ]
    comp = schema.load_composite(AssetRef.create(AssetKind.COMPOSITE), doc)
    assert comp.root == 1
    assert schema.dump_composite(comp) == doc


def test_dump_composite_rejects_cycle():
    part = AssetRef.create(AssetKind.PART)
    comp = Composite(ref=AssetRef.create(AssetKind.COMPOSITE), name="loop", root=0)
    comp.add_child("a", Child(part=part, parent=1, children=[1]))
    comp.add_child("b", Child(part=part, parent=0, children=[0]))
    with pytest.raises(InvalidCompositeTree):
        schema.dump_composite(comp)


def test_missing_root_and_parent_mean_no_parent():
    part_id = AssetRef.create(AssetKind.PART).to_string()
    doc = {"name": "solo", "parts": [{"name": "only", "part": part_id, "children": []}]}
    with pytest.raises(InvalidCompositeTree):
        schema.load_composite(AssetRef.create(AssetKind.COMPOSITE), doc)

    doc["root"] = 0
    comp = schema.load_composite(AssetRef.create(AssetKind.COMPOSITE), doc)
    assert comp.children_map["only"].parent == NO_PARENT

    empty = schema.load_composite(AssetRef.create(AssetKind.COMPOSITE), {"name": "empty"})
    assert empty.root == NO_PARENT


def test_empty_composite_uses_no_root_sentinel():
    comp = Composite(ref=AssetRef.create(AssetKind.COMPOSITE), name="empty")
    doc = schema.dump_composite(comp)
    assert doc["root"] == NO_PARENT
    assert schema.load_composite(comp.ref, doc) == comp


def test_dump_composite_keeps_names_verbatim():
    comp = Composite(ref=AssetRef.create(AssetKind.COMPOSITE), name="big rig", root=0)
    comp.add_child("left arm", Child(part=AssetRef.create(AssetKind.PART)))
    doc = schema.dump_composite(comp)
    assert doc["name"] == "big rig"
    assert doc["parts"][0]["name"] == "left arm"


# Preferences ──────────────────────────────────────────────────────────────────

def test_prefs_background_colour_is_unsigned():
    prefs = schema.parse_prefs(b'{"background_colour": "4294967295", "show_grid": true}')
    assert prefs == {"background_colour": 4294967295, "show_grid": True}


@pytest.mark.parametrize("text", [b"{broken", b"[]", b"{}", b"\xff\xfe"])
def test_bad_prefs_are_ignored(text, caplog):
    assert schema.parse_prefs(text) is None
    assert any(r.levelname == "WARNING" for r in caplog.records)


def test_bad_background_colour_is_dropped():
    prefs = schema.parse_prefs(b'{"background_colour": "red", "grid_size": 8}')
    assert prefs == {"grid_size": 8}


def test_dump_prefs_masks_background_colour():
    store = MemorySettings({"background_colour": -1, "grid_size": 16, "widget": object()})
    assert schema.dump_prefs(store) == {"background_colour": "4294967295", "grid_size": 16}
