"""
Module: conftest.py

Global pytest configuration and fixtures for the spritr test suite.
Archives are assembled in memory with the real archive and image codecs.
"""

import os
import sys
import uuid

# Add project root to sys.path so 'app_config' and 'spritr' can be imported
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

import pytest

from builders import pack


@pytest.fixture
def write_project(tmp_path):
    """Write an archive into tmp_path and return its path."""
    def _write(entries, name="project.spr"):
        path = tmp_path / name
        path.write_bytes(pack(entries))
        return path
    return _write


@pytest.fixture
def ids():
    """Fresh braced UUID strings keyed by label."""
    cache = {}

    def _id(label):
        if label not in cache:
            cache[label] = "{%s}" % uuid.uuid4()
        return cache[label]
    return _id


@pytest.fixture
def idle_document(ids):
    """One folder and one part with a single 16x16 'idle' mode."""
    return {
        "version": 1,
        "folders": {ids("folder"): {"name": "Characters"}},
        "parts": {
            ids("part"): {
                "name": "goblin",
                "parent": ids("folder"),
                "idle": {
                    "width": 16,
                    "height": 16,
                    "numFrames": 1,
                    "numPivots": 0,
                    "framesPerSecond": 8,
                    "frames": [{"ax": 8, "ay": 15, "image": "idle_000.png"}],
                },
            }
        },
        "comps": {},
    }
