"""Pytest configuration: make ``scripts/`` importable and provide font fixtures."""

import io
import os
import sys

import pytest
from fontTools.fontBuilder import FontBuilder
from fontTools.pens.ttGlyphPen import TTGlyphPen

SCRIPTS_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "scripts")

if SCRIPTS_DIR not in sys.path:
    sys.path.insert(0, SCRIPTS_DIR)


def build_font_bytes(flavor=None) -> bytes:
    """Build a one-glyph TrueType font, optionally wrapped as WOFF."""
    fb = FontBuilder(1000, isTTF=True)
    fb.setupGlyphOrder([".notdef"])
    fb.setupCharacterMap({})
    fb.setupGlyf({".notdef": TTGlyphPen(None).glyph()})
    fb.setupHorizontalMetrics({".notdef": (500, 0)})
    fb.setupHorizontalHeader(ascent=800, descent=-200)
    fb.setupOS2(sTypoAscender=800, sTypoDescender=-200, usWinAscent=800, usWinDescent=200)
    fb.setupNameTable({"familyName": "Test Icons", "styleName": "Regular"})
    fb.setupPost()
    fb.setupMaxp()
    fb.font.flavor = flavor

    buffer = io.BytesIO()
    fb.font.save(buffer)
    return buffer.getvalue()


@pytest.fixture
def font_bytes() -> bytes:
    return build_font_bytes()


@pytest.fixture
def fontawesome_dir(tmp_path):
    """Lay out ``fontawesome-free/{css,webfonts}`` like the npm package."""
    root = tmp_path / "node_modules" / "@fortawesome" / "fontawesome-free"
    (root / "css").mkdir(parents=True)
    (root / "webfonts").mkdir()
    return root
