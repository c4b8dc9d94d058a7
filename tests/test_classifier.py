"""Tests for above-the-fold classification."""

import pytest

from critcss.engine.classifier import classify, intersects_viewport
from critcss.engine.types import DomSnapshot, ExtractionOptions, Rect, Viewport, WarningKind

VIEWPORT = Viewport(width=1440, height=900)


class TestIntersection:
    @pytest.mark.parametrize(
        "rect, expected",
        [
            (Rect(0, 0, 100, 100), True),
            (Rect(-50, 10, 100, 20), True),
            (Rect(1400, 880, 200, 200), True),
            (Rect(0, 900, 100, 100), False),
            (Rect(1440, 0, 10, 10), False),
            (Rect(0, -200, 100, 200), False),
            (Rect(10, 10, 0, 0), False),
        ],
    )
    def test_positive_area_overlap(self, rect, expected):
        assert intersects_viewport(rect, VIEWPORT) is expected


class TestClassify:
    def test_geometry_decides_by_default(self, page):
        critical, warnings = classify(page, VIEWPORT, ExtractionOptions())
        assert {"html", "body", "header", "nav", "link-home", "hero", "email"} <= critical
        assert "footer" not in critical
        assert "copyright" not in critical
        assert warnings == ()

    def test_display_none_is_never_critical(self, element):
        snapshot = DomSnapshot([element("modal", display_none=True)])
        critical, _ = classify(snapshot, VIEWPORT, ExtractionOptions())
        assert critical == frozenset()

    def test_missing_rect_warns(self, element):
        snapshot = DomSnapshot([element("lazy", rect=None), element("shown")])
        critical, warnings = classify(snapshot, VIEWPORT, ExtractionOptions())
        assert critical == frozenset({"shown"})
        assert [w.kind for w in warnings] == [WarningKind.geometry_missing]
        assert "lazy" in warnings[0].message

    def test_force_include(self, page):
        critical, _ = classify(page, VIEWPORT, ExtractionOptions(force_include=(".footer",)))
        assert "footer" in critical
        assert "copyright" not in critical

    def test_force_include_wins_over_display_none(self, element):
        snapshot = DomSnapshot([element("menu", classes=["menu"], display_none=True)])
        critical, _ = classify(snapshot, VIEWPORT, ExtractionOptions(force_include=(".menu",)))
        assert critical == frozenset({"menu"})

    def test_force_include_wins_over_force_exclude(self, page):
        options = ExtractionOptions(force_include=(".nav",), force_exclude=("nav",))
        critical, _ = classify(page, VIEWPORT, options)
        assert "nav" in critical

    def test_force_exclude(self, page):
        critical, _ = classify(page, VIEWPORT, ExtractionOptions(force_exclude=(".nav-link",)))
        assert "link-home" not in critical
        assert "link-about" not in critical
        assert "nav" in critical

    def test_invalid_override_selector_warns(self, page):
        critical, warnings = classify(page, VIEWPORT, ExtractionOptions(force_include=("a >",)))
        assert "footer" not in critical
        assert warnings[0].kind is WarningKind.parse_error
