"""End-to-end tests for partitioning stylesheets into critical and deferred CSS."""

import pytest

from critcss.engine.orchestrator import extract
from critcss.engine.parser import parse
from critcss.engine.pipeline import extract_critical_css, fingerprint
from critcss.engine.types import (
    DomSnapshot,
    ExtractionOptions,
    Placement,
    StylesheetSource,
    Viewport,
    WarningKind,
)


def run(css, snapshot, viewport=Viewport(1440, 900), **options):
    return extract_critical_css(
        [StylesheetSource("main.css", css)],
        snapshot,
        viewport,
        ExtractionOptions(**options),
    )


def warning_kinds(result):
    return [warning.kind for warning in result.warnings]


@pytest.fixture
def fold(element):
    """A header above the fold and a footer below it."""

    return DomSnapshot(
        [
            element("h", "header", ["header"], rect=(0, 0, 1440, 100)),
            element("f", "footer", ["footer"], rect=(0, 2000, 1440, 100)),
        ]
    )


# ---------------------------------------------------------------------------
# Reference scenarios
# ---------------------------------------------------------------------------


class TestScenarios:
    def test_split_by_visibility(self, fold):
        result = run(".header{color:red}\n.footer{color:blue}", fold)
        assert result.critical_css == ".header{color:red}"
        assert result.deferred_css == ".footer{color:blue}"
        assert result.error is None

    def test_ignored_media_is_deferred_only(self, element):
        snapshot = DomSnapshot([element("a", classes=["a"])])
        result = run("@media print{.a{color:red}}", snapshot, ignore_at_rules=["print"])
        assert result.critical_css == ""
        assert result.deferred_css == "@media print{.a{color:red}}"

    @pytest.mark.parametrize("condition", ["not print", "screen, print"])
    def test_screen_applicable_media_survives_ignored_print(self, fold, condition):
        result = run(f"@media {condition}{{.header{{color:red}}}}", fold, ignore_at_rules=["print"])
        assert ".header{color:red}" in result.critical_css
        assert result.deferred_css == ""
        assert result.report[0].included is Placement.critical

    def test_matching_media_keeps_its_wrapper(self, element):
        snapshot = DomSnapshot([element("card", classes=["card"])])
        result = run("@media (min-width:768px){.card{display:flex}}", snapshot, Viewport(1300, 800))
        assert result.critical_css == "@media (min-width:768px){.card{display:flex}}"
        assert result.deferred_css == ""

    def test_matching_rules_keep_source_order(self, element):
        snapshot = DomSnapshot([element("x", classes=["x"], attributes={"id": "x"})])
        result = run("#x{color:red}\n.x{color:blue}", snapshot)
        assert result.critical_css == "#x{color:red}\n.x{color:blue}"
        assert [entry.specificity for entry in result.report] == [((1, 0, 0),), ((0, 1, 0),)]


# ---------------------------------------------------------------------------
# Partition properties
# ---------------------------------------------------------------------------

STYLESHEET = """
html{font-size:16px}
.header{color:red}
.nav-link:hover{text-decoration:underline}
.footer{color:blue}
@media (max-width:600px){.header{display:none}}
@media (min-width:1024px){.hero{padding:4rem}.copyright{font-size:12px}}
@media (prefers-color-scheme:dark){.footer{color:white}}
@supports (display:grid){.hero{display:grid}}
.hero{animation:fade-in 1s}
@keyframes fade-in{from{opacity:0}to{opacity:1}}
@keyframes unused{from{opacity:0}}
@page{margin:1cm}
"""


class TestPartitionProperties:
    def test_every_rule_is_placed_exactly_once_per_output(self, page):
        result = run(STYLESHEET, page)
        ast, _ = parse(STYLESHEET)
        placed = {entry.source_index: entry.included for entry in result.report}
        assert sorted(placed) == [rule.source_index for rule in ast]

    def test_outputs_cover_the_source(self, page, viewport):
        ast, _ = parse(STYLESHEET)
        critical_set = frozenset({"html", "body", "header", "nav", "link-home", "hero"})
        partition = extract(ast, critical_set, page, viewport)
        critical = {rule.source_index for rule in partition.critical}
        deferred = {rule.source_index for rule in partition.deferred}
        assert critical | deferred == {rule.source_index for rule in ast}
        both = {d.rule.source_index for d in partition.decisions if d.placement is Placement.both}
        assert critical & deferred == both

    def test_outputs_preserve_source_order(self, page, viewport):
        ast, _ = parse(STYLESHEET)
        partition = extract(ast, frozenset(element.id for element in page), page, viewport)
        for output in (partition.critical, partition.deferred):
            indices = [rule.source_index for rule in output]
            assert indices == sorted(indices)

    def test_extracting_twice_is_stable(self, page):
        first = run(STYLESHEET, page)
        second = run(STYLESHEET, page)
        assert first == second

    def test_critical_output_is_a_fixed_point(self, page):
        first = run(STYLESHEET, page)
        again = run(first.critical_css, page)
        assert again.critical_css == first.critical_css

    def test_parallel_matching_equals_serial(self, page, viewport):
        sources = [StylesheetSource("main.css", STYLESHEET)]
        serial = extract_critical_css(sources, page, viewport, max_workers=1)
        parallel = extract_critical_css(sources, page, viewport, max_workers=4)
        assert parallel == serial


# ---------------------------------------------------------------------------
# Placement policy
# ---------------------------------------------------------------------------


class TestPlacement:
    def test_placements(self, page):
        result = run(STYLESHEET, page)
        by_selector = {}
        for entry in result.report:
            by_selector.setdefault(entry.selector_text, []).append(entry.included)

        assert by_selector["html"] == [Placement.critical]
        assert by_selector[".nav-link:hover"] == [Placement.critical]
        assert by_selector[".footer"] == [Placement.deferred, Placement.both]
        assert by_selector[".header"] == [Placement.critical, Placement.deferred]
        assert by_selector[".hero"] == [Placement.critical, Placement.both, Placement.critical]
        assert by_selector[".copyright"] == [Placement.deferred]
        assert by_selector["@keyframes fade-in from"] == [Placement.critical]
        assert by_selector["@keyframes unused from"] == [Placement.deferred]
        assert by_selector["@page"] == [Placement.both]

    def test_rules_under_false_media_are_wrapped_in_deferred_output(self, page):
        result = run(STYLESHEET, page)
        assert "@media (max-width:600px){.header{display:none}}" in result.deferred_css
        assert "max-width:600px" not in result.critical_css

    def test_partially_matching_media_block_is_split(self, page):
        result = run(STYLESHEET, page)
        assert "@media (min-width:1024px){.hero{padding:4rem}}" in result.critical_css
        assert "@media (min-width:1024px){.copyright{font-size:12px}}" in result.deferred_css

    def test_ambiguous_media_goes_to_both_with_warning(self, fold):
        result = run("@media (prefers-color-scheme:dark){.footer{color:white}}", fold)
        expected = "@media (prefers-color-scheme:dark){.footer{color:white}}"
        assert result.critical_css == expected
        assert result.deferred_css == expected
        assert warning_kinds(result) == [WarningKind.ambiguous_condition]

    def test_supports_goes_to_both(self, fold):
        result = run("@supports (display:grid){.header{display:grid}}", fold)
        assert result.critical_css == result.deferred_css == "@supports (display:grid){.header{display:grid}}"

    def test_unsupported_pseudo_class_goes_to_both(self, fold):
        result = run(".header:frobnicate{color:red}", fold)
        assert result.critical_css == result.deferred_css == ".header:frobnicate{color:red}"
        assert warning_kinds(result) == [WarningKind.unsupported_selector]

    def test_clean_selector_wins_over_unsupported_one(self, fold):
        result = run(".header:frobnicate, .header{color:red}", fold)
        assert result.critical_css == ".header:frobnicate, .header{color:red}"
        assert result.deferred_css == ""
        assert result.warnings == ()
        assert result.report[0].reason == "'.header' matches critical element 'h'"

    def test_unmatched_unsupported_pseudo_class_is_deferred(self, fold):
        result = run(".sidebar:frobnicate{color:red}", fold)
        assert result.critical_css == ""
        assert result.deferred_css == ".sidebar:frobnicate{color:red}"

    def test_opaque_at_rule_goes_to_both(self, fold):
        result = run("@page{margin:1cm}", fold)
        assert result.critical_css == result.deferred_css
        assert result.critical_css.startswith("@page")
        assert warning_kinds(result) == [WarningKind.unsupported_at_rule]

    def test_ignored_opaque_at_rule_is_deferred(self, fold):
        result = run("@page{margin:1cm}", fold, ignore_at_rules=["page"])
        assert result.critical_css == ""
        assert result.warnings == ()

    def test_pseudo_element_rules_follow_their_element(self, fold):
        result = run('.header::before{content:""}.footer::after{content:""}', fold)
        assert result.critical_css == '.header::before{content:""}'

    def test_force_exclude_defers_rules(self, fold):
        result = run(".header{color:red}", fold, force_exclude=[".header"])
        assert result.critical_css == ""


# ---------------------------------------------------------------------------
# Referenced at-rules
# ---------------------------------------------------------------------------


class TestReferencedAtRules:
    def test_keyframes_follow_critical_animation(self, fold):
        css = (
            ".header{animation:pulse 2s}"
            ".footer{animation:wobble 2s}"
            "@keyframes pulse{from{opacity:0}to{opacity:1}}"
            "@keyframes wobble{50%{transform:rotate(3deg)}}"
        )
        result = run(css, fold)
        assert result.critical_css == ".header{animation:pulse 2s}\n@keyframes pulse{from{opacity:0}to{opacity:1}}"
        assert "@keyframes wobble" in result.deferred_css
        assert "@keyframes pulse" not in result.deferred_css

    def test_font_face_follows_critical_font_family(self, fold):
        css = (
            '@font-face{font-family:"Brand Sans";src:url(brand.woff2)}'
            '@font-face{font-family:"Other";src:url(other.woff2)}'
            '.header{font:700 16px/1.2 "Brand Sans",sans-serif}'
        )
        result = run(css, fold)
        assert result.critical_css.startswith('@font-face{font-family:"Brand Sans";src:url(brand.woff2)}')
        assert '"Other"' in result.deferred_css

    def test_references_through_custom_properties(self, fold):
        css = ".header{--entrance:slide}@keyframes slide{to{opacity:1}}"
        result = run(css, fold)
        assert result.critical_css.endswith("@keyframes slide{to{opacity:1}}")

    def test_references_from_included_keyframes_are_followed(self, fold):
        css = (
            "@font-face{font-family:Brand;src:url(b.woff2)}"
            ".header{animation:pulse 1s}"
            "@keyframes pulse{to{font-family:Brand}}"
        )
        result = run(css, fold)
        assert result.critical_css.startswith("@font-face{font-family:Brand;src:url(b.woff2)}")
        assert "@keyframes pulse" in result.critical_css
        assert result.deferred_css == ""

    def test_keyframes_under_false_media_stay_deferred(self, fold):
        css = ".header{animation:pulse 1s}@media print{@keyframes pulse{to{opacity:1}}}"
        result = run(css, fold)
        assert "@keyframes" not in result.critical_css


# ---------------------------------------------------------------------------
# Report, warnings and fatal input
# ---------------------------------------------------------------------------


class TestReport:
    def test_report_lists_every_rule_with_reason(self, fold):
        result = run(".header{color:red}.footer{color:blue}", fold)
        assert [(e.source_index, e.selector_text, e.included) for e in result.report] == [
            (0, ".header", Placement.critical),
            (1, ".footer", Placement.deferred),
        ]
        assert "'h'" in result.report[0].reason
        assert result.report[1].reason == "no critical element matches"

    def test_parse_warnings_are_reported(self, fold):
        result = run("a >{color:red}.header{color:red}", fold)
        assert result.critical_css == ".header{color:red}"
        assert warning_kinds(result) == [WarningKind.parse_error]

    def test_geometry_warnings_are_reported(self, element):
        snapshot = DomSnapshot([element("h", classes=["header"]), element("x", rect=None)])
        result = run(".header{color:red}", snapshot)
        assert WarningKind.geometry_missing in warning_kinds(result)


class TestFatalInput:
    def test_no_stylesheets(self, fold, viewport):
        result = extract_critical_css([], fold, viewport)
        assert result.error == "No stylesheets supplied"
        assert result.critical_css == result.deferred_css == ""
        assert result.report == ()

    def test_empty_snapshot(self, viewport):
        result = extract_critical_css([StylesheetSource("a.css", ".a{color:red}")], DomSnapshot([]), viewport)
        assert result.error == "DOM snapshot is empty"


class TestFingerprint:
    def test_same_input_same_key(self, fold, viewport):
        sources = [StylesheetSource("a.css", ".a{color:red}")]
        options = ExtractionOptions()
        assert fingerprint(sources, fold, viewport, options) == fingerprint(sources, fold, viewport, options)

    def test_viewport_changes_key(self, fold):
        sources = [StylesheetSource("a.css", ".a{color:red}")]
        options = ExtractionOptions()
        desktop = fingerprint(sources, fold, Viewport(1440, 900), options)
        mobile = fingerprint(sources, fold, Viewport(390, 844), options)
        assert desktop != mobile
