"""Tests for the stylesheet parser."""

from critcss.engine.parser import parse, parse_stylesheets
from critcss.engine.types import AtRuleKind, Declaration, RuleKind, StylesheetSource, WarningKind


# ---------------------------------------------------------------------------
# Style rules
# ---------------------------------------------------------------------------


class TestStyleRules:
    def test_rules_are_indexed_in_source_order(self):
        ast, warnings = parse(".a{color:red}\n.b{color:blue}")
        assert warnings == ()
        assert [rule.source_index for rule in ast] == [0, 1]
        assert [rule.selector_text for rule in ast] == [".a", ".b"]
        assert ast.rules[0].declarations == (Declaration("color", "red"),)

    def test_important_flag(self):
        ast, _ = parse(".a { color: red !important; margin: 0 }")
        assert ast.rules[0].declarations == (
            Declaration("color", "red", important=True),
            Declaration("margin", "0"),
        )

    def test_property_names_are_lowercased_except_custom_properties(self):
        ast, _ = parse(".a{COLOR:red;--Main-Color:#fff}")
        assert [decl.property for decl in ast.rules[0].declarations] == ["color", "--Main-Color"]

    def test_selector_list(self):
        ast, _ = parse("h1, .title{font-weight:700}")
        rule = ast.rules[0]
        assert rule.kind is RuleKind.style
        assert len(rule.selectors) == 2
        assert rule.selector_text == "h1, .title"

    def test_comments_are_skipped(self):
        ast, warnings = parse("/* banner */ .a{/* inline */color:red}")
        assert warnings == ()
        assert ast.rules[0].declarations == (Declaration("color", "red"),)


# ---------------------------------------------------------------------------
# At-rules
# ---------------------------------------------------------------------------


class TestAtRules:
    def test_media_frame(self):
        ast, _ = parse("@media (min-width:768px){.card{display:flex}}")
        rule = ast.rules[0]
        assert rule.selector_text == ".card"
        frame = rule.at_rule_chain[0]
        assert frame.kind is AtRuleKind.media
        assert frame.condition_text == "(min-width:768px)"
        assert frame.header == "@media (min-width:768px)"

    def test_nested_chain_is_outermost_first(self):
        ast, _ = parse("@supports (display:grid){@media screen{.grid{display:grid}}}")
        kinds = [frame.kind for frame in ast.rules[0].at_rule_chain]
        assert kinds == [AtRuleKind.supports, AtRuleKind.media]

    def test_sibling_rules_share_frame_occurrence(self):
        ast, _ = parse("@media print{.a{color:red}.b{color:blue}}@media print{.c{color:green}}")
        frames = [rule.at_rule_chain[0] for rule in ast]
        assert frames[0] == frames[1]
        assert frames[0].frame_index != frames[2].frame_index

    def test_layer_block(self):
        ast, _ = parse("@layer base{.a{color:red}}")
        assert ast.rules[0].at_rule_chain[0].kind is AtRuleKind.layer

    def test_keyframes(self):
        ast, _ = parse("@keyframes spin{from{transform:rotate(0)}to{transform:rotate(360deg)}}")
        assert [rule.kind for rule in ast] == [RuleKind.keyframe, RuleKind.keyframe]
        assert [rule.selector_text for rule in ast] == ["from", "to"]
        frame = ast.rules[0].at_rule_chain[-1]
        assert frame.kind is AtRuleKind.keyframes
        assert frame.condition_text == "spin"

    def test_vendor_prefixed_keyframes(self):
        ast, _ = parse("@-webkit-keyframes pulse{50%{opacity:.5}}")
        frame = ast.rules[0].at_rule_chain[-1]
        assert frame.kind is AtRuleKind.keyframes
        assert frame.header == "@-webkit-keyframes pulse"

    def test_font_face(self):
        ast, _ = parse('@font-face{font-family:"Brand";src:url(brand.woff2)}')
        rule = ast.rules[0]
        assert rule.kind is RuleKind.font_face
        assert rule.declarations[0] == Declaration("font-family", '"Brand"')

    def test_unknown_at_rule_is_kept_verbatim(self):
        ast, warnings = parse("@page{margin:1cm}")
        rule = ast.rules[0]
        assert rule.kind is RuleKind.opaque
        assert rule.verbatim.startswith("@page")
        assert "margin:1cm" in rule.verbatim
        assert warnings == ()

    def test_import_is_dropped_with_warning(self):
        ast, warnings = parse('@import url("base.css");.a{color:red}')
        assert [rule.selector_text for rule in ast] == [".a"]
        assert warnings[0].kind is WarningKind.parse_error
        assert "@import" in warnings[0].message

    def test_media_without_block_is_dropped(self):
        ast, warnings = parse("@media screen;.a{color:red}")
        assert len(ast) == 1
        assert len(warnings) == 1


# ---------------------------------------------------------------------------
# Recovery
# ---------------------------------------------------------------------------


class TestRecovery:
    def test_invalid_selector_drops_only_that_rule(self):
        ast, warnings = parse("a >{color:red}.b{color:blue}")
        assert [rule.selector_text for rule in ast] == [".b"]
        assert ast.rules[0].source_index == 0
        assert [w.kind for w in warnings] == [WarningKind.parse_error]

    def test_malformed_declaration_is_skipped(self):
        ast, warnings = parse(".a{color red;margin:0}")
        assert ast.rules[0].declarations == (Declaration("margin", "0"),)
        assert warnings[0].rule_source_index == 0

    def test_empty_value_is_skipped(self):
        ast, warnings = parse(".a{color:;margin:0}")
        assert ast.rules[0].declarations == (Declaration("margin", "0"),)
        assert len(warnings) == 1

    def test_nested_rule_is_reported(self):
        ast, warnings = parse(".a{color:red;.b{color:blue}}")
        assert ast.rules[0].declarations == (Declaration("color", "red"),)
        assert "nesting" in warnings[0].message


# ---------------------------------------------------------------------------
# Multiple stylesheets
# ---------------------------------------------------------------------------


class TestMultipleStylesheets:
    def test_indices_continue_across_files(self):
        ast, _ = parse_stylesheets(
            [
                StylesheetSource("base.css", ".a{color:red}.b{color:blue}"),
                StylesheetSource("theme.css", ".c{color:green}"),
            ]
        )
        assert [(rule.file_id, rule.source_index) for rule in ast] == [
            ("base.css", 0),
            ("base.css", 1),
            ("theme.css", 2),
        ]

    def test_warnings_name_the_file(self):
        _, warnings = parse_stylesheets([StylesheetSource("broken.css", "a >{color:red}")])
        assert warnings[0].message.startswith("broken.css:")
