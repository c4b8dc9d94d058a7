"""Stylesheet parser producing an ordered, immutable rule list."""

from __future__ import annotations

from typing import Iterable, List, Sequence, Tuple

import tinycss2

from .errors import ParseError, SelectorError
from .selectors import parse_selector_tokens
from .types import (
    AtRuleFrame,
    AtRuleKind,
    Declaration,
    ExtractionWarning,
    Rule,
    RuleKind,
    StyleSheetAST,
    StylesheetSource,
)

_GROUPING_AT_RULES = {
    "media": AtRuleKind.media,
    "supports": AtRuleKind.supports,
    "layer": AtRuleKind.layer,
}


def _unprefixed(keyword: str) -> str:
    if keyword.startswith("-") and keyword.count("-") >= 2:
        return keyword.split("-", 2)[2]
    return keyword


class CSSParser:
    """Parses stylesheets while sharing one ``source_index`` counter.

    Use one instance per extraction run so that rule indices reflect the
    order in which the caller supplied the stylesheets.
    """

    def __init__(self) -> None:
        self._next_rule = 0
        self._next_frame = 0

    def parse(self, css_text: str, file_id: str) -> Tuple[StyleSheetAST, Tuple[ExtractionWarning, ...]]:
        rules: List[Rule] = []
        warnings: List[ExtractionWarning] = []
        nodes = tinycss2.parse_stylesheet(css_text, skip_comments=True, skip_whitespace=True)
        self._walk(nodes, file_id, (), rules, warnings)
        return StyleSheetAST(tuple(rules)), tuple(warnings)

    def _take_rule_index(self) -> int:
        index = self._next_rule
        self._next_rule += 1
        return index

    def _frame(self, kind: AtRuleKind, condition_text: str, keyword: str) -> AtRuleFrame:
        frame = AtRuleFrame(kind=kind, condition_text=condition_text, keyword=keyword, frame_index=self._next_frame)
        self._next_frame += 1
        return frame

    def _walk(
        self,
        nodes: Iterable,
        file_id: str,
        chain: Tuple[AtRuleFrame, ...],
        rules: List[Rule],
        warnings: List[ExtractionWarning],
    ) -> None:
        for node in nodes:
            if node.type == "qualified-rule":
                self._style_rule(node, file_id, chain, rules, warnings)
            elif node.type == "at-rule":
                self._at_rule(node, file_id, chain, rules, warnings)
            elif node.type == "error":
                warnings.append(
                    ParseError(f"{file_id}:{node.source_line}: dropped malformed rule ({node.message})").to_warning()
                )

    def _style_rule(self, node, file_id, chain, rules, warnings) -> None:
        selector_text = tinycss2.serialize(node.prelude).strip()
        try:
            selectors = parse_selector_tokens(node.prelude)
        except SelectorError as exc:
            warnings.append(
                ParseError(f"{file_id}:{node.source_line}: dropped rule '{selector_text}': {exc}").to_warning()
            )
            return

        index = self._take_rule_index()
        declarations = self._declarations(node.content, selector_text, index, warnings)
        rules.append(
            Rule(
                source_index=index,
                file_id=file_id,
                kind=RuleKind.style,
                selectors=selectors,
                selector_text=selector_text,
                declarations=declarations,
                at_rule_chain=chain,
            )
        )

    def _at_rule(self, node, file_id, chain, rules, warnings) -> None:
        keyword = node.lower_at_keyword
        base = _unprefixed(keyword)
        prelude = tinycss2.serialize(node.prelude).strip()

        if base in ("import", "charset", "namespace"):
            warnings.append(
                ParseError(
                    f"{file_id}:{node.source_line}: @{keyword} {prelude} is not supported here and was dropped"
                ).to_warning()
            )
            return

        if base in _GROUPING_AT_RULES and node.content is not None:
            frame = self._frame(_GROUPING_AT_RULES[base], prelude, keyword)
            children = tinycss2.parse_rule_list(node.content, skip_comments=True, skip_whitespace=True)
            self._walk(children, file_id, chain + (frame,), rules, warnings)
            return

        if base == "keyframes" and node.content is not None:
            frame = self._frame(AtRuleKind.keyframes, prelude, keyword)
            self._keyframes(node, file_id, chain + (frame,), rules, warnings)
            return

        if base == "font-face" and node.content is not None:
            frame = self._frame(AtRuleKind.font_face, "", keyword)
            index = self._take_rule_index()
            declarations = self._declarations(node.content, "@font-face", index, warnings)
            rules.append(
                Rule(
                    source_index=index,
                    file_id=file_id,
                    kind=RuleKind.font_face,
                    declarations=declarations,
                    at_rule_chain=chain + (frame,),
                )
            )
            return

        if base in ("media", "supports", "keyframes", "font-face"):
            warnings.append(
                ParseError(f"{file_id}:{node.source_line}: dropped @{keyword} without a block").to_warning()
            )
            return

        # Anything else (@page, @container, @layer statements...) is carried verbatim.
        rules.append(
            Rule(
                source_index=self._take_rule_index(),
                file_id=file_id,
                kind=RuleKind.opaque,
                selector_text=f"@{keyword} {prelude}".strip(),
                at_rule_chain=chain,
                verbatim=tinycss2.serialize([node]).strip(),
            )
        )

    def _keyframes(self, node, file_id, chain, rules, warnings) -> None:
        children = tinycss2.parse_rule_list(node.content, skip_comments=True, skip_whitespace=True)
        for child in children:
            if child.type == "qualified-rule":
                selector_text = tinycss2.serialize(child.prelude).strip()
                index = self._take_rule_index()
                rules.append(
                    Rule(
                        source_index=index,
                        file_id=file_id,
                        kind=RuleKind.keyframe,
                        selector_text=selector_text,
                        declarations=self._declarations(child.content, selector_text, index, warnings),
                        at_rule_chain=chain,
                    )
                )
            elif child.type == "error":
                warnings.append(
                    ParseError(f"{file_id}:{child.source_line}: dropped malformed keyframe ({child.message})").to_warning()
                )
            else:
                warnings.append(
                    ParseError(f"{file_id}:{child.source_line}: dropped @{child.lower_at_keyword} inside @keyframes").to_warning()
                )

    def _declarations(
        self,
        content: Sequence,
        context: str,
        index: int,
        warnings: List[ExtractionWarning],
    ) -> Tuple[Declaration, ...]:
        declarations: List[Declaration] = []
        for item in tinycss2.parse_blocks_contents(content, skip_comments=True, skip_whitespace=True):
            if item.type == "declaration":
                value = tinycss2.serialize(item.value).strip()
                if not value:
                    warnings.append(
                        ParseError(f"Skipped declaration '{item.name}' with empty value in '{context}'").to_warning(index)
                    )
                    continue
                name = item.name if item.name.startswith("--") else item.lower_name
                declarations.append(Declaration(property=name, value=value, important=item.important))
            elif item.type == "error":
                warnings.append(
                    ParseError(f"Skipped malformed declaration in '{context}': {item.message}").to_warning(index)
                )
            else:
                warnings.append(
                    ParseError(f"Dropped nested rule inside '{context}'; CSS nesting is not supported").to_warning(index)
                )
        return tuple(declarations)


def parse(css_text: str, file_id: str = "inline") -> Tuple[StyleSheetAST, Tuple[ExtractionWarning, ...]]:
    """Parse a single stylesheet with its own index counter."""

    return CSSParser().parse(css_text, file_id)


def parse_stylesheets(
    sources: Sequence[StylesheetSource],
) -> Tuple[StyleSheetAST, Tuple[ExtractionWarning, ...]]:
    """Parse stylesheets in caller order into one AST with shared indices."""

    parser = CSSParser()
    rules: List[Rule] = []
    warnings: List[ExtractionWarning] = []
    for source in sources:
        ast, sheet_warnings = parser.parse(source.css_text, source.file_id)
        rules.extend(ast.rules)
        warnings.extend(sheet_warnings)
    return StyleSheetAST(tuple(rules)), tuple(warnings)
