"""Renders rule partitions back to CSS text and builds the inclusion report."""

from __future__ import annotations

from itertools import groupby
from typing import List, Mapping, Optional, Sequence

from .types import (
    AtRuleFrame,
    AtRuleKind,
    Declaration,
    Placement,
    ReportEntry,
    Rule,
    RuleKind,
    StyleSheetAST,
)


def _declarations(declarations: Sequence[Declaration]) -> str:
    return ";".join(
        f"{decl.property}:{decl.value}{'!important' if decl.important else ''}" for decl in declarations
    )


def _render_rule(rule: Rule) -> str:
    if rule.kind is RuleKind.opaque:
        return rule.verbatim or ""
    if rule.kind is RuleKind.font_face:
        return f"{{{_declarations(rule.declarations)}}}"
    return f"{rule.selector_text}{{{_declarations(rule.declarations)}}}"


def _frame_at(rule: Rule, depth: int) -> Optional[AtRuleFrame]:
    if len(rule.at_rule_chain) > depth:
        return rule.at_rule_chain[depth]
    return None


def _render(rules: Sequence[Rule], depth: int) -> List[str]:
    """Render rules, re-wrapping consecutive rules that share a frame occurrence."""

    parts: List[str] = []
    for frame, group in groupby(rules, key=lambda rule: _frame_at(rule, depth)):
        members = list(group)
        if frame is None:
            parts.extend(_render_rule(rule) for rule in members)
        elif frame.kind is AtRuleKind.font_face:
            parts.extend(f"{frame.header}{_render_rule(rule)}" for rule in members)
        else:
            parts.append(f"{frame.header}{{{''.join(_render(members, depth + 1))}}}")
    return parts


def serialize(ast: StyleSheetAST) -> str:
    """Serialize rules in ``source_index`` order; top-level blocks are newline separated."""

    rules = sorted(ast.rules, key=lambda rule: rule.source_index)
    return "\n".join(_render(rules, 0))


def _selector_text(rule: Rule) -> str:
    if rule.kind is RuleKind.font_face:
        return "@font-face"
    if rule.kind is RuleKind.keyframe:
        frame = rule.at_rule_chain[-1]
        return f"{frame.header} {rule.selector_text}"
    return rule.selector_text


def build_report(
    ast: StyleSheetAST,
    critical: StyleSheetAST,
    deferred: StyleSheetAST,
    reasons: Mapping[int, str],
) -> List[ReportEntry]:
    """One entry per original rule, in source order."""

    in_critical = {rule.source_index for rule in critical}
    in_deferred = {rule.source_index for rule in deferred}
    entries: List[ReportEntry] = []
    for rule in sorted(ast.rules, key=lambda r: r.source_index):
        index = rule.source_index
        if index in in_critical and index in in_deferred:
            included = Placement.both
        elif index in in_critical:
            included = Placement.critical
        else:
            included = Placement.deferred
        entries.append(
            ReportEntry(
                source_index=index,
                selector_text=_selector_text(rule),
                included=included,
                reason=reasons.get(index, ""),
                specificity=tuple(selector.specificity for selector in rule.selectors),
            )
        )
    return entries
