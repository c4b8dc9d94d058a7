"""Partitions a parsed stylesheet into critical and deferred rule sets."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence, Tuple

from .at_rules import (
    AtRuleResolver,
    ChainResolution,
    FrameVerdict,
    font_face_family,
    keyframes_name,
    referenced_names,
)
from .errors import UnsupportedAtRuleError, UnsupportedSelectorError
from .matcher import matches
from .types import (
    DomSnapshot,
    ExtractionOptions,
    ExtractionWarning,
    Placement,
    Rule,
    RuleKind,
    Selector,
    StyleSheetAST,
    Viewport,
    WarningKind,
)


@dataclass(frozen=True)
class RuleDecision:
    rule: Rule
    placement: Placement
    reason: str


@dataclass(frozen=True)
class PartitionResult:
    critical: StyleSheetAST
    deferred: StyleSheetAST
    decisions: Tuple[RuleDecision, ...]
    warnings: Tuple[ExtractionWarning, ...]


class _CandidateIndex:
    """Critical elements bucketed by id, class and tag, each in document order."""

    def __init__(self, element_ids: Sequence[str], snapshot: DomSnapshot) -> None:
        self.all: Tuple[str, ...] = tuple(element_ids)
        self.position = {element_id: pos for pos, element_id in enumerate(self.all)}
        self.by_id: Dict[str, List[str]] = {}
        self.by_class: Dict[str, List[str]] = {}
        self.by_tag: Dict[str, List[str]] = {}
        for element_id in self.all:
            element = snapshot.get(element_id)
            self.by_id.setdefault(element.attributes.get("id", element.id), []).append(element_id)
            for name in element.classes:
                self.by_class.setdefault(name, []).append(element_id)
            self.by_tag.setdefault(element.tag.lower(), []).append(element_id)

    def for_selector(self, selector: Selector) -> Optional[Iterable[str]]:
        """Candidates for the selector's subject, or ``None`` when every element qualifies."""

        subject = selector.subject
        if subject.element_id is not None:
            return self.by_id.get(subject.element_id, ())
        if subject.classes:
            return self.by_class.get(min(subject.classes), ())
        if subject.tag is not None:
            return self.by_tag.get(subject.tag, ())
        return None

    def for_rule(self, rule: Rule) -> Tuple[str, ...]:
        pooled = set()
        for selector in rule.selectors:
            candidates = self.for_selector(selector)
            if candidates is None:
                return self.all
            pooled.update(candidates)
        return tuple(sorted(pooled, key=self.position.__getitem__))


class ExtractionOrchestrator:
    """Drives matching and at-rule resolution for one extraction run."""

    def __init__(
        self,
        snapshot: DomSnapshot,
        viewport: Viewport,
        options: Optional[ExtractionOptions] = None,
        max_workers: int = 1,
    ) -> None:
        self.snapshot = snapshot
        self.viewport = viewport
        self.options = options or ExtractionOptions()
        self.max_workers = max(1, max_workers)
        self.resolver = AtRuleResolver(viewport, self.options)

    def extract(self, ast: StyleSheetAST, critical_set: FrozenSet[str]) -> PartitionResult:
        ordered = sorted(
            (element_id for element_id in critical_set if element_id in self.snapshot),
            key=self.snapshot.document_position,
        )
        index = _CandidateIndex(ordered, self.snapshot)
        rules = sorted(ast.rules, key=lambda rule: rule.source_index)
        resolutions = [self.resolver.resolve(rule.at_rule_chain) for rule in rules]

        style_rules = [
            rule
            for rule, resolution in zip(rules, resolutions)
            if rule.kind is RuleKind.style and _in_scope(resolution)
        ]
        matched = dict(zip((rule.source_index for rule in style_rules), self._match_all(style_rules, index)))

        decisions: Dict[int, RuleDecision] = {}
        warnings: Dict[int, List[ExtractionWarning]] = {}
        pending: List[Tuple[Rule, ChainResolution]] = []

        for rule, resolution in zip(rules, resolutions):
            notes = warnings.setdefault(rule.source_index, [])
            if not _in_scope(resolution):
                decisions[rule.source_index] = RuleDecision(rule, Placement.deferred, resolution.reason)
            elif rule.kind is RuleKind.opaque:
                decisions[rule.source_index] = self._opaque_decision(rule, notes)
            elif rule.kind in (RuleKind.keyframe, RuleKind.font_face):
                pending.append((rule, resolution))
            else:
                decisions[rule.source_index] = self._style_decision(
                    rule, resolution, matched[rule.source_index], notes
                )

        self._resolve_references(pending, decisions, warnings)

        ordered_decisions = tuple(decisions[rule.source_index] for rule in rules)
        critical = tuple(
            d.rule for d in ordered_decisions if d.placement in (Placement.critical, Placement.both)
        )
        deferred = tuple(
            d.rule for d in ordered_decisions if d.placement in (Placement.deferred, Placement.both)
        )
        return PartitionResult(
            critical=StyleSheetAST(tuple(sorted(critical, key=lambda rule: rule.source_index))),
            deferred=StyleSheetAST(tuple(sorted(deferred, key=lambda rule: rule.source_index))),
            decisions=ordered_decisions,
            warnings=tuple(w for rule in rules for w in warnings.get(rule.source_index, ())),
        )

    def _match_all(self, rules: Sequence[Rule], index: _CandidateIndex) -> List[Optional[Tuple[Selector, str]]]:
        def best_match(rule: Rule) -> Optional[Tuple[Selector, str]]:
            return self._best_match(rule, index)

        if self.max_workers > 1 and len(rules) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                return list(pool.map(best_match, rules))
        return [best_match(rule) for rule in rules]

    def _best_match(self, rule: Rule, index: _CandidateIndex) -> Optional[Tuple[Selector, str]]:
        """First clean match in document order, else the first match that relied on unsupported features."""

        fallback: Optional[Tuple[Selector, str]] = None
        for element_id in index.for_rule(rule):
            for selector in rule.selectors:
                if fallback is not None and selector.unsupported:
                    continue
                if matches(selector, element_id, self.snapshot):
                    if not selector.unsupported:
                        return selector, element_id
                    fallback = selector, element_id
        return fallback

    def _style_decision(
        self,
        rule: Rule,
        resolution: ChainResolution,
        match: Optional[Tuple[Selector, str]],
        notes: List[ExtractionWarning],
    ) -> RuleDecision:
        ambiguous = resolution.verdict is FrameVerdict.ambiguous
        if ambiguous:
            notes.append(
                ExtractionWarning(WarningKind.ambiguous_condition, resolution.reason, rule.source_index)
            )

        if match is None:
            if ambiguous:
                return RuleDecision(rule, Placement.both, resolution.reason)
            return RuleDecision(rule, Placement.deferred, "no critical element matches")

        selector, element_id = match
        reason = f"'{selector.text}' matches critical element {element_id!r}"
        if selector.unsupported:
            features = ", ".join(selector.unsupported)
            notes.append(
                UnsupportedSelectorError(
                    f"'{selector.text}' uses {features} which cannot be evaluated statically"
                ).to_warning(rule.source_index)
            )
            return RuleDecision(rule, Placement.both, f"{reason}; unsupported {features}")
        if ambiguous:
            return RuleDecision(rule, Placement.both, f"{reason}; {resolution.reason}")
        return RuleDecision(rule, Placement.critical, reason)

    def _opaque_decision(self, rule: Rule, notes: List[ExtractionWarning]) -> RuleDecision:
        keyword = rule.selector_text.lstrip("@").split(None, 1)[0] if rule.selector_text else ""
        if self.resolver.is_ignored(keyword):
            return RuleDecision(rule, Placement.deferred, f"ignored at-rule @{keyword}")
        reason = f"{rule.selector_text} cannot be scoped statically"
        notes.append(UnsupportedAtRuleError(reason).to_warning(rule.source_index))
        return RuleDecision(rule, Placement.both, reason)

    def _resolve_references(
        self,
        pending: List[Tuple[Rule, ChainResolution]],
        decisions: Dict[int, RuleDecision],
        warnings: Dict[int, List[ExtractionWarning]],
    ) -> None:
        """Include ``@keyframes``/``@font-face`` rules referenced from critical declarations."""

        included = [d.rule for d in decisions.values() if d.placement is not Placement.deferred]
        animations, families = referenced_names(decl for rule in included for decl in rule.declarations)

        remaining = list(pending)
        changed = True
        while changed and remaining:
            changed = False
            still_pending: List[Tuple[Rule, ChainResolution]] = []
            for rule, resolution in remaining:
                if rule.kind is RuleKind.keyframe:
                    name = keyframes_name(rule)
                    hit = name is not None and name in animations
                    reason = f"@keyframes {name} referenced by critical declarations"
                else:
                    name = font_face_family(rule)
                    hit = name is not None and name in families
                    reason = f"@font-face '{name}' referenced by critical declarations"

                if not hit:
                    still_pending.append((rule, resolution))
                    continue

                placement = Placement.critical
                if resolution.verdict is FrameVerdict.ambiguous:
                    placement = Placement.both
                    reason = f"{reason}; {resolution.reason}"
                    warnings[rule.source_index].append(
                        ExtractionWarning(WarningKind.ambiguous_condition, resolution.reason, rule.source_index)
                    )
                decisions[rule.source_index] = RuleDecision(rule, placement, reason)
                more_animations, more_families = referenced_names(rule.declarations)
                if not more_animations <= animations or not more_families <= families:
                    animations |= more_animations
                    families |= more_families
                    changed = True
            remaining = still_pending

        for rule, _ in remaining:
            decisions[rule.source_index] = RuleDecision(
                rule, Placement.deferred, "not referenced by critical declarations"
            )


def _in_scope(resolution: ChainResolution) -> bool:
    return resolution.verdict not in (FrameVerdict.ignored, FrameVerdict.not_applicable)


def extract(
    ast: StyleSheetAST,
    critical_set: FrozenSet[str],
    snapshot: DomSnapshot,
    viewport: Viewport,
    options: Optional[ExtractionOptions] = None,
    max_workers: int = 1,
) -> PartitionResult:
    """Partition *ast* for the given critical elements."""

    return ExtractionOrchestrator(snapshot, viewport, options, max_workers).extract(ast, critical_set)
