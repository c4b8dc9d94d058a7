"""Labels snapshot elements as critical (above the fold) or not."""

from __future__ import annotations

from typing import FrozenSet, List, Sequence, Tuple

from .errors import GeometryMissingError, ParseError, SelectorError
from .matcher import matches_any
from .selectors import parse_selector_list
from .types import DomSnapshot, ExtractionOptions, ExtractionWarning, Rect, Selector, Viewport

CriticalSet = FrozenSet[str]


def intersects_viewport(rect: Rect, viewport: Viewport) -> bool:
    """True when *rect* overlaps the initial viewport with positive area."""

    overlap_w = min(rect.x + rect.w, viewport.width) - max(rect.x, 0.0)
    overlap_h = min(rect.y + rect.h, viewport.height) - max(rect.y, 0.0)
    return overlap_w > 0 and overlap_h > 0


def _override_selectors(texts: Sequence[str], label: str, warnings: List[ExtractionWarning]) -> Tuple[Selector, ...]:
    selectors: List[Selector] = []
    for text in texts:
        try:
            selectors.extend(parse_selector_list(text))
        except SelectorError as exc:
            warnings.append(ParseError(f"Ignored invalid {label} selector {text!r}: {exc}").to_warning())
    return tuple(selectors)


def classify(
    snapshot: DomSnapshot,
    viewport: Viewport,
    options: ExtractionOptions,
) -> Tuple[CriticalSet, Tuple[ExtractionWarning, ...]]:
    """Return the ids of critical elements plus any geometry/override warnings."""

    warnings: List[ExtractionWarning] = []
    force_include = _override_selectors(options.force_include, "forceInclude", warnings)
    force_exclude = _override_selectors(options.force_exclude, "forceExclude", warnings)

    critical: List[str] = []
    for element in snapshot:
        if force_include and matches_any(force_include, element.id, snapshot):
            critical.append(element.id)
            continue
        if element.display_none:
            continue
        if element.rect is None:
            warnings.append(GeometryMissingError(element.id).to_warning())
            continue
        if not intersects_viewport(element.rect, viewport):
            continue
        if force_exclude and matches_any(force_exclude, element.id, snapshot):
            continue
        critical.append(element.id)

    return frozenset(critical), tuple(warnings)
