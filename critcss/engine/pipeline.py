"""End-to-end extraction entry point."""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from typing import FrozenSet, Optional, Sequence, Tuple

from critcss.core.logging import get_logger

from .classifier import classify
from .errors import EmptyInputError
from .orchestrator import extract
from .parser import parse_stylesheets
from .serializer import build_report, serialize
from .types import (
    DomSnapshot,
    ExtractionOptions,
    ExtractionWarning,
    ReportEntry,
    StylesheetSource,
    Viewport,
)

logger = get_logger(__name__)


def _require_input(stylesheets: Sequence[StylesheetSource], snapshot: DomSnapshot) -> None:
    if not stylesheets:
        raise EmptyInputError("No stylesheets supplied")
    if len(snapshot) == 0:
        raise EmptyInputError("DOM snapshot is empty")


@dataclass(frozen=True)
class ExtractionResult:
    critical_css: str
    deferred_css: str
    report: Tuple[ReportEntry, ...] = ()
    warnings: Tuple[ExtractionWarning, ...] = ()
    critical_set: FrozenSet[str] = frozenset()
    error: Optional[str] = None


def extract_critical_css(
    stylesheets: Sequence[StylesheetSource],
    snapshot: DomSnapshot,
    viewport: Viewport,
    options: Optional[ExtractionOptions] = None,
    max_workers: int = 1,
) -> ExtractionResult:
    """Run parse, classify, partition and serialize for one page.

    Never raises for bad input: fatal conditions are reported through
    ``ExtractionResult.error`` with empty outputs.
    """

    options = options or ExtractionOptions()
    try:
        _require_input(stylesheets, snapshot)
    except EmptyInputError as exc:
        logger.warning("critical_css_empty_input", error=str(exc))
        return ExtractionResult(critical_css="", deferred_css="", error=str(exc))

    ast, parse_warnings = parse_stylesheets(stylesheets)
    critical_set, classify_warnings = classify(snapshot, viewport, options)
    partition = extract(ast, critical_set, snapshot, viewport, options, max_workers)

    reasons = {decision.rule.source_index: decision.reason for decision in partition.decisions}
    report = build_report(ast, partition.critical, partition.deferred, reasons)
    warnings = parse_warnings + classify_warnings + partition.warnings

    logger.debug(
        "critical_css_partitioned",
        rules=len(ast),
        critical_rules=len(partition.critical),
        deferred_rules=len(partition.deferred),
        critical_elements=len(critical_set),
        warnings=len(warnings),
    )

    return ExtractionResult(
        critical_css=serialize(partition.critical),
        deferred_css=serialize(partition.deferred),
        report=tuple(report),
        warnings=warnings,
        critical_set=critical_set,
    )


def fingerprint(
    stylesheets: Sequence[StylesheetSource],
    snapshot: DomSnapshot,
    viewport: Viewport,
    options: ExtractionOptions,
) -> str:
    """Content hash of all extraction inputs, usable as a cache key."""

    payload = {
        "stylesheets": [[source.file_id, source.css_text] for source in stylesheets],
        "snapshot": [
            {
                "id": element.id,
                "tag": element.tag,
                "classes": sorted(element.classes),
                "attributes": dict(sorted(element.attributes.items())),
                "rect": None
                if element.rect is None
                else [element.rect.x, element.rect.y, element.rect.w, element.rect.h],
                "displayNone": element.display_none,
                "parentId": element.parent_id,
                "siblingIndex": element.sibling_index,
            }
            for element in snapshot
        ],
        "viewport": [viewport.width, viewport.height],
        "options": {
            "forceInclude": list(options.force_include),
            "forceExclude": list(options.force_exclude),
            "ignoreAtRules": list(options.ignore_at_rules),
            "baseFontSizePx": options.base_font_size_px,
        },
    }
    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()
