"""Service wrapper for critical CSS extraction."""

from __future__ import annotations

import html
from collections import OrderedDict
from threading import Lock
from typing import List, Optional

from critcss.core.config import settings
from critcss.core.logging import extraction_context, get_logger
from critcss.engine.pipeline import ExtractionResult, extract_critical_css, fingerprint
from critcss.engine.types import (
    DomSnapshot,
    ElementSnapshot,
    ExtractionOptions,
    Rect,
    StylesheetSource,
    Viewport,
)
from critcss.models.critical_css import (
    VIEWPORT_PROFILES,
    CriticalCSSRequest,
    CriticalCSSResult,
    DeferralInstructions,
    ElementPayload,
    ReportEntryModel,
    WarningModel,
)

logger = get_logger(__name__)


class ExtractionCache:
    """Bounded LRU of engine results keyed by the input fingerprint."""

    def __init__(self, max_entries: int) -> None:
        self._lock = Lock()
        self._max_entries = max_entries
        self._entries: "OrderedDict[str, ExtractionResult]" = OrderedDict()

    def get(self, key: str) -> Optional[ExtractionResult]:
        with self._lock:
            result = self._entries.get(key)
            if result is not None:
                self._entries.move_to_end(key)
            return result

    def put(self, key: str, result: ExtractionResult) -> None:
        if self._max_entries <= 0:
            return
        with self._lock:
            self._entries[key] = result
            self._entries.move_to_end(key)
            while len(self._entries) > self._max_entries:
                self._entries.popitem(last=False)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class CriticalCSSExtractor:
    """Translates API requests into engine runs and engine results into API models."""

    def __init__(self, cache_size: Optional[int] = None, max_workers: Optional[int] = None) -> None:
        self.cache = ExtractionCache(settings.extraction_cache_size if cache_size is None else cache_size)
        self.max_workers = settings.match_workers if max_workers is None else max_workers

    def extract(self, request: CriticalCSSRequest) -> CriticalCSSResult:
        """Compute critical and deferred CSS for the request."""

        viewport = self._resolve_viewport(request)
        stylesheets = [StylesheetSource(file_id=s.file_id, css_text=s.css_text) for s in request.stylesheets]
        snapshot = self._build_snapshot(request.dom_snapshot)
        options = ExtractionOptions(
            force_include=tuple(request.options.force_include),
            force_exclude=tuple(request.options.force_exclude),
            ignore_at_rules=tuple(request.options.ignore_at_rules),
            base_font_size_px=settings.media_base_font_size_px,
        )
        cache_key = fingerprint(stylesheets, snapshot, viewport, options)

        with extraction_context(cache_key=cache_key[:16], template=request.template):
            result = self.cache.get(cache_key)
            if result is None:
                result = extract_critical_css(stylesheets, snapshot, viewport, options, self.max_workers)
                if result.error is None:
                    self.cache.put(cache_key, result)
                logger.info(
                    "critical_css_extracted",
                    critical_bytes=len(result.critical_css),
                    deferred_bytes=len(result.deferred_css),
                    warnings=len(result.warnings),
                    error=result.error,
                )
            else:
                logger.debug("critical_css_cache_hit")

        return CriticalCSSResult(
            critical_css=result.critical_css,
            deferred_css=result.deferred_css,
            report=[
                ReportEntryModel(
                    source_index=entry.source_index,
                    selector_text=entry.selector_text,
                    included=entry.included.value,
                    reason=entry.reason,
                    specificity=list(entry.specificity),
                )
                for entry in result.report
            ],
            warnings=[
                WarningModel(kind=w.kind.value, message=w.message, rule_source_index=w.rule_source_index)
                for w in result.warnings
            ],
            defer_instructions=self._defer_instructions(result, request.deferred_href),
            viewport={"width": viewport.width, "height": viewport.height},
            critical_element_ids=sorted(result.critical_set, key=snapshot.document_position),
            cache_key=cache_key,
            error=result.error,
        )

    def _resolve_viewport(self, request: CriticalCSSRequest) -> Viewport:
        """Explicit viewport first, then the named profile, then the configured default."""

        if request.viewport is not None:
            return Viewport(width=request.viewport.width, height=request.viewport.height)

        profile = (request.viewport_profile or settings.default_viewport_profile).lower()
        size = VIEWPORT_PROFILES.get(profile, VIEWPORT_PROFILES["desktop"])
        return Viewport(width=size["width"], height=size["height"])

    def _build_snapshot(self, elements: List[ElementPayload]) -> DomSnapshot:
        return DomSnapshot(
            ElementSnapshot(
                id=element.id,
                tag=element.tag,
                classes=frozenset(element.classes),
                attributes=dict(element.attributes),
                rect=None
                if element.rect is None
                else Rect(x=element.rect.x, y=element.rect.y, w=element.rect.w, h=element.rect.h),
                display_none=element.display_none,
                parent_id=element.parent_id,
                sibling_index=element.sibling_index,
            )
            for element in elements
        )

    def _defer_instructions(self, result: ExtractionResult, href: Optional[str]) -> Optional[DeferralInstructions]:
        if result.error is not None:
            return None
        if not result.deferred_css:
            return DeferralInstructions(
                strategy="inline",
                description="Every rule is critical; inline it and drop the render-blocking stylesheet.",
            )

        target = html.escape(href or settings.deferred_stylesheet_href, quote=True)
        return DeferralInstructions(
            strategy="inline-critical-preload-deferred",
            description="Inline the critical CSS in <head> and swap the deferred bundle in once loaded.",
            snippet=(
                f'<link rel="preload" href="{target}" as="style" '
                "onload=\"this.onload=null;this.rel='stylesheet'\">"
                f'<noscript><link rel="stylesheet" href="{target}"></noscript>'
            ),
        )


critical_css_extractor = CriticalCSSExtractor()
