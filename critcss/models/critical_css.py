"""Models for critical CSS extraction workflows."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from critcss.engine.types import find_parent_cycle
from .job import JobStatus


class ViewportProfile(str):
    """Common viewport identifiers."""

    DESKTOP = "desktop"
    TABLET = "tablet"
    MOBILE = "mobile"


VIEWPORT_PROFILES: Dict[str, Dict[str, int]] = {
    ViewportProfile.DESKTOP: {"width": 1440, "height": 900},
    ViewportProfile.TABLET: {"width": 1024, "height": 768},
    ViewportProfile.MOBILE: {"width": 390, "height": 844},
}


class CamelModel(BaseModel):
    """Accepts and emits the camelCase keys used by snapshot producers."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StylesheetPayload(CamelModel):
    """One pre-flattened stylesheet, in the order it appears on the page."""

    file_id: str
    css_text: str


class RectPayload(BaseModel):
    x: float
    y: float
    w: float = Field(..., ge=0)
    h: float = Field(..., ge=0)


class ElementPayload(CamelModel):
    """Geometry and identity of one rendered element."""

    id: str
    tag: str
    classes: List[str] = Field(default_factory=list)
    attributes: Dict[str, str] = Field(default_factory=dict)
    rect: Optional[RectPayload] = None
    display_none: bool = False
    parent_id: Optional[str] = None
    sibling_index: Optional[int] = None


class ViewportPayload(BaseModel):
    width: float = Field(..., gt=0)
    height: float = Field(..., gt=0)


class ExtractionOptionsPayload(CamelModel):
    force_include: List[str] = Field(default_factory=list)
    force_exclude: List[str] = Field(default_factory=list)
    ignore_at_rules: List[str] = Field(default_factory=list)


class CriticalCSSRequest(CamelModel):
    """Payload accepted by the critical CSS endpoints."""

    stylesheets: List[StylesheetPayload] = Field(default_factory=list)
    dom_snapshot: List[ElementPayload] = Field(default_factory=list)
    viewport: Optional[ViewportPayload] = Field(default=None, description="Explicit viewport; wins over the profile.")
    viewport_profile: Optional[str] = Field(default=None, description="desktop, tablet or mobile.")
    options: ExtractionOptionsPayload = Field(default_factory=ExtractionOptionsPayload)
    template: Optional[str] = Field(default=None, description="Template identifier for downstream consumers.")
    deferred_href: Optional[str] = Field(default=None, description="URL the deferred bundle will be served from.")

    @field_validator("dom_snapshot")
    @classmethod
    def unique_element_ids(cls, value: List[ElementPayload]) -> List[ElementPayload]:
        """Reject snapshots that reuse an element id or whose parent ids loop."""

        seen = set()
        for element in value:
            if element.id in seen:
                raise ValueError(f"Duplicate element id {element.id!r} in domSnapshot")
            seen.add(element.id)
        cycle = find_parent_cycle({element.id: element.parent_id for element in value})
        if cycle is not None:
            raise ValueError(f"parentId values form a cycle at element {cycle!r}")
        return value

    @model_validator(mode="after")
    def known_profile(self) -> "CriticalCSSRequest":
        """Validate the viewport profile name when no explicit viewport is given."""

        profile = self.viewport_profile
        if self.viewport is None and profile and profile.lower() not in VIEWPORT_PROFILES:
            raise ValueError(f"Unknown viewport profile {profile!r}")
        return self


class DeferralInstructions(BaseModel):
    """Suggested loading strategy for the two bundles."""

    strategy: str
    description: str
    snippet: Optional[str] = None


class ReportEntryModel(CamelModel):
    source_index: int
    selector_text: str
    included: str
    reason: str
    specificity: List[Tuple[int, int, int]] = Field(default_factory=list)


class WarningModel(CamelModel):
    kind: str
    message: str
    rule_source_index: Optional[int] = None


class CriticalCSSResult(CamelModel):
    """Result payload for completed CSS extraction jobs."""

    critical_css: str
    deferred_css: str
    report: List[ReportEntryModel] = Field(default_factory=list)
    warnings: List[WarningModel] = Field(default_factory=list)
    defer_instructions: Optional[DeferralInstructions] = None
    viewport: Dict[str, float] = Field(default_factory=dict)
    critical_element_ids: List[str] = Field(default_factory=list)
    cache_key: Optional[str] = None
    error: Optional[str] = None


class CriticalCSSJobStatusResponse(BaseModel):
    """API response for CSS job status queries."""

    job_id: str
    status: JobStatus
    template: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    result: Optional[CriticalCSSResult] = None
    error: Optional[str] = None
