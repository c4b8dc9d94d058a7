"""Exceptions raised inside the engine.

Every non-fatal error is converted into an ``ExtractionWarning`` by the
component that catches it; only ``EmptyInputError`` aborts a run, and even
that is reported on the result rather than raised to the caller.
"""

from __future__ import annotations

from typing import Optional

from .types import ExtractionWarning, WarningKind


class CriticalCSSError(Exception):
    """Base class for engine errors."""

    kind: WarningKind = WarningKind.parse_error

    def to_warning(self, rule_source_index: Optional[int] = None) -> ExtractionWarning:
        return ExtractionWarning(kind=self.kind, message=str(self), rule_source_index=rule_source_index)


class ParseError(CriticalCSSError):
    """Malformed rule or declaration."""


class SelectorError(ParseError):
    """Selector text that cannot be parsed."""


class UnsupportedSelectorError(CriticalCSSError):
    """Selector or at-rule feature that cannot be evaluated statically."""

    kind = WarningKind.unsupported_selector


class GeometryMissingError(CriticalCSSError):
    """Snapshot element without a bounding rect."""

    kind = WarningKind.geometry_missing

    def __init__(self, element_id: str) -> None:
        super().__init__(f"Element {element_id!r} has no rect; treated as non-critical")
        self.element_id = element_id


class EmptyInputError(CriticalCSSError):
    """No stylesheets or an empty DOM snapshot."""


class UnsupportedAtRuleError(UnsupportedSelectorError):
    """At-rule the engine keeps verbatim because it cannot scope it."""

    kind = WarningKind.unsupported_at_rule
