"""Immutable data model shared by the extraction engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Dict, Iterable, Iterator, Mapping, Optional, Tuple


class Combinator(str, Enum):
    """Relationship between two adjacent sequences of a selector."""

    descendant = " "
    child = ">"
    adjacent_sibling = "+"
    general_sibling = "~"


class AtRuleKind(str, Enum):
    """At-rules that wrap other rules."""

    media = "media"
    supports = "supports"
    layer = "layer"
    keyframes = "keyframes"
    font_face = "font-face"


class RuleKind(str, Enum):
    """Tagged variant of a parsed rule."""

    style = "style"
    keyframe = "keyframe"
    font_face = "font-face"
    opaque = "opaque"


class Placement(str, Enum):
    """Which output bundle a rule ends up in."""

    critical = "critical"
    deferred = "deferred"
    both = "both"


class WarningKind(str, Enum):
    """Categories of non-fatal issues reported alongside output."""

    parse_error = "parse_error"
    unsupported_selector = "unsupported_selector"
    unsupported_at_rule = "unsupported_at_rule"
    ambiguous_condition = "ambiguous_condition"
    geometry_missing = "geometry_missing"


Specificity = Tuple[int, int, int]


@dataclass(frozen=True)
class AttributePredicate:
    name: str
    operator: Optional[str] = None
    value: Optional[str] = None
    case_insensitive: bool = False


@dataclass(frozen=True)
class PseudoClass:
    """A pseudo-class with its statically decidable argument, if any.

    ``selectors`` holds the parsed argument of logical pseudo-classes
    (``:not``, ``:is``, ``:has``...), ``nth`` the ``(a, b)`` pair of the
    ``:nth-*`` family and ``argument`` the raw argument text.
    """

    name: str
    argument: Optional[str] = None
    selectors: Tuple["Selector", ...] = ()
    nth: Optional[Tuple[int, int]] = None
    relative: Tuple[Optional[Combinator], ...] = ()


@dataclass(frozen=True)
class SimpleSelectorSequence:
    tag: Optional[str] = None
    element_id: Optional[str] = None
    classes: frozenset = frozenset()
    attributes: Tuple[AttributePredicate, ...] = ()
    pseudo_classes: Tuple[PseudoClass, ...] = ()
    pseudo_elements: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Selector:
    """A complex selector: sequences joined left to right by combinators."""

    sequences: Tuple[SimpleSelectorSequence, ...]
    combinators: Tuple[Combinator, ...]
    text: str
    specificity: Specificity = (0, 0, 0)
    unsupported: Tuple[str, ...] = ()

    @property
    def subject(self) -> SimpleSelectorSequence:
        return self.sequences[-1]

    @property
    def pseudo_elements(self) -> Tuple[str, ...]:
        return self.subject.pseudo_elements


@dataclass(frozen=True)
class Declaration:
    property: str
    value: str
    important: bool = False


@dataclass(frozen=True)
class AtRuleFrame:
    """One wrapping at-rule occurrence in a rule's chain."""

    kind: AtRuleKind
    condition_text: str
    keyword: str
    frame_index: int

    @property
    def header(self) -> str:
        if self.condition_text:
            return f"@{self.keyword} {self.condition_text}"
        return f"@{self.keyword}"


@dataclass(frozen=True)
class Rule:
    source_index: int
    file_id: str
    kind: RuleKind
    selectors: Tuple[Selector, ...] = ()
    selector_text: str = ""
    declarations: Tuple[Declaration, ...] = ()
    at_rule_chain: Tuple[AtRuleFrame, ...] = ()
    verbatim: Optional[str] = None


@dataclass(frozen=True)
class StyleSheetAST:
    rules: Tuple[Rule, ...] = ()

    def __iter__(self) -> Iterator[Rule]:
        return iter(self.rules)

    def __len__(self) -> int:
        return len(self.rules)


@dataclass(frozen=True)
class Rect:
    x: float
    y: float
    w: float
    h: float


@dataclass(frozen=True)
class Viewport:
    width: float
    height: float


@dataclass(frozen=True)
class ElementSnapshot:
    id: str
    tag: str
    classes: frozenset = frozenset()
    attributes: Mapping[str, str] = field(default_factory=dict, hash=False)
    rect: Optional[Rect] = None
    display_none: bool = False
    parent_id: Optional[str] = None
    sibling_index: Optional[int] = None


def find_parent_cycle(parents: Mapping[str, Optional[str]]) -> Optional[str]:
    """Return an element id that is its own ancestor, or ``None`` for a proper forest."""

    settled: set = set()
    for start in parents:
        path: Dict[str, None] = {}
        current: Optional[str] = start
        while current is not None and current in parents and current not in settled:
            if current in path:
                return current
            path[current] = None
            current = parents[current]
        settled.update(path)
    return None


class DomSnapshot:
    """Arena of element snapshots keyed by id.

    Children are derived from ``parent_id`` once at construction time, so the
    tree never holds parent/child object references.
    """

    __slots__ = ("_elements", "_order", "_children", "_position")

    def __init__(self, elements: Iterable[ElementSnapshot]) -> None:
        ordered: Dict[str, ElementSnapshot] = {}
        for element in elements:
            if element.id in ordered:
                raise ValueError(f"Duplicate element id in snapshot: {element.id!r}")
            ordered[element.id] = element

        cycle = find_parent_cycle({element.id: element.parent_id for element in ordered.values()})
        if cycle is not None:
            raise ValueError(f"Parent ids form a cycle at element {cycle!r}")

        self._elements: Mapping[str, ElementSnapshot] = MappingProxyType(ordered)
        self._order: Dict[str, int] = {element_id: pos for pos, element_id in enumerate(ordered)}

        grouped: Dict[Optional[str], list] = {}
        for element in ordered.values():
            parent = element.parent_id if element.parent_id in ordered else None
            grouped.setdefault(parent, []).append(element)

        children: Dict[Optional[str], Tuple[str, ...]] = {}
        position: Dict[str, int] = {}
        for parent, siblings in grouped.items():
            siblings.sort(
                key=lambda el: (
                    el.sibling_index if el.sibling_index is not None else self._order[el.id],
                    self._order[el.id],
                )
            )
            children[parent] = tuple(el.id for el in siblings)
            for pos, el in enumerate(siblings):
                position[el.id] = pos

        self._children = MappingProxyType(children)
        self._position = MappingProxyType(position)

    def __len__(self) -> int:
        return len(self._elements)

    def __contains__(self, element_id: object) -> bool:
        return element_id in self._elements

    def __iter__(self) -> Iterator[ElementSnapshot]:
        return iter(self._elements.values())

    def get(self, element_id: str) -> ElementSnapshot:
        return self._elements[element_id]

    def document_position(self, element_id: str) -> int:
        return self._order[element_id]

    def parent(self, element_id: str) -> Optional[ElementSnapshot]:
        parent_id = self._elements[element_id].parent_id
        if parent_id is None or parent_id not in self._elements:
            return None
        return self._elements[parent_id]

    def children(self, element_id: Optional[str]) -> Tuple[str, ...]:
        return self._children.get(element_id, ())

    def siblings(self, element_id: str) -> Tuple[str, ...]:
        """All element children of this element's parent, itself included."""

        parent = self.parent(element_id)
        return self.children(parent.id if parent is not None else None)

    def sibling_position(self, element_id: str) -> int:
        return self._position[element_id]

    def previous_sibling(self, element_id: str) -> Optional[str]:
        pos = self._position[element_id]
        if pos == 0:
            return None
        return self.siblings(element_id)[pos - 1]

    def descendants(self, element_id: str) -> Iterator[str]:
        stack = list(reversed(self.children(element_id)))
        while stack:
            current = stack.pop()
            yield current
            stack.extend(reversed(self.children(current)))


@dataclass(frozen=True)
class ExtractionOptions:
    force_include: Tuple[str, ...] = ()
    force_exclude: Tuple[str, ...] = ()
    ignore_at_rules: Tuple[str, ...] = ()
    base_font_size_px: float = 16.0


@dataclass(frozen=True)
class StylesheetSource:
    file_id: str
    css_text: str


@dataclass(frozen=True)
class ExtractionWarning:
    kind: WarningKind
    message: str
    rule_source_index: Optional[int] = None


@dataclass(frozen=True)
class ReportEntry:
    source_index: int
    selector_text: str
    included: Placement
    reason: str
    specificity: Tuple[Specificity, ...] = ()
