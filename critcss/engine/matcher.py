"""Pure selector matching against a DOM snapshot.

Matching is right-to-left: the subject sequence is tested first, then the
combinator chain is walked towards the root, backtracking over alternative
ancestors and siblings when a later step fails.

Pseudo-classes that depend on runtime state cannot be decided from a static
snapshot. They are evaluated with a *polarity*: when asking whether a rule
could apply (the default) they count as satisfied; inside ``:not()`` the
polarity flips so the negation stays conservative as well.
"""

from __future__ import annotations

from typing import Callable, Iterator, Optional, Tuple

from .selectors import LOGICAL_PSEUDO_CLASSES, STATIC_PSEUDO_CLASSES
from .types import (
    AttributePredicate,
    Combinator,
    DomSnapshot,
    ElementSnapshot,
    PseudoClass,
    Selector,
    SimpleSelectorSequence,
)

_LINK_TAGS = frozenset({"a", "area"})
_FORM_TAGS = frozenset({"button", "input", "select", "textarea", "optgroup", "option", "fieldset"})
_REQUIRABLE_TAGS = frozenset({"input", "select", "textarea"})
_TEXT_INPUT_TAGS = frozenset({"input", "textarea"})


def matches(selector: Selector, element_id: str, snapshot: DomSnapshot) -> bool:
    """Return True when *selector* could apply to the element."""

    return _match_selector(selector, element_id, snapshot, optimistic=True)


def matches_any(selectors: Tuple[Selector, ...], element_id: str, snapshot: DomSnapshot) -> bool:
    return any(_match_selector(sel, element_id, snapshot, True) for sel in selectors)


def _match_selector(
    selector: Selector,
    element_id: str,
    snapshot: DomSnapshot,
    optimistic: bool,
    anchored: Optional[Callable[[str], bool]] = None,
) -> bool:
    last = len(selector.sequences) - 1
    if not _match_sequence(selector.sequences[last], element_id, snapshot, optimistic):
        return False
    return _match_from(selector, last, element_id, snapshot, optimistic, anchored)


def _match_from(
    selector: Selector,
    index: int,
    element_id: str,
    snapshot: DomSnapshot,
    optimistic: bool,
    anchored: Optional[Callable[[str], bool]],
) -> bool:
    """Match sequences ``0..index-1`` given that sequence ``index`` matched *element_id*."""

    if index == 0:
        return anchored is None or anchored(element_id)
    combinator = selector.combinators[index - 1]
    previous = selector.sequences[index - 1]
    for candidate in _candidates(combinator, element_id, snapshot):
        if _match_sequence(previous, candidate, snapshot, optimistic):
            if _match_from(selector, index - 1, candidate, snapshot, optimistic, anchored):
                return True
    return False


def _candidates(combinator: Combinator, element_id: str, snapshot: DomSnapshot) -> Iterator[str]:
    if combinator is Combinator.descendant:
        yield from _ancestors(element_id, snapshot)
    elif combinator is Combinator.child:
        parent = snapshot.parent(element_id)
        if parent is not None:
            yield parent.id
    elif combinator is Combinator.adjacent_sibling:
        previous = snapshot.previous_sibling(element_id)
        if previous is not None:
            yield previous
    else:
        siblings = snapshot.siblings(element_id)
        position = snapshot.sibling_position(element_id)
        for sibling in reversed(siblings[:position]):
            yield sibling


def _ancestors(element_id: str, snapshot: DomSnapshot) -> Iterator[str]:
    parent = snapshot.parent(element_id)
    seen = set()
    while parent is not None and parent.id not in seen:
        seen.add(parent.id)
        yield parent.id
        parent = snapshot.parent(parent.id)


def _match_sequence(sequence: SimpleSelectorSequence, element_id: str, snapshot: DomSnapshot, optimistic: bool) -> bool:
    element = snapshot.get(element_id)

    if sequence.tag is not None and element.tag.lower() != sequence.tag:
        return False
    if sequence.element_id is not None and element.attributes.get("id", element.id) != sequence.element_id:
        return False
    if sequence.classes and not sequence.classes <= element.classes:
        return False
    for predicate in sequence.attributes:
        if not _match_attribute(predicate, element):
            return False
    for pseudo in sequence.pseudo_classes:
        if not _match_pseudo_class(pseudo, element, snapshot, optimistic):
            return False
    return True


def _attribute_value(element: ElementSnapshot, name: str) -> Optional[str]:
    if name == "class" and "class" not in element.attributes:
        return " ".join(sorted(element.classes)) if element.classes else None
    if name == "id" and "id" not in element.attributes:
        return element.id
    for key, value in element.attributes.items():
        if key.lower() == name:
            return value
    return None


def _match_attribute(predicate: AttributePredicate, element: ElementSnapshot) -> bool:
    actual = _attribute_value(element, predicate.name)
    if actual is None:
        return False
    if predicate.operator is None:
        return True

    expected = predicate.value or ""
    if predicate.case_insensitive:
        actual = actual.lower()
        expected = expected.lower()

    op = predicate.operator
    if op == "=":
        return actual == expected
    if op == "~=":
        return expected in actual.split()
    if op == "|=":
        return actual == expected or actual.startswith(expected + "-")
    if op == "^=":
        return bool(expected) and actual.startswith(expected)
    if op == "$=":
        return bool(expected) and actual.endswith(expected)
    if op == "*=":
        return bool(expected) and expected in actual
    return False


def _has_attribute(element: ElementSnapshot, name: str) -> bool:
    return _attribute_value(element, name) is not None


def _match_pseudo_class(pseudo: PseudoClass, element: ElementSnapshot, snapshot: DomSnapshot, optimistic: bool) -> bool:
    name = pseudo.name

    if name in LOGICAL_PSEUDO_CLASSES:
        if name == "not":
            return not any(_match_selector(sel, element.id, snapshot, not optimistic) for sel in pseudo.selectors)
        return any(_match_selector(sel, element.id, snapshot, optimistic) for sel in pseudo.selectors)

    if name == "has":
        return _match_has(pseudo, element, snapshot, optimistic)

    if pseudo.nth is not None:
        return _match_nth(pseudo, element, snapshot, optimistic)

    if name == "lang":
        return _match_lang(pseudo.argument or "", element, snapshot)

    if name in STATIC_PSEUDO_CLASSES:
        return _match_static(name, element, snapshot)

    # Runtime state or unknown pseudo-class.
    return optimistic


def _match_static(name: str, element: ElementSnapshot, snapshot: DomSnapshot) -> bool:
    tag = element.tag.lower()
    siblings = snapshot.siblings(element.id)
    position = snapshot.sibling_position(element.id)

    if name in ("root", "scope"):
        return snapshot.parent(element.id) is None
    if name == "empty":
        # Text content is not part of the snapshot; only element children disqualify.
        return not snapshot.children(element.id)
    if name == "first-child":
        return position == 0
    if name == "last-child":
        return position == len(siblings) - 1
    if name == "only-child":
        return len(siblings) == 1
    if name in ("first-of-type", "last-of-type", "only-of-type"):
        same_type = [sid for sid in siblings if snapshot.get(sid).tag.lower() == tag]
        if name == "first-of-type":
            return same_type[0] == element.id
        if name == "last-of-type":
            return same_type[-1] == element.id
        return len(same_type) == 1
    if name in ("link", "any-link"):
        return tag in _LINK_TAGS and _has_attribute(element, "href")
    if name == "checked":
        return _has_attribute(element, "checked") or _has_attribute(element, "selected")
    if name == "disabled":
        return tag in _FORM_TAGS and _has_attribute(element, "disabled")
    if name == "enabled":
        return tag in _FORM_TAGS and not _has_attribute(element, "disabled")
    if name == "required":
        return tag in _REQUIRABLE_TAGS and _has_attribute(element, "required")
    if name == "optional":
        return tag in _REQUIRABLE_TAGS and not _has_attribute(element, "required")
    if name in ("read-only", "read-write"):
        writable = (tag in _TEXT_INPUT_TAGS and not _has_attribute(element, "readonly")) or _has_attribute(
            element, "contenteditable"
        )
        return writable if name == "read-write" else not writable
    return False


def _nth_position(pseudo: PseudoClass, element: ElementSnapshot, snapshot: DomSnapshot, optimistic: bool) -> Optional[int]:
    siblings = list(snapshot.siblings(element.id))
    if pseudo.name in ("nth-of-type", "nth-last-of-type"):
        tag = element.tag.lower()
        siblings = [sid for sid in siblings if snapshot.get(sid).tag.lower() == tag]
    elif pseudo.selectors:
        siblings = [
            sid
            for sid in siblings
            if any(_match_selector(sel, sid, snapshot, optimistic) for sel in pseudo.selectors)
        ]
    if element.id not in siblings:
        return None
    if pseudo.name.startswith("nth-last"):
        siblings.reverse()
    return siblings.index(element.id) + 1


def _match_nth(pseudo: PseudoClass, element: ElementSnapshot, snapshot: DomSnapshot, optimistic: bool) -> bool:
    index = _nth_position(pseudo, element, snapshot, optimistic)
    if index is None:
        return False
    a, b = pseudo.nth
    if a == 0:
        return index == b
    diff = index - b
    return diff % a == 0 and diff // a >= 0


def _match_lang(expected: str, element: ElementSnapshot, snapshot: DomSnapshot) -> bool:
    current: Optional[ElementSnapshot] = element
    while current is not None:
        lang = _attribute_value(current, "lang")
        if lang is not None:
            lang = lang.lower()
            wanted = expected.lower()
            return lang == wanted or lang.startswith(wanted + "-")
        current = snapshot.parent(current.id)
    return False


def _match_has(pseudo: PseudoClass, element: ElementSnapshot, snapshot: DomSnapshot, optimistic: bool) -> bool:
    anchor_id = element.id
    for selector, leading in zip(pseudo.selectors, pseudo.relative):
        leading = leading or Combinator.descendant
        if leading in (Combinator.descendant, Combinator.child):
            pool = list(snapshot.descendants(anchor_id))
        else:
            following = snapshot.siblings(anchor_id)[snapshot.sibling_position(anchor_id) + 1:]
            pool = []
            for sibling in following:
                pool.append(sibling)
                pool.extend(snapshot.descendants(sibling))

        def anchored(candidate: str, leading: Combinator = leading) -> bool:
            return _relates_to(anchor_id, leading, candidate, snapshot)

        for candidate in pool:
            if _match_selector(selector, candidate, snapshot, optimistic, anchored):
                return True
    return False


def _relates_to(anchor_id: str, combinator: Combinator, element_id: str, snapshot: DomSnapshot) -> bool:
    """True when *element_id* stands in *combinator* relation to *anchor_id*."""

    if combinator is Combinator.descendant:
        return anchor_id in _ancestors(element_id, snapshot)
    if combinator is Combinator.child:
        parent = snapshot.parent(element_id)
        return parent is not None and parent.id == anchor_id
    if combinator is Combinator.adjacent_sibling:
        return snapshot.previous_sibling(element_id) == anchor_id
    siblings = snapshot.siblings(element_id)
    return anchor_id in siblings[: snapshot.sibling_position(element_id)]
