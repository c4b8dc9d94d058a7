"""Selector-list parsing on top of tinycss2 component values."""

from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

import tinycss2
from tinycss2.nth import parse_nth

from .errors import SelectorError
from .types import (
    AttributePredicate,
    Combinator,
    PseudoClass,
    Selector,
    SimpleSelectorSequence,
    Specificity,
)

# Pseudo-classes whose state depends on user interaction or runtime state.
# The matcher assumes they could apply; no warning is raised for them.
STATEFUL_PSEUDO_CLASSES = frozenset(
    {
        "hover",
        "focus",
        "active",
        "visited",
        "focus-within",
        "focus-visible",
        "target",
        "target-within",
        "placeholder-shown",
        "autofill",
        "-webkit-autofill",
        "invalid",
        "valid",
        "user-invalid",
        "user-valid",
        "in-range",
        "out-of-range",
        "indeterminate",
        "default",
        "fullscreen",
        "modal",
        "popover-open",
        "playing",
        "paused",
        "defined",
        "dir",
        "current",
        "past",
        "future",
        "open",
        "closed",
    }
)

# Pseudo-classes decided from the snapshot alone.
STATIC_PSEUDO_CLASSES = frozenset(
    {
        "root",
        "empty",
        "first-child",
        "last-child",
        "only-child",
        "first-of-type",
        "last-of-type",
        "only-of-type",
        "link",
        "any-link",
        "checked",
        "disabled",
        "enabled",
        "required",
        "optional",
        "read-only",
        "read-write",
        "scope",
    }
)

LOGICAL_PSEUDO_CLASSES = frozenset({"not", "is", "where", "matches", "-webkit-any", "-moz-any"})
NTH_PSEUDO_CLASSES = frozenset({"nth-child", "nth-last-child", "nth-of-type", "nth-last-of-type"})

# CSS2 pseudo-elements that are still accepted with a single colon.
LEGACY_PSEUDO_ELEMENTS = frozenset({"before", "after", "first-line", "first-letter"})

_ATTRIBUTE_OPERATORS = frozenset({"=", "~=", "|=", "^=", "$=", "*="})
_COMBINATORS = {">": Combinator.child, "+": Combinator.adjacent_sibling, "~": Combinator.general_sibling}


def _is_literal(token, value: str) -> bool:
    return token.type == "literal" and token.value == value


def _strip_whitespace(tokens: Sequence) -> List:
    items = [tok for tok in tokens if tok.type != "comment"]
    while items and items[0].type == "whitespace":
        items.pop(0)
    while items and items[-1].type == "whitespace":
        items.pop()
    return items


def _split_commas(tokens: Sequence) -> List[List]:
    groups: List[List] = [[]]
    for tok in tokens:
        if _is_literal(tok, ","):
            groups.append([])
        else:
            groups[-1].append(tok)
    return groups


def _add(left: Specificity, right: Specificity) -> Specificity:
    return (left[0] + right[0], left[1] + right[1], left[2] + right[2])


def _max_specificity(selectors: Sequence[Selector]) -> Specificity:
    if not selectors:
        return (0, 0, 0)
    return max(sel.specificity for sel in selectors)


def _pseudo_class_specificity(pseudo: PseudoClass) -> Specificity:
    if pseudo.name == "where":
        return (0, 0, 0)
    if pseudo.name in LOGICAL_PSEUDO_CLASSES or pseudo.name == "has":
        return _max_specificity(pseudo.selectors)
    if pseudo.name in NTH_PSEUDO_CLASSES:
        return _add((0, 1, 0), _max_specificity(pseudo.selectors))
    return (0, 1, 0)


def sequence_specificity(sequence: SimpleSelectorSequence) -> Specificity:
    """Specificity contributed by one compound selector."""

    total: Specificity = (
        1 if sequence.element_id is not None else 0,
        len(sequence.classes) + len(sequence.attributes),
        (1 if sequence.tag is not None else 0) + len(sequence.pseudo_elements),
    )
    for pseudo in sequence.pseudo_classes:
        total = _add(total, _pseudo_class_specificity(pseudo))
    return total


class _CompoundParser:
    """Consumes one compound selector from a token list."""

    def __init__(self, tokens: Sequence, pos: int) -> None:
        self.tokens = tokens
        self.pos = pos
        self.unsupported: List[str] = []

    def _peek(self, offset: int = 0):
        index = self.pos + offset
        if index < len(self.tokens):
            return self.tokens[index]
        return None

    def parse(self) -> SimpleSelectorSequence:
        tag: Optional[str] = None
        element_id: Optional[str] = None
        classes: List[str] = []
        attributes: List[AttributePredicate] = []
        pseudo_classes: List[PseudoClass] = []
        pseudo_elements: List[str] = []
        start = self.pos

        while True:
            tok = self._peek()
            if tok is None:
                break
            at_start = self.pos == start

            if tok.type == "ident" and at_start:
                tag = tok.lower_value
                self.pos += 1
            elif _is_literal(tok, "*") and at_start:
                self.pos += 1
            elif _is_literal(tok, "|"):
                raise SelectorError("Namespace selectors are not supported")
            elif tok.type == "hash":
                if not tok.is_identifier:
                    raise SelectorError(f"Invalid id selector '#{tok.value}'")
                if element_id is None:
                    element_id = tok.value
                else:
                    attributes.append(AttributePredicate("id", "=", tok.value))
                self.pos += 1
            elif _is_literal(tok, "."):
                name = self._peek(1)
                if name is None or name.type != "ident":
                    raise SelectorError("Expected class name after '.'")
                classes.append(name.value)
                self.pos += 2
            elif tok.type == "[] block":
                attributes.append(_parse_attribute(tok.content))
                self.pos += 1
            elif _is_literal(tok, ":"):
                self.pos += 1
                nxt = self._peek()
                if nxt is not None and _is_literal(nxt, ":"):
                    self.pos += 1
                    pseudo_elements.append(self._pseudo_element_name())
                else:
                    pseudo = self._pseudo_class()
                    if pseudo.name in LEGACY_PSEUDO_ELEMENTS and pseudo.argument is None:
                        pseudo_elements.append(pseudo.name)
                    else:
                        pseudo_classes.append(pseudo)
            else:
                break

        if self.pos == start:
            raise SelectorError(f"Unexpected token in selector: {tinycss2.serialize([self._peek()])!r}")

        return SimpleSelectorSequence(
            tag=tag,
            element_id=element_id,
            classes=frozenset(classes),
            attributes=tuple(attributes),
            pseudo_classes=tuple(pseudo_classes),
            pseudo_elements=tuple(pseudo_elements),
        )

    def _pseudo_element_name(self) -> str:
        tok = self._peek()
        if tok is None:
            raise SelectorError("Expected pseudo-element name after '::'")
        self.pos += 1
        if tok.type == "ident":
            return tok.lower_value
        if tok.type == "function":
            return f"{tok.lower_name}({tinycss2.serialize(tok.arguments).strip()})"
        raise SelectorError("Expected pseudo-element name after '::'")

    def _pseudo_class(self) -> PseudoClass:
        tok = self._peek()
        if tok is None:
            raise SelectorError("Expected pseudo-class name after ':'")
        self.pos += 1
        if tok.type == "ident":
            name = tok.lower_value
            if name not in STATIC_PSEUDO_CLASSES and name not in STATEFUL_PSEUDO_CLASSES:
                if name not in LEGACY_PSEUDO_ELEMENTS:
                    self.unsupported.append(f":{name}")
            return PseudoClass(name)
        if tok.type == "function":
            return self._functional_pseudo_class(tok)
        raise SelectorError("Expected pseudo-class name after ':'")

    def _functional_pseudo_class(self, tok) -> PseudoClass:
        name = tok.lower_name
        arguments = _strip_whitespace(tok.arguments)
        text = tinycss2.serialize(arguments).strip()

        if name in LOGICAL_PSEUDO_CLASSES:
            selectors = parse_selector_tokens(arguments)
            self._collect_nested(selectors)
            return PseudoClass(name, argument=text, selectors=selectors)

        if name == "has":
            selectors: List[Selector] = []
            leading: List[Optional[Combinator]] = []
            for group in _split_commas(arguments):
                selector, combinator = _parse_complex(group, relative=True)
                selectors.append(selector)
                leading.append(combinator)
            self._collect_nested(selectors)
            return PseudoClass(name, argument=text, selectors=tuple(selectors), relative=tuple(leading))

        if name in NTH_PSEUDO_CLASSES:
            nth_tokens = arguments
            of_selectors: Tuple[Selector, ...] = ()
            for index, arg in enumerate(arguments):
                if arg.type == "ident" and arg.lower_value == "of":
                    nth_tokens = arguments[:index]
                    of_selectors = parse_selector_tokens(arguments[index + 1:])
                    self._collect_nested(of_selectors)
                    break
            nth = parse_nth(nth_tokens)
            if nth is None:
                raise SelectorError(f"Invalid :{name}() argument {text!r}")
            return PseudoClass(name, argument=text, selectors=of_selectors, nth=tuple(nth))

        if name == "lang":
            return PseudoClass(name, argument=text.strip("\"'"))

        if name not in STATEFUL_PSEUDO_CLASSES:
            self.unsupported.append(f":{name}()")
        return PseudoClass(name, argument=text)

    def _collect_nested(self, selectors: Sequence[Selector]) -> None:
        for selector in selectors:
            self.unsupported.extend(selector.unsupported)


def _parse_attribute(content: Sequence) -> AttributePredicate:
    tokens = _strip_whitespace(content)
    if not tokens or tokens[0].type != "ident":
        raise SelectorError("Expected attribute name")
    name = tokens[0].lower_value
    rest = [tok for tok in tokens[1:] if tok.type != "whitespace"]
    if not rest:
        return AttributePredicate(name)

    operator = rest[0].value if rest[0].type == "literal" else None
    consumed = 1
    if operator in {"~", "|", "^", "$", "*"} and len(rest) > 1 and _is_literal(rest[1], "="):
        operator += "="
        consumed = 2
    if operator not in _ATTRIBUTE_OPERATORS:
        raise SelectorError(f"Invalid attribute selector [{tinycss2.serialize(content).strip()}]")

    rest = rest[consumed:]
    if not rest or rest[0].type not in ("ident", "string"):
        raise SelectorError(f"Missing value in attribute selector [{name}{operator}]")
    value = rest[0].value

    case_insensitive = False
    if len(rest) > 1:
        flag = rest[1]
        if flag.type != "ident" or flag.lower_value not in ("i", "s") or len(rest) > 2:
            raise SelectorError(f"Invalid attribute selector [{tinycss2.serialize(content).strip()}]")
        case_insensitive = flag.lower_value == "i"

    return AttributePredicate(name, operator, value, case_insensitive)


def _parse_complex(tokens: Sequence, relative: bool = False) -> Tuple[Selector, Optional[Combinator]]:
    items = _strip_whitespace(tokens)
    if not items:
        raise SelectorError("Empty selector")

    sequences: List[SimpleSelectorSequence] = []
    combinators: List[Combinator] = []
    unsupported: List[str] = []
    leading: Optional[Combinator] = None
    pending: Optional[Combinator] = None
    pos = 0

    while pos < len(items):
        tok = items[pos]
        if tok.type == "whitespace":
            if pending is None and sequences:
                pending = Combinator.descendant
            pos += 1
            continue
        if tok.type == "literal" and tok.value in _COMBINATORS:
            if pending not in (None, Combinator.descendant):
                raise SelectorError("Consecutive combinators in selector")
            if not sequences:
                if not relative or leading is not None:
                    raise SelectorError(f"Selector cannot start with {tok.value!r}")
                leading = _COMBINATORS[tok.value]
            else:
                pending = _COMBINATORS[tok.value]
            pos += 1
            continue

        if sequences:
            if pending is None:
                raise SelectorError("Missing combinator between compound selectors")
            combinators.append(pending)
        pending = None

        compound = _CompoundParser(items, pos)
        sequences.append(compound.parse())
        unsupported.extend(compound.unsupported)
        pos = compound.pos

    if pending is not None and pending is not Combinator.descendant:
        raise SelectorError("Selector cannot end with a combinator")
    if not sequences:
        raise SelectorError("Empty selector")

    specificity: Specificity = (0, 0, 0)
    for sequence in sequences:
        specificity = _add(specificity, sequence_specificity(sequence))

    selector = Selector(
        sequences=tuple(sequences),
        combinators=tuple(combinators),
        text=tinycss2.serialize(items).strip(),
        specificity=specificity,
        unsupported=tuple(dict.fromkeys(unsupported)),
    )
    return selector, leading


def parse_selector_tokens(tokens: Sequence) -> Tuple[Selector, ...]:
    """Parse a comma separated selector list given as tinycss2 tokens."""

    return tuple(_parse_complex(group)[0] for group in _split_commas(tokens))


def parse_selector_list(text: str) -> Tuple[Selector, ...]:
    """Parse a comma separated selector list from text."""

    if not text or not text.strip():
        raise SelectorError("Empty selector")
    return parse_selector_tokens(tinycss2.parse_component_value_list(text, skip_comments=True))
