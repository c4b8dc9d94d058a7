"""At-rule resolution: decides whether wrapping conditions apply to the viewport.

Media queries are evaluated in three-valued logic: ``True`` and ``False``
when the query depends only on width, height and orientation, ``None``
when it references something a static snapshot cannot answer.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

import tinycss2

from .types import AtRuleFrame, AtRuleKind, Declaration, ExtractionOptions, Rule, Viewport

_SCREEN_MEDIA_TYPES = frozenset({"all", "screen"})
_RANGE_FEATURES = frozenset({"width", "height"})

_ABSOLUTE_UNITS = {
    "px": 1.0,
    "in": 96.0,
    "cm": 96.0 / 2.54,
    "mm": 96.0 / 25.4,
    "q": 96.0 / 101.6,
    "pt": 96.0 / 72.0,
    "pc": 16.0,
}

ANIMATION_PROPERTIES = frozenset(
    {"animation", "animation-name", "-webkit-animation", "-webkit-animation-name", "-moz-animation", "-moz-animation-name"}
)
FONT_PROPERTIES = frozenset({"font", "font-family"})


class FrameVerdict(str, Enum):
    applies = "applies"
    not_applicable = "not_applicable"
    ignored = "ignored"
    ambiguous = "ambiguous"


@dataclass(frozen=True)
class ChainResolution:
    verdict: FrameVerdict
    reason: str = ""


class _Unevaluable(Exception):
    """Raised while walking a media query that cannot be decided statically."""


def _and3(values: Iterable[Optional[bool]]) -> Optional[bool]:
    result: Optional[bool] = True
    for value in values:
        if value is False:
            return False
        if value is None:
            result = None
    return result


def _or3(values: Iterable[Optional[bool]]) -> Optional[bool]:
    result: Optional[bool] = False
    for value in values:
        if value is True:
            return True
        if value is None:
            result = None
    return result


def _not3(value: Optional[bool]) -> Optional[bool]:
    return None if value is None else not value


def _significant(tokens: Sequence) -> List:
    return [tok for tok in tokens if tok.type not in ("whitespace", "comment")]


def _is_ident(token, *values: str) -> bool:
    return token.type == "ident" and (not values or token.lower_value in values)


def split_media_queries(query_list: str) -> List[List]:
    """Split a media query list on top-level commas; an empty list yields no queries."""

    tokens = tinycss2.parse_component_value_list(query_list, skip_comments=True)
    if not _significant(tokens):
        return []
    groups: List[List] = [[]]
    for tok in tokens:
        if tok.type == "literal" and tok.value == ",":
            groups.append([])
        else:
            groups[-1].append(tok)
    return [_significant(group) for group in groups]


def _feature_names(tokens: Sequence) -> Iterable[str]:
    for tok in tokens:
        if tok.type != "() block":
            continue
        content = _significant(tok.content)
        if len(content) > 1 and _is_ident(content[0]) and content[1].type == "literal" and content[1].value == ":":
            name = content[0].lower_value
            yield name
            if name.startswith(("min-", "max-")):
                yield name[4:]
            continue
        for inner in content:
            if _is_ident(inner) and inner.lower_value not in ("and", "or", "not"):
                yield inner.lower_value
        yield from _feature_names(content)


def media_query_is_ignored(query: List, ignored: Set[str]) -> bool:
    """True when the query's media type (unless negated) or one of its features is listed."""

    items = query[1:] if query and _is_ident(query[0], "only") else query
    if items and _is_ident(items[0]) and items[0].lower_value not in ("and", "or", "not"):
        if items[0].lower_value in ignored:
            return True
    return any(name in ignored for name in _feature_names(items))


class MediaQueryEvaluator:
    """Evaluates a media query list against a fixed viewport."""

    def __init__(self, viewport: Viewport, base_font_size_px: float = 16.0) -> None:
        self.viewport = viewport
        self.base_font_size_px = base_font_size_px
        self.unevaluable: List[str] = []

    def evaluate(self, query_list: str) -> Optional[bool]:
        return self.evaluate_queries(split_media_queries(query_list))

    def evaluate_queries(self, queries: Sequence[List]) -> Optional[bool]:
        if not queries:
            return True
        return _or3(self._evaluate_query(query) for query in queries)

    def _evaluate_query(self, items: List) -> Optional[bool]:
        if not items:
            self.unevaluable.append("empty media query")
            return None
        try:
            negate = False
            if len(items) > 1 and _is_ident(items[0], "not") and _is_ident(items[1]):
                negate = True
                items = items[1:]
            elif _is_ident(items[0], "only"):
                items = items[1:]

            if items and _is_ident(items[0]) and items[0].lower_value not in ("and", "or", "not"):
                media_type = items[0].lower_value in _SCREEN_MEDIA_TYPES
                rest = items[1:]
                if rest:
                    if not _is_ident(rest[0], "and") or len(rest) < 2:
                        raise _Unevaluable(tinycss2.serialize(items))
                    result = _and3([media_type, self._evaluate_condition(rest[1:], allow_or=False)])
                else:
                    result = media_type
            else:
                result = self._evaluate_condition(items, allow_or=True)
        except _Unevaluable as exc:
            self.unevaluable.append(str(exc))
            return None
        return _not3(result) if negate else result

    def _evaluate_condition(self, items: List, allow_or: bool) -> Optional[bool]:
        if not items:
            raise _Unevaluable("empty condition")
        if _is_ident(items[0], "not"):
            if len(items) != 2:
                raise _Unevaluable(tinycss2.serialize(items))
            return _not3(self._evaluate_in_parens(items[1]))

        operands = items[0::2]
        operators = {tok.lower_value if tok.type == "ident" else "" for tok in items[1::2]}
        if len(items) % 2 == 0 or len(operators) > 1 or not operators <= {"and", "or"}:
            raise _Unevaluable(tinycss2.serialize(items))
        if "or" in operators and not allow_or:
            raise _Unevaluable(tinycss2.serialize(items))

        values = [self._evaluate_in_parens(operand) for operand in operands]
        if "or" in operators:
            return _or3(values)
        return _and3(values)

    def _evaluate_in_parens(self, token) -> Optional[bool]:
        if token.type != "() block":
            raise _Unevaluable(tinycss2.serialize([token]))
        content = _significant(token.content)
        if not content:
            raise _Unevaluable("()")
        if _is_ident(content[0], "not") or content[0].type == "() block":
            return self._evaluate_condition(content, allow_or=True)
        return self._evaluate_feature(content)

    def _evaluate_feature(self, content: List) -> Optional[bool]:
        first = content[0]
        if len(content) == 1 and _is_ident(first):
            return self._boolean_feature(first.lower_value)
        if len(content) >= 3 and _is_ident(first) and content[1].type == "literal" and content[1].value == ":":
            return self._plain_feature(first.lower_value, content[2:])
        return self._range_feature(content)

    def _boolean_feature(self, name: str) -> Optional[bool]:
        if name in _RANGE_FEATURES:
            return self._dimension(name) > 0
        if name == "orientation":
            return True
        self.unevaluable.append(name)
        return None

    def _plain_feature(self, name: str, value: List) -> Optional[bool]:
        if name == "orientation":
            if len(value) != 1 or not _is_ident(value[0], "portrait", "landscape"):
                raise _Unevaluable(f"orientation: {tinycss2.serialize(value)}")
            portrait = self.viewport.height >= self.viewport.width
            return portrait if value[0].lower_value == "portrait" else not portrait

        prefix, _, feature = name.partition("-")
        if feature in _RANGE_FEATURES and prefix in ("min", "max"):
            length = self._length(value)
            actual = self._dimension(feature)
            return actual >= length if prefix == "min" else actual <= length
        if name in _RANGE_FEATURES:
            return self._dimension(name) == self._length(value)

        self.unevaluable.append(name)
        return None

    def _range_feature(self, content: List) -> Optional[bool]:
        # Level 4 range syntax: "width >= 600px" or "400px < width <= 700px".
        parts: List = []
        for tok in content:
            if tok.type == "literal" and tok.value in ("<", ">", "="):
                if parts and isinstance(parts[-1], str) and parts[-1] in ("<", ">"):
                    if tok.value != "=":
                        raise _Unevaluable(tinycss2.serialize(content))
                    parts[-1] += "="
                else:
                    parts.append(tok.value)
            else:
                parts.append(tok)

        names = [p for p in parts if not isinstance(p, str) and _is_ident(p)]
        if len(names) != 1 or len(parts) not in (3, 5):
            raise _Unevaluable(tinycss2.serialize(content))
        name = names[0].lower_value
        if name not in _RANGE_FEATURES:
            self.unevaluable.append(name)
            return None

        actual = self._dimension(name)
        values: List[float] = []
        for part in parts[0::2]:
            if isinstance(part, str):
                raise _Unevaluable(tinycss2.serialize(content))
            values.append(actual if part is names[0] else self._length([part]))
        operators = parts[1::2]
        if not all(isinstance(op, str) for op in operators):
            raise _Unevaluable(tinycss2.serialize(content))

        return all(_compare(values[i], operators[i], values[i + 1]) for i in range(len(operators)))

    def _dimension(self, name: str) -> float:
        return self.viewport.width if name == "width" else self.viewport.height

    def _length(self, value: List) -> float:
        if len(value) != 1:
            raise _Unevaluable(tinycss2.serialize(value))
        tok = value[0]
        if tok.type == "number" and tok.value == 0:
            return 0.0
        if tok.type != "dimension":
            raise _Unevaluable(tinycss2.serialize(value))
        unit = tok.lower_unit
        if unit in _ABSOLUTE_UNITS:
            return tok.value * _ABSOLUTE_UNITS[unit]
        if unit in ("em", "rem"):
            return tok.value * self.base_font_size_px
        if unit == "vw":
            return tok.value * self.viewport.width / 100.0
        if unit == "vh":
            return tok.value * self.viewport.height / 100.0
        raise _Unevaluable(tinycss2.serialize(value))


def _compare(left: float, operator: str, right: float) -> bool:
    if operator == "<":
        return left < right
    if operator == "<=":
        return left <= right
    if operator == ">":
        return left > right
    if operator == ">=":
        return left >= right
    return left == right


def evaluate_media(query_list: str, viewport: Viewport, base_font_size_px: float = 16.0) -> Optional[bool]:
    """Evaluate a media query list; ``None`` means it cannot be decided statically."""

    return MediaQueryEvaluator(viewport, base_font_size_px).evaluate(query_list)


class AtRuleResolver:
    """Resolves a rule's at-rule chain top-down for one extraction run."""

    def __init__(self, viewport: Viewport, options: ExtractionOptions) -> None:
        self.viewport = viewport
        self.options = options
        self.ignored = frozenset(keyword.strip().lstrip("@").lower() for keyword in options.ignore_at_rules)
        self._frames: Dict[int, ChainResolution] = {}

    def is_ignored(self, keyword: str) -> bool:
        if not self.ignored:
            return False
        keyword = keyword.lower()
        unprefixed = keyword.split("-", 2)[-1] if keyword.startswith("-") else keyword
        return keyword in self.ignored or unprefixed in self.ignored

    def resolve_frame(self, frame: AtRuleFrame) -> ChainResolution:
        cached = self._frames.get(frame.frame_index)
        if cached is None:
            cached = self._resolve_frame(frame)
            self._frames[frame.frame_index] = cached
        return cached

    def _resolve_frame(self, frame: AtRuleFrame) -> ChainResolution:
        if self.is_ignored(frame.keyword):
            return ChainResolution(FrameVerdict.ignored, f"ignored at-rule {frame.header}")

        if frame.kind is AtRuleKind.media:
            queries = split_media_queries(frame.condition_text)
            if self.ignored:
                remaining = [query for query in queries if not media_query_is_ignored(query, self.ignored)]
                if queries and not remaining:
                    return ChainResolution(FrameVerdict.ignored, f"ignored at-rule {frame.header}")
                queries = remaining
            evaluator = MediaQueryEvaluator(self.viewport, self.options.base_font_size_px)
            result = evaluator.evaluate_queries(queries)
            if result is True:
                return ChainResolution(FrameVerdict.applies)
            if result is False:
                return ChainResolution(
                    FrameVerdict.not_applicable, f"{frame.header} does not match the viewport"
                )
            features = ", ".join(dict.fromkeys(evaluator.unevaluable)) or frame.condition_text
            return ChainResolution(
                FrameVerdict.ambiguous, f"{frame.header} cannot be evaluated statically ({features})"
            )

        if frame.kind is AtRuleKind.supports:
            condition = frame.condition_text.strip().lower()
            if condition in ("", "true", "(true)"):
                return ChainResolution(FrameVerdict.applies)
            return ChainResolution(FrameVerdict.ambiguous, f"{frame.header} depends on runtime feature support")

        return ChainResolution(FrameVerdict.applies)

    def resolve(self, chain: Sequence[AtRuleFrame]) -> ChainResolution:
        ambiguous: List[str] = []
        for frame in chain:
            resolution = self.resolve_frame(frame)
            if resolution.verdict in (FrameVerdict.ignored, FrameVerdict.not_applicable):
                return resolution
            if resolution.verdict is FrameVerdict.ambiguous:
                ambiguous.append(resolution.reason)
        if ambiguous:
            return ChainResolution(FrameVerdict.ambiguous, "; ".join(ambiguous))
        return ChainResolution(FrameVerdict.applies)


def _unquote(text: str) -> str:
    text = text.strip()
    if len(text) >= 2 and text[0] == text[-1] and text[0] in "\"'":
        return text[1:-1]
    return text


def _names_in(tokens: Sequence) -> Iterable[str]:
    for tok in tokens:
        if tok.type in ("ident", "string"):
            yield tok.value
        elif tok.type == "function":
            yield from _names_in(tok.arguments)


def _family_candidates(tokens: Sequence) -> Set[str]:
    """Family names in a font value, including every tail of unquoted name runs."""

    candidates: Set[str] = set()
    run: List[str] = []

    def flush() -> None:
        for start in range(len(run)):
            candidates.add(" ".join(run[start:]).lower())
        run.clear()

    for tok in tokens:
        if tok.type == "ident":
            run.append(tok.value)
        elif tok.type == "whitespace":
            continue
        else:
            flush()
            if tok.type == "string":
                candidates.add(tok.value.lower())
            elif tok.type == "function":
                candidates |= _family_candidates(tok.arguments)
    flush()
    return candidates


def referenced_names(declarations: Iterable[Declaration]) -> Tuple[Set[str], Set[str]]:
    """Return ``(animation names, lower-cased font families)`` referenced by declarations.

    Custom properties are scanned for both kinds since their use sites cannot be
    resolved statically.
    """

    animations: Set[str] = set()
    families: Set[str] = set()
    for declaration in declarations:
        prop = declaration.property.lower()
        custom = prop.startswith("--")
        if prop not in ANIMATION_PROPERTIES and prop not in FONT_PROPERTIES and not custom:
            continue
        tokens = tinycss2.parse_component_value_list(declaration.value, skip_comments=True)
        if prop in ANIMATION_PROPERTIES or custom:
            animations.update(_names_in(tokens))
        if prop in FONT_PROPERTIES or custom:
            families |= _family_candidates(tokens)
    return animations, families


def keyframes_name(rule: Rule) -> Optional[str]:
    for frame in reversed(rule.at_rule_chain):
        if frame.kind is AtRuleKind.keyframes:
            return _unquote(frame.condition_text)
    return None


def font_face_family(rule: Rule) -> Optional[str]:
    for declaration in rule.declarations:
        if declaration.property.lower() == "font-family":
            tokens = _significant(tinycss2.parse_component_value_list(declaration.value, skip_comments=True))
            if len(tokens) == 1 and tokens[0].type == "string":
                return tokens[0].value.lower()
            return " ".join(tok.value for tok in tokens if tok.type == "ident").lower() or None
    return None
