"""Label selectors: requirements, selectors and the selector text syntax."""

from __future__ import annotations

import re
from collections import deque
from dataclasses import dataclass, field

_SPECIAL = "=!(),<>"
_LEXER_PATTERN = re.compile(r"==|!=|[=!(),<>]|[^\s=!(),<>]+")
_KEYWORDS = frozenset({"in", "notin"})

_NAME = re.compile(r"[A-Za-z0-9]([-A-Za-z0-9_.]*[A-Za-z0-9])?")
_DNS_LABEL = r"[a-z0-9]([-a-z0-9]*[a-z0-9])?"
_DNS_SUBDOMAIN = re.compile(rf"{_DNS_LABEL}(\.{_DNS_LABEL})*")
_NAME_MAX = 63
_PREFIX_MAX = 253

IN = "In"
NOT_IN = "NotIn"
EXISTS = "Exists"
DOES_NOT_EXIST = "DoesNotExist"


class SelectorParseError(ValueError):
    """A selector string could not be turned into a label selector."""


@dataclass
class LabelSelectorRequirement:
    """One set-based requirement: a key, an operator and the values it applies to."""

    key: str
    operator: str
    values: list[str] = field(default_factory=list)

    def __str__(self) -> str:
        return f"{{{self.key} {self.operator} [{' '.join(self.values)}]}}"


@dataclass
class LabelSelector:
    """Exact label matches plus set-based requirements, all of which must hold."""

    match_labels: dict[str, str] = field(default_factory=dict)
    match_expressions: list[LabelSelectorRequirement] = field(default_factory=list)


@dataclass
class _Requirement:
    key: str
    operator: str
    values: list[str]


def _is_name(text: str) -> bool:
    return len(text) <= _NAME_MAX and _NAME.fullmatch(text) is not None


def _validate_key(key: str) -> str:
    prefix, slash, name = key.rpartition("/")
    valid = _is_name(name)
    if slash:
        valid = valid and bool(prefix) and len(prefix) <= _PREFIX_MAX
        valid = valid and _DNS_SUBDOMAIN.fullmatch(prefix) is not None
    if not valid:
        raise SelectorParseError(f'invalid label key "{key}"')
    return key


def _validate_value(value: str) -> str:
    if value and not _is_name(value):
        raise SelectorParseError(f'invalid label value: "{value}"')
    return value


def _is_identifier(word: str) -> bool:
    return word[0] not in _SPECIAL and word not in _KEYWORDS


def _pop(words: deque[str], expected: str) -> str:
    if not words:
        raise SelectorParseError(f"found 'end of string', expected: {expected}")
    return words.popleft()


def _identifier(words: deque[str]) -> str:
    word = _pop(words, "identifier")
    if not _is_identifier(word):
        raise SelectorParseError(f"found '{word}', expected: identifier")
    return word


def _single_value(words: deque[str]) -> str:
    if not words or words[0] == ",":
        return ""
    return _validate_value(_identifier(words))


def _value_set(words: deque[str]) -> list[str]:
    opening = _pop(words, "'('")
    if opening != "(":
        raise SelectorParseError(f"found '{opening}', expected: '('")
    values: set[str] = set()
    expect_value = True
    while True:
        word = _pop(words, "',' or ')'")
        if word == ")":
            if expect_value:
                values.add("")
            break
        if word == ",":
            if expect_value:
                values.add("")
            expect_value = True
            continue
        if not _is_identifier(word) or not expect_value:
            raise SelectorParseError(f"found '{word}', expected: ',' or ')'")
        values.add(_validate_value(word))
        expect_value = False
    return sorted(values)


def _requirement(words: deque[str]) -> _Requirement:
    negated = bool(words) and words[0] == "!"
    if negated:
        words.popleft()
    key = _validate_key(_identifier(words))
    if negated:
        return _Requirement(key, DOES_NOT_EXIST, [])
    if not words or words[0] == ",":
        return _Requirement(key, EXISTS, [])
    operator = words.popleft()
    if operator in ("=", "==", "!="):
        return _Requirement(key, operator, [_single_value(words)])
    if operator in (">", "<"):
        value = _single_value(words)
        if not re.fullmatch(r"[+-]?\d+", value):
            raise SelectorParseError(
                "for 'Gt', 'Lt' operators, the value must be an integer"
            )
        return _Requirement(key, "gt" if operator == ">" else "lt", [value])
    if operator == "in":
        return _Requirement(key, IN, _value_set(words))
    if operator == "notin":
        return _Requirement(key, NOT_IN, _value_set(words))
    raise SelectorParseError(
        f"found '{operator}', expected: in, notin, =, ==, !=, gt, lt"
    )


def _parse_requirements(text: str) -> list[_Requirement]:
    words = deque(_LEXER_PATTERN.findall(text))
    requirements: list[_Requirement] = []
    if not words:
        return requirements
    while True:
        requirements.append(_requirement(words))
        if not words:
            return requirements
        separator = words.popleft()
        if separator != ",":
            raise SelectorParseError(
                f"found '{separator}', expected: ',' or 'end of string'"
            )
        if not words:
            raise SelectorParseError("found 'end of string', expected: identifier")


def parse_to_label_selector(text: str) -> LabelSelector:
    """Parse selector text such as ``a=b,c in (x, y),!d`` into a :class:`LabelSelector`."""
    try:
        requirements = _parse_requirements(text)
    except SelectorParseError as exc:
        raise SelectorParseError(
            f'couldn\'t parse the selector string "{text}": {exc}'
        ) from None
    selector = LabelSelector()
    for requirement in requirements:
        operator = requirement.operator
        if operator in ("=", "=="):
            selector.match_labels[requirement.key] = requirement.values[0]
        elif operator in (IN, NOT_IN, EXISTS, DOES_NOT_EXIST):
            selector.match_expressions.append(
                LabelSelectorRequirement(requirement.key, operator, list(requirement.values))
            )
        elif operator in ("gt", "lt"):
            raise SelectorParseError(f'"{operator}" isn\'t supported in label selectors')
        else:
            raise SelectorParseError(
                f'"{operator}" is not a valid label selector operator'
            )
    return selector