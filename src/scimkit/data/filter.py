import json
import re
from collections.abc import Mapping, MutableSequence
from copy import deepcopy
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Iterable, Iterator, Optional, Union

from typing_extensions import TypeAlias

from scimkit import config
from scimkit.data.attrs import Attribute, String, format_datetime, parse_datetime
from scimkit.data.identifiers import lower_first, split_path, split_urn
from scimkit.data.scim_data import ScimData
from scimkit.error import ScimError, ScimErrorType

OPERATORS = ("and", "or", "not")
COMPARATORS = ("eq", "ne", "co", "sw", "ew", "gt", "lt", "ge", "le", "pr", "np")
UNARY_COMPARATORS = ("pr", "np")

NEGATED_GROUP = "!!"
CONJUNCTION = "&&"

_NUMBER = re.compile(r"-?\d+(?:\.\d+)?(?:[eE][-+]?\d+)?(?![\w.:])")
_WORD = re.compile(r"[\w$][-\w.:/%$]*")
_LITERALS = {"true": True, "false": False, "null": None}
_CLOSING = {"(": ")", "[": "]"}

FilterTree: TypeAlias = list[dict[str, Any]]


def _invalid(detail: str) -> ScimError:
    return ScimError(400, ScimErrorType.INVALID_FILTER, detail)


def _is_sequence(value: Any) -> bool:
    return isinstance(value, (list, tuple, MutableSequence))


@dataclass
class _Token:
    kind: str
    value: Any
    position: int
    filter: Optional[str] = None
    sub_attr: Optional[str] = None


def _closing_quote(text: str, start: int) -> Optional[int]:
    position = start + 1
    while position < len(text):
        if text[position] == "\\":
            position += 2
            continue
        if text[position] == '"':
            return position
        position += 1
    return None


def _closing_bracket(text: str, start: int) -> Optional[int]:
    expected = []
    position = start
    while position < len(text):
        char = text[position]
        if char == '"':
            end = _closing_quote(text, position)
            if end is None:
                return None
            position = end + 1
            continue
        if char in _CLOSING:
            expected.append(_CLOSING[char])
        elif char in ")]":
            if not expected or expected.pop() != char:
                return None
            if not expected:
                return position
        position += 1
    return None


def _decode_string(literal: str) -> str:
    try:
        return json.loads(literal, strict=False)
    except ValueError:
        return literal[1:-1]


def _tokenise(text: str) -> list[_Token]:
    tokens = []
    position = 0
    while position < len(text):
        char = text[position]
        if char.isspace():
            position += 1
            continue

        if char == '"':
            end = _closing_quote(text, position)
            if end is None:
                raise _invalid(f"Unexpected token '{text[position:]}' in filter")
            tokens.append(_Token("value", _decode_string(text[position : end + 1]), position))
            position = end + 1
            continue

        if char in _CLOSING:
            end = _closing_bracket(text, position)
            if end is None:
                raise _invalid(
                    f"Missing closing '{_CLOSING[char]}' token in filter '{text[position:]}'"
                )
            tokens.append(_Token("group", text[position + 1 : end], position))
            position = end + 1
            continue

        if match := _NUMBER.match(text, position):
            number = match.group(0)
            value = float(number) if any(c in number for c in ".eE") else int(number)
            tokens.append(_Token("number", value, position))
            position = match.end()
            continue

        if match := _WORD.match(text, position):
            word, start, position = match.group(0), position, match.end()
            lowered = word.lower()
            if lowered in OPERATORS:
                tokens.append(_Token("operator", lowered, start))
            elif lowered in COMPARATORS:
                tokens.append(_Token("comparator", lowered, start))
            elif lowered in _LITERALS:
                tokens.append(_Token("value", _LITERALS[lowered], start))
            elif text[position : position + 1] == "[":
                end = _closing_bracket(text, position)
                if end is None:
                    raise _invalid(f"Missing closing ']' token in filter '{text[position:]}'")
                token = _Token("path", word, start, filter=text[position + 1 : end])
                position = end + 1
                if text[position : position + 1] == "." and (
                    sub_match := _WORD.match(text, position + 1)
                ):
                    token.sub_attr = sub_match.group(0)
                    position = sub_match.end()
                tokens.append(token)
            else:
                tokens.append(_Token("word", word, start))
            continue

        raise _invalid(f"Unexpected token '{text[position:]}' in filter")
    return tokens


def _path_branch(path: str, leaf: Any, normalise: bool = True) -> dict[str, Any]:
    namespace, rest = split_urn(path) if path.lower().startswith("urn:") else (None, path)
    branch = leaf
    for part in reversed(split_path(rest)):
        branch = {lower_first(part) if normalise else part: branch}
    return {namespace: branch} if namespace else branch


def _comparisons(expression: list) -> list[list]:
    if expression and isinstance(expression[0], str):
        return [expression]
    return list(expression)


def _merge_branch(target: dict[str, Any], source: Mapping[str, Any]) -> dict[str, Any]:
    for key, value in source.items():
        if key == CONJUNCTION:
            target.setdefault(CONJUNCTION, []).extend(value)
        elif key == NEGATED_GROUP:
            # not A and not B is not (A or B)
            target[NEGATED_GROUP] = target.get(NEGATED_GROUP, []) + value
        elif key not in target:
            target[key] = value
        elif isinstance(target[key], dict) and isinstance(value, dict):
            _merge_branch(target[key], value)
        elif isinstance(target[key], list) and isinstance(value, list):
            target[key] = _comparisons(target[key]) + _comparisons(value)
        else:
            target.setdefault(CONJUNCTION, []).append([{key: value}])
    return target


def _conjoin(branch: dict[str, Any], tree: FilterTree) -> None:
    if len(tree) == 1:
        _merge_branch(branch, tree[0])
    else:
        branch.setdefault(CONJUNCTION, []).append(tree)


def _negate_comparison(branch: dict[str, Any]) -> Optional[dict[str, Any]]:
    if len(branch) != 1:
        return None
    key, value = next(iter(branch.items()))
    if isinstance(value, dict):
        negated = _negate_comparison(value)
        return None if negated is None else {key: negated}
    if not value or not isinstance(value[0], str):
        return None
    if value[0] == "not":
        return {key: value[1:]}
    return {key: ["not", *value]}


class _Parser:
    """
    Recursive descent parser of filter expressions:

        expression := term ("or" term)*
        term := factor ("and" factor)*
        factor := "not" factor | "(" expression ")" | path "[" expression "]" ["." attr comparison]
            | path comparison
        comparison := ("pr" | "np") | comparator value
    """

    def __init__(self, text: str):
        self._text = text
        self._tokens = _tokenise(text)
        self._index = 0

    def parse(self) -> FilterTree:
        if not self._tokens:
            raise _invalid(f"Unexpected token '{self._text}' in filter")
        tree = self._expression()
        if self._index < len(self._tokens):
            raise self._unexpected(self._tokens[self._index])
        return tree

    def _unexpected(self, token: _Token) -> ScimError:
        return _invalid(f"Unexpected token '{self._text[token.position:]}' in filter")

    def _peek(self) -> Optional[_Token]:
        return self._tokens[self._index] if self._index < len(self._tokens) else None

    def _next(self) -> Optional[_Token]:
        token = self._peek()
        self._index += 1
        return token

    def _operator_follows(self, operator: str) -> bool:
        token = self._peek()
        return token is not None and token.kind == "operator" and token.value == operator

    def _expression(self) -> FilterTree:
        tree = self._term()
        while self._operator_follows("or"):
            self._next()
            tree.extend(self._term())
        return tree

    def _term(self) -> FilterTree:
        factors = [self._factor()]
        while self._operator_follows("and"):
            self._next()
            factors.append(self._factor())
        if len(factors) == 1:
            return factors[0]
        branch: dict[str, Any] = {}
        for tree in factors:
            _conjoin(branch, tree)
        return [branch]

    def _factor(self) -> FilterTree:
        token = self._next()
        if token is None:
            raise _invalid(f"Unexpected end of filter '{self._text}'")
        if token.kind == "operator" and token.value == "not":
            following = self._peek()
            tree = self._factor()
            if following is not None and following.kind == "word" and len(tree) == 1:
                negated = _negate_comparison(tree[0])
                if negated is not None:
                    return [negated]
            return [{NEGATED_GROUP: tree}]
        if token.kind == "group":
            return _Parser(token.value).parse()
        if token.kind == "path":
            nested = _Parser(token.filter).parse()
            value = nested[0] if len(nested) == 1 else {CONJUNCTION: [nested]}
            if token.sub_attr is not None:
                _merge_branch(
                    value, _path_branch(token.sub_attr, self._comparison(token.sub_attr))
                )
            return [_path_branch(token.value, value)]
        if token.kind == "word":
            return [_path_branch(token.value, self._comparison(token.value))]
        raise self._unexpected(token)

    def _comparison(self, attr: str) -> list:
        comparator = self._next()
        if comparator is None or comparator.kind != "comparator":
            raise _invalid(f"Missing comparator for attribute '{attr}' in filter")
        if comparator.value in UNARY_COMPARATORS:
            return [comparator.value]
        value = self._next()
        if value is None or value.kind not in ("value", "number"):
            raise _invalid(
                f"Missing value for comparator '{comparator.value}' of attribute '{attr}' in filter"
            )
        return [comparator.value, value.value]


def _structured(expression: Union[Mapping, Iterable[Mapping]]) -> FilterTree:
    branches = [expression] if isinstance(expression, Mapping) else list(expression)
    tree = []
    for index, branch in enumerate(branches, start=1):
        if not isinstance(branch, Mapping):
            raise TypeError(
                f"Expected filter expression object #{index} to be a plain object "
                "in Filter constructor"
            )
        tree.append(_validate_branch(branch, "", index))
    return tree


def _validate_tree(value: Any, prop: str, index: int) -> FilterTree:
    if isinstance(value, Mapping):
        return [_validate_branch(value, prop, index)]
    if _is_sequence(value) and value and all(isinstance(item, Mapping) for item in value):
        return [_validate_branch(item, prop, index) for item in value]
    raise TypeError(
        f"Expected plain object or array of objects in property '{prop}' "
        f"of filter expression object #{index} in Filter constructor"
    )


def _validate_comparison(value: Any, prop: str, index: int) -> list:
    items = list(value)
    negated = bool(items) and isinstance(items[0], str) and items[0].lower() == "not"
    body = items[1:] if negated else items
    if not body or not isinstance(body[0], str):
        raise TypeError(
            f"Missing comparator in property '{prop}' "
            f"of filter expression object #{index} in Filter constructor"
        )
    return (["not"] if negated else []) + [body[0].lower(), *body[1:2]]


def _validate_branch(branch: Mapping, path: str, index: int) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for key, value in branch.items():
        prop = f"{path}.{key}" if path else str(key)
        if key == NEGATED_GROUP:
            _merge_branch(result, {key: _validate_tree(value, prop, index)})
            continue
        if key == CONJUNCTION:
            if not _is_sequence(value):
                raise TypeError(
                    f"Expected array of expressions in property '{prop}' "
                    f"of filter expression object #{index} in Filter constructor"
                )
            _merge_branch(result, {key: [_validate_tree(item, prop, index) for item in value]})
            continue

        if isinstance(value, Mapping):
            validated: Any = _validate_branch(value, prop, index)
        elif _is_sequence(value):
            if value and all(_is_sequence(item) for item in value):
                validated = [_validate_comparison(item, prop, index) for item in value]
            elif any(_is_sequence(item) for item in value):
                raise TypeError(
                    f"Unexpected nested array in property '{prop}' "
                    f"of filter expression object #{index} in Filter constructor"
                )
            else:
                validated = _validate_comparison(value, prop, index)
        else:
            raise TypeError(
                f"Expected plain object or expression array in property '{prop}' "
                f"of filter expression object #{index} in Filter constructor"
            )

        if isinstance(validated, dict) and key.lower().startswith("urn:"):
            _merge_branch(result, {key: validated})
        else:
            _merge_branch(result, _path_branch(key, validated, normalise=False))
    return result


def _render_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    if isinstance(value, (int, float)):
        return repr(value)
    if isinstance(value, datetime):
        return json.dumps(format_datetime(value))
    if isinstance(value, date):
        return json.dumps(value.isoformat())
    return json.dumps(str(value), ensure_ascii=False)


def _render_comparison(path: str, comparison: list) -> str:
    negated = comparison[0] == "not"
    body = comparison[1:] if negated else comparison
    rendered = f"{path} {body[0]}"
    if len(body) > 1:
        rendered += f" {_render_value(body[1])}"
    return f"not {rendered}" if negated else rendered


def _render_tree(tree: FilterTree, prefix: str = "") -> str:
    return " or ".join(_render_branch(branch, prefix) for branch in tree)


def _render_group(tree: FilterTree, prefix: str) -> str:
    if len(tree) == 1:
        return _render_branch(tree[0], prefix)
    return f"({_render_tree(tree, prefix)})"


def _render_branch(branch: Mapping[str, Any], prefix: str = "") -> str:
    clauses = []
    for key, value in branch.items():
        if key == NEGATED_GROUP:
            clauses.append(f"not ({_render_tree(value, prefix)})")
        elif key == CONJUNCTION:
            clauses.extend(_render_group(tree, prefix) for tree in value)
        elif isinstance(value, dict):
            if key.lower().startswith("urn:"):
                clauses.append(_render_branch(value, f"{prefix}{key}:"))
            elif (
                len(value) == 1
                and not {NEGATED_GROUP, CONJUNCTION} & set(value)
                and not isinstance(next(iter(value.values())), dict)
            ):
                clauses.append(_render_branch(value, f"{prefix}{key}."))
            else:
                clauses.append(f"{prefix}{key}[{_render_branch(value)}]")
        else:
            clauses.extend(
                _render_comparison(f"{prefix}{key}", comparison)
                for comparison in _comparisons(value)
            )
    return " and ".join(clauses)


def _lookup(data: Any, key: str) -> tuple[Any, Optional[Attribute]]:
    if isinstance(data, ScimData):
        return data.get(key), data.attribute_for(key)
    if isinstance(data, Mapping):
        lowered = key.lower()
        for name, value in data.items():
            if isinstance(name, str) and name.lower() == lowered:
                return value, None
    return None, None


def _own_namespace(data: Any, key: str) -> bool:
    definition = getattr(data, "definition", None)
    return key.lower() == str(getattr(definition, "id", "")).lower()


def _is_present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return value != ""
    if _is_sequence(value):
        return any(_is_present(item) for item in value)
    if isinstance(value, Mapping):
        return any(_is_present(item) for item in value.values())
    return True


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _as_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, str):
        return parse_datetime(value)
    return None


def _order(actual: Any, comparator: str, expected: Any) -> bool:
    if comparator == "eq":
        return actual == expected
    if comparator == "ne":
        return actual != expected
    if comparator == "gt":
        return actual > expected
    if comparator == "lt":
        return actual < expected
    if comparator == "ge":
        return actual >= expected
    if comparator == "le":
        return actual <= expected
    return False


def _normalise_strings(actual: str, expected: str, attr: Optional[Attribute]) -> tuple[str, str]:
    if isinstance(attr, String):
        try:
            actual, expected = attr.precis.enforce(actual), attr.precis.enforce(expected)
        except UnicodeEncodeError:
            pass
    if attr is not None and not attr.case_exact:
        actual, expected = actual.lower(), expected.lower()
    return actual, expected


def _compare(actual: Any, comparator: str, expected: Any, attr: Optional[Attribute]) -> bool:
    if actual is None:
        return comparator == "ne"
    if isinstance(actual, bool) or isinstance(expected, bool):
        if isinstance(actual, bool) and isinstance(expected, bool) and comparator in ("eq", "ne"):
            return _order(actual, comparator, expected)
        return comparator == "ne"
    if _is_number(actual) and _is_number(expected):
        return _order(actual, comparator, expected)
    if isinstance(actual, str) and isinstance(expected, (str, date)):
        if comparator not in ("co", "sw", "ew"):
            actual_date, expected_date = _as_datetime(actual), _as_datetime(expected)
            if actual_date is not None and expected_date is not None:
                return _order(actual_date.timestamp(), comparator, expected_date.timestamp())
        if not isinstance(expected, str):
            return comparator == "ne"
        actual, expected = _normalise_strings(actual, expected, attr)
        if comparator == "co":
            return expected in actual
        if comparator == "sw":
            return actual.startswith(expected)
        if comparator == "ew":
            return actual.endswith(expected)
        return _order(actual, comparator, expected)
    return comparator == "ne"


def _evaluate(value: Any, comparison: list, attr: Optional[Attribute]) -> bool:
    negated = comparison[0] == "not"
    body = comparison[1:] if negated else comparison
    comparator = body[0].lower()
    expected = body[1] if len(body) > 1 else None

    if comparator == "pr":
        result = _is_present(value)
    elif comparator == "np":
        result = not _is_present(value)
    elif comparator not in COMPARATORS:
        result = False
    elif expected is None and comparator in ("eq", "ne"):
        result = _is_present(value) == (comparator == "ne")
    else:
        items = value if _is_sequence(value) else [value]
        result = False
        for item in items:
            item_attr = attr
            if isinstance(item, Mapping):
                item_attr = item.attribute_for("value") if isinstance(item, ScimData) else None
                item, _ = _lookup(item, "value")
            if _compare(item, comparator, expected, item_attr):
                result = True
                break
    return not result if negated else result


class Filter:
    """
    SCIM filter, as specified in
    [RFC-7644, section 3.4.2.2](https://www.rfc-editor.org/rfc/rfc7644#section-3.4.2.2).

    Filters are parsed to a tree of OR-ed branches. Each branch is a dictionary, whose entries
    must all match:

    - `{"attr": ["eq", "value"]}` compares the attribute (`pr` and `np` take no value),
      and `{"attr": ["not", "eq", "value"]}` negates the comparison,
    - `{"attr": [["gt", 1], ["lt", 5]]}` applies multiple comparisons to the same attribute,
    - `{"attr": {"sub": ["eq", "value"]}}` matches sub-attributes, within the same value if the
      attribute is multi-valued. Extension attributes are nested under the extension URN,
    - `{"!!": [...]}` negates the nested tree, and `{"&&": [[...], ...]}` requires all nested
      trees to match.

    Args:
        expression: Filter string, or the tree (a single branch, or a list of branches).

    Raises:
        TypeError: If the expression is empty, or the tree is malformed.
        ScimError: If the filter string can not be parsed.

    Examples:
        >>> Filter('userName eq "bjensen" and emails[type eq "work"]').to_list()
        [{'userName': ['eq', 'bjensen'], 'emails': {'type': ['eq', 'work']}}]
    """

    def __init__(self, expression: Union[str, "Filter", Mapping, Iterable[Mapping]]):
        if isinstance(expression, Filter):
            self._tree = expression.to_list()
        elif isinstance(expression, str):
            if not expression.strip():
                raise TypeError(
                    "Expected 'expression' parameter string value to not be empty "
                    "in Filter constructor"
                )
            self._tree = _Parser(expression).parse()
        elif isinstance(expression, Mapping) or _is_sequence(expression):
            self._tree = _structured(deepcopy(expression))
        else:
            raise TypeError(
                "Expected 'expression' parameter to be a string, object, or array "
                "in Filter constructor"
            )

    def __repr__(self) -> str:
        return f"Filter({self.expression!r})"

    @property
    def expression(self) -> str:
        """
        Canonical filter string of the filter.
        """
        return _render_tree(self._tree)

    def to_list(self) -> FilterTree:
        """
        Returns copy of the filter tree.
        """
        return deepcopy(self._tree)

    def __iter__(self) -> Iterator[dict[str, Any]]:
        return iter(self.to_list())

    def __len__(self) -> int:
        return len(self._tree)

    def __eq__(self, other: Any) -> bool:
        if isinstance(other, Filter):
            return self._tree == other._tree
        if isinstance(other, (Mapping, list, tuple)):
            try:
                return self._tree == _structured(deepcopy(other))
            except TypeError:
                return False
        return False

    def match(self, values: Iterable[Any], *, capped: bool = False) -> list[Any]:
        """
        Returns values that match the filter, in the input order. Values bound to
        attribute definitions (resource instances and complex values) are compared with
        respect to attribute's case sensitivity and PRECIS profile, plain data is compared
        as is.

        Args:
            values: Values to match.
            capped: Whether the result is limited by `filter.max_results` of the service
                provider configuration. Off by default, so all matching values are returned.

        Returns:
            Matching values.
        """
        matching = [value for value in values if self._match_tree(value, self._tree)]
        if capped:
            return config.service_provider_config.filter.limit(matching)
        return matching

    def _match_tree(self, data: Any, tree: FilterTree) -> bool:
        return any(self._match_branch(data, branch) for branch in tree)

    def _match_branch(self, data: Any, branch: Mapping[str, Any]) -> bool:
        for key, expression in branch.items():
            if key == NEGATED_GROUP:
                if self._match_tree(data, expression):
                    return False
            elif key == CONJUNCTION:
                if not all(self._match_tree(data, tree) for tree in expression):
                    return False
            else:
                value, attr = _lookup(data, key)
                if value is None and isinstance(expression, Mapping) and _own_namespace(data, key):
                    value = data
                if isinstance(expression, Mapping):
                    if not self._match_nested(value, expression):
                        return False
                elif not all(
                    _evaluate(value, comparison, attr)
                    for comparison in _comparisons(expression)
                ):
                    return False
        return True

    def _match_nested(self, value: Any, branch: Mapping[str, Any]) -> bool:
        if _is_sequence(value) and value:
            return any(self._match_branch(item, branch) for item in value)
        if _is_sequence(value):
            return self._match_branch(None, branch)
        return self._match_branch(value, branch)
