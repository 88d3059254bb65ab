"""Parser and evaluator for the store's predicate format strings.

Supported grammar::

    expr       := or
    or         := and (("OR" | "||") and)*
    and        := not (("AND" | "&&") not)*
    not        := ("NOT" | "!") not | primary
    primary    := "(" expr ")" | TRUEPREDICATE | FALSEPREDICATE | comparison
    comparison := operand OPERATOR operand
    operand    := keypath | string | number | TRUE | FALSE | NIL | %@ | "{" operand, ... "}"

``%@`` placeholders are bound, in order, to the query arguments when the
predicate is parsed. Keywords are case-insensitive.
"""

import re
from typing import Any, Callable, Dict, List, Optional, Tuple


class PredicateError(ValueError):
    pass


TOKEN_RE = re.compile(
    r"""
      (?P<string>"(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*')
    | (?P<number>-?\d+(?:\.\d+)?)
    | (?P<placeholder>%@)
    | (?P<op>==|=<|<=|=>|>=|!=|<>|&&|\|\||=|<|>|!)
    | (?P<punct>[(),{}])
    | (?P<word>[A-Za-z_][A-Za-z0-9_.]*)
    """,
    re.VERBOSE,
)

KEYWORD_OPERATORS = {"BEGINSWITH", "IN"}
CONSTANTS = {"TRUE": 1, "YES": 1, "FALSE": 0, "NO": 0, "NIL": None, "NULL": None}

Fields = Dict[str, Dict[str, Any]]


def field_native(field: Optional[Dict[str, Any]]) -> Any:
    """Comparable form of a wire field value; references compare by name."""
    if field is None:
        return None
    value = field.get("value")
    if field.get("type") == "REFERENCE" and isinstance(value, dict):
        return value.get("recordName")
    return value


def _ordered(compare: Callable[[Any, Any], bool]) -> Callable[[Any, Any], bool]:
    def check(left, right):
        if left is None or right is None:
            return False
        try:
            return compare(left, right)
        except TypeError:
            return False

    return check


def _begins_with(left, right) -> bool:
    return isinstance(left, str) and isinstance(right, str) and left.startswith(right)


def _contained_in(left, right) -> bool:
    if isinstance(right, (list, tuple)):
        return left in right
    if isinstance(left, str) and isinstance(right, str):
        return left in right
    return False


OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "==": lambda a, b: a == b,
    "=": lambda a, b: a == b,
    "!=": lambda a, b: a != b,
    "<>": lambda a, b: a != b,
    "<": _ordered(lambda a, b: a < b),
    "<=": _ordered(lambda a, b: a <= b),
    "=<": _ordered(lambda a, b: a <= b),
    ">": _ordered(lambda a, b: a > b),
    ">=": _ordered(lambda a, b: a >= b),
    "=>": _ordered(lambda a, b: a >= b),
    "BEGINSWITH": _begins_with,
    "IN": _contained_in,
}


class KeyPath:
    def __init__(self, name: str):
        self.name = name

    def resolve(self, fields: Fields) -> Any:
        return field_native(fields.get(self.name))


class Literal:
    def __init__(self, value: Any):
        self.value = value

    def resolve(self, fields: Fields) -> Any:
        return self.value


class Aggregate:
    def __init__(self, items: List[Any]):
        self.items = items

    def resolve(self, fields: Fields) -> Any:
        return [item.resolve(fields) for item in self.items]


class Comparison:
    def __init__(self, left, operator: str, right):
        self.left = left
        self.operator = operator
        self.right = right

    def evaluate(self, fields: Fields) -> bool:
        compare = OPERATORS[self.operator]
        return compare(self.left.resolve(fields), self.right.resolve(fields))


class Compound:
    def __init__(self, kind: str, children: list):
        self.kind = kind
        self.children = children

    def evaluate(self, fields: Fields) -> bool:
        if self.kind == "AND":
            return all(child.evaluate(fields) for child in self.children)
        return any(child.evaluate(fields) for child in self.children)


class Not:
    def __init__(self, child):
        self.child = child

    def evaluate(self, fields: Fields) -> bool:
        return not self.child.evaluate(fields)


class Constant:
    def __init__(self, value: bool):
        self.value = value

    def evaluate(self, fields: Fields) -> bool:
        return self.value


def tokenize(text: str) -> List[Tuple[str, str]]:
    tokens = []
    pos = 0
    while pos < len(text):
        if text[pos].isspace():
            pos += 1
            continue
        match = TOKEN_RE.match(text, pos)
        if match is None:
            raise PredicateError(f'Unable to parse the format string "{text}"')
        kind = match.lastgroup
        value = match.group(kind)
        if kind == "word" and value.upper() in KEYWORD_OPERATORS | {"AND", "OR", "NOT"}:
            kind, value = "op", value.upper()
        tokens.append((kind, value))
        pos = match.end()
    return tokens


def _unquote(token: str) -> str:
    return re.sub(r"\\(.)", r"\1", token[1:-1])


class _Parser:
    def __init__(self, text: str, arguments: List[Any]):
        self.text = text
        self.tokens = tokenize(text)
        self.pos = 0
        self.arguments = list(arguments)
        self.next_argument = 0

    def fail(self):
        raise PredicateError(f'Unable to parse the format string "{self.text}"')

    def peek(self) -> Optional[Tuple[str, str]]:
        if self.pos < len(self.tokens):
            return self.tokens[self.pos]
        return None

    def take(self) -> Tuple[str, str]:
        token = self.peek()
        if token is None:
            self.fail()
        self.pos += 1
        return token

    def accept(self, *values: str) -> bool:
        token = self.peek()
        if token is not None and token[0] in ("op", "punct") and token[1] in values:
            self.pos += 1
            return True
        return False

    def parse(self):
        node = self.parse_or()
        if self.peek() is not None:
            self.fail()
        return node

    def parse_or(self):
        children = [self.parse_and()]
        while self.accept("OR", "||"):
            children.append(self.parse_and())
        return children[0] if len(children) == 1 else Compound("OR", children)

    def parse_and(self):
        children = [self.parse_not()]
        while self.accept("AND", "&&"):
            children.append(self.parse_not())
        return children[0] if len(children) == 1 else Compound("AND", children)

    def parse_not(self):
        if self.accept("NOT", "!"):
            return Not(self.parse_not())
        return self.parse_primary()

    def parse_primary(self):
        if self.accept("("):
            node = self.parse_or()
            if not self.accept(")"):
                self.fail()
            return node
        token = self.peek()
        if token is not None and token[0] == "word":
            word = token[1].upper()
            if word in ("TRUEPREDICATE", "FALSEPREDICATE"):
                self.pos += 1
                return Constant(word == "TRUEPREDICATE")
        left = self.parse_operand()
        kind, operator = self.take()
        if kind != "op" or operator not in OPERATORS:
            self.fail()
        right = self.parse_operand()
        return Comparison(left, operator, right)

    def parse_operand(self):
        kind, value = self.take()
        if kind == "string":
            return Literal(_unquote(value))
        if kind == "number":
            return Literal(float(value) if "." in value else int(value))
        if kind == "placeholder":
            if self.next_argument >= len(self.arguments):
                raise PredicateError("Insufficient arguments for predicate")
            argument = self.arguments[self.next_argument]
            self.next_argument += 1
            return Literal(argument)
        if kind == "punct" and value == "{":
            items = []
            if not self.accept("}"):
                items.append(self.parse_operand())
                while self.accept(","):
                    items.append(self.parse_operand())
                if not self.accept("}"):
                    self.fail()
            return Aggregate(items)
        if kind == "word":
            if value.upper() in CONSTANTS:
                return Literal(CONSTANTS[value.upper()])
            return KeyPath(value)
        self.fail()


def parse_predicate(text: Optional[str], arguments: Optional[List[Any]] = None):
    """Parse ``text`` with ``%@`` bound to ``arguments`` (already native values)."""
    if text is None or not text.strip():
        return Constant(True)
    return _Parser(text, arguments or []).parse()
