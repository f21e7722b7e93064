"""Simpl: a tiny imperative language with read, write, assignment and sequencing.

    >>> eval(parse("read(x); write(x * 2 + 1)"), [20])
    [41]
"""

import argparse
import operator
import sys
from dataclasses import dataclass
from typing import NamedTuple, Tuple

from lark import Lark, Transformer, v_args
from lark.exceptions import UnexpectedCharacters, UnexpectedEOF, UnexpectedInput, UnexpectedToken

debug = False


def log(msg):
    if debug:
        print(f"[simpl] {msg}", file=sys.stderr)


grammar = r"""
  program: stmt (";" stmt)*

  ?stmt: "read" "(" IDENT ")"               -> read
       | "write" "(" expression ")"         -> write
       | IDENT ":=" expression              -> assign

  ?expression: disj

  ?disj: disj OR conj           -> binop
       | conj

  ?conj: conj AND comp          -> binop
       | comp

  // non-associative: a second comparison needs parentheses
  ?comp: sum CMP sum            -> binop
       | sum

  ?sum: sum ADD term            -> binop
      | term

  ?term: term MUL atom          -> binop
       | atom

  ?atom: "(" expression ")"
       | IDENT                  -> var
       | DECIMAL                -> const

  OR: "!!"
  AND: "&&"
  CMP: "<=" | ">=" | "==" | "!=" | "<" | ">"
  ADD: "+" | "-"
  MUL: "*" | "/" | "%"

  // keywords are never identifiers, wherever they appear
  IDENT: /(?!(?:read|write)\b)[a-zA-Z_][a-zA-Z0-9_]*/
  DECIMAL: /[0-9]+/

  COMMENT: /#[^\n]*/

  %import common.WS

  %ignore WS
  %ignore COMMENT
"""


# ERRORS --------------------------------------------------

class SimplError(Exception):
    pass


class ParseError(SimplError):
    def __init__(self, message, line=None, column=None, token=None):
        # lark reports unknown positions as None, -1 or '?'
        if not isinstance(line, int) or line < 1:
            line = column = None
        self.line = line
        self.column = column
        self.token = token
        where = f" at line {line}, column {column}" if line else ""
        super().__init__(f"Syntax error{where}: {message}")


class EvalError(SimplError):
    pass


class UndefinedVariable(EvalError):
    def __init__(self, name):
        self.name = name
        super().__init__(f"Undefined variable '{name}'")


class DivisionByZero(EvalError):
    def __init__(self, op="/"):
        self.op = op
        super().__init__(f"Division by zero in '{op}'")


class UnknownOperator(EvalError):
    def __init__(self, op):
        self.op = op
        super().__init__(f"Unknown operator '{op}'")


class EmptyInputStream(EvalError):
    def __init__(self, name):
        self.name = name
        super().__init__(f"Cannot read '{name}': input stream is empty")


# AST -----------------------------------------------------

class Expr:
    pass


@dataclass(frozen=True)
class Const(Expr):
    value: int


@dataclass(frozen=True)
class Var(Expr):
    name: str


@dataclass(frozen=True)
class Binop(Expr):
    op: str
    left: Expr
    right: Expr


class Stmt:
    pass


@dataclass(frozen=True)
class Read(Stmt):
    name: str


@dataclass(frozen=True)
class Write(Stmt):
    expr: Expr


@dataclass(frozen=True)
class Assign(Stmt):
    name: str
    expr: Expr


@dataclass(frozen=True)
class Seq(Stmt):
    first: Stmt
    second: Stmt


def show(node):
    """Render an AST in constructor form, e.g. ``Write (Binop ("+", Var ("x"), Const (1)))``.

    Works from an explicit stack of pending nodes and text pieces, so long
    operator chains and statement lists do not hit the recursion limit.
    """
    if not isinstance(node, (Expr, Stmt)):
        raise TypeError(f"Not a Simpl AST node: {node!r}")
    parts = []
    todo = [node]
    while todo:
        item = todo.pop()
        if isinstance(item, str):
            parts.append(item)
        elif isinstance(item, Const):
            parts.append(f"Const ({item.value})")
        elif isinstance(item, Var):
            parts.append(f'Var ("{item.name}")')
        elif isinstance(item, Read):
            parts.append(f'Read ("{item.name}")')
        elif isinstance(item, Binop):
            todo += [")", item.right, ", ", item.left, f'Binop ("{item.op}", ']
        elif isinstance(item, Write):
            todo += [")", item.expr, "Write ("]
        elif isinstance(item, Assign):
            todo += [")", item.expr, f'Assign ("{item.name}", ']
        elif isinstance(item, Seq):
            todo += [")", item.second, ", ", item.first, "Seq ("]
        else:
            raise TypeError(f"Not a Simpl AST node: {item!r}")
    return "".join(parts)


# PARSER --------------------------------------------------

# Builds AST nodes while the LALR parser reduces, so no parse tree is kept.
#
@v_args(inline=True)
class BuildAst(Transformer):
    # a program is a ';'-separated list, folded into a right-leaning Seq chain
    def program(self, *stmts):
        result = stmts[-1]
        for stmt in reversed(stmts[:-1]):
            result = Seq(stmt, result)
        return result

    def read(self, name):
        return Read(str(name))

    def write(self, expr):
        return Write(expr)

    def assign(self, name, expr):
        return Assign(str(name), expr)

    def binop(self, left, op, right):
        return Binop(str(op), left, right)

    def var(self, name):
        return Var(str(name))

    def const(self, digits):
        return Const(int(digits))


parser = Lark(grammar, start=["program", "expression"], parser="lalr", transformer=BuildAst())


def _parse(text, start):
    try:
        return parser.parse(text, start=start)
    except UnexpectedEOF as e:
        raise ParseError("unexpected end of input") from e
    except UnexpectedToken as e:
        if e.token.type == "$END":
            raise ParseError("unexpected end of input", e.line, e.column) from e
        raise ParseError(f"unexpected token '{e.token}'", e.line, e.column, str(e.token)) from e
    except UnexpectedCharacters as e:
        raise ParseError(f"unexpected character '{e.char}'", e.line, e.column, e.char) from e
    except UnexpectedInput as e:
        raise ParseError(str(e), getattr(e, "line", None), getattr(e, "column", None)) from e


def parse_expression(text):
    return _parse(text, "expression")


def parse_statement(text):
    stmt = _parse(text, "program")
    if debug:
        log(f"parsed {show(stmt)}")
    return stmt


def parse(source):
    """Parse a complete program. Raises ParseError on malformed or leftover input."""
    return parse_statement(source)


# INTERPRETER ---------------------------------------------

# Variable state
#
# Each update returns a new State that shadows one binding and keeps a
# link to the state it was derived from, so older states stay valid.
#
class State():
    def __init__(self, name=None, value=None, parent=None):
        self.name = name
        self.value = value
        self.parent = parent

    # bind a name in a new state; self is left as it was
    def update(self, name, value):
        return State(name, value, self)

    # look up the value held in a name, newest binding first
    def lookup(self, name):
        state = self
        while state is not None:
            if state.parent is not None and state.name == name:
                return state.value
            state = state.parent
        raise UndefinedVariable(name)

    def __contains__(self, name):
        try:
            self.lookup(name)
        except UndefinedVariable:
            return False
        return True

    def names(self):
        seen = []
        state = self
        while state.parent is not None:
            if state.name not in seen:
                seen.append(state.name)
            state = state.parent
        return seen

    def as_dict(self):
        return {name: self.lookup(name) for name in self.names()}

    def __repr__(self):
        return f"State({self.as_dict()})"


# Division truncates toward zero and the remainder keeps the dividend's sign.
def _div(a, b):
    if b == 0:
        raise DivisionByZero("/")
    q = abs(a) // abs(b)
    return q if (a < 0) == (b < 0) else -q


def _rem(a, b):
    if b == 0:
        raise DivisionByZero("%")
    return a - b * _div(a, b)


ARITHMETIC = {
    "+": operator.add,
    "-": operator.sub,
    "*": operator.mul,
    "/": _div,
    "%": _rem,
}

RELATIONAL = {
    "<": operator.lt,
    ">": operator.gt,
    "<=": operator.le,
    ">=": operator.ge,
    "==": operator.eq,
    "!=": operator.ne,
}

BOOLEAN = {
    "&&": lambda a, b: a and b,
    "!!": lambda a, b: a or b,
}


def apply_op(op, a, b):
    if op in ARITHMETIC:
        return ARITHMETIC[op](a, b)
    if op in RELATIONAL:
        return int(RELATIONAL[op](a, b))
    if op in BOOLEAN:
        return int(BOOLEAN[op](a != 0, b != 0))
    raise UnknownOperator(op)


# Expression evaluator
#
class Eval():
    def __init__(self, state):
        self.state = state

    # Walks the tree with an explicit stack: an operator is applied once
    # both of its operands are on the value stack, left one first.
    def visit(self, expr):
        todo = [expr]
        values = []
        while todo:
            item = todo.pop()
            if isinstance(item, _Apply):
                right = values.pop()
                left = values.pop()
                values.append(self.binop(item.op, left, right))
            elif isinstance(item, Binop):
                todo += [_Apply(item.op), item.right, item.left]
            else:
                method = getattr(self, type(item).__name__.lower(), None)
                if method is None or not isinstance(item, Expr):
                    raise TypeError(f"Not an expression: {item!r}")
                values.append(method(item))
        return values.pop()

    # represents an integer
    def const(self, expr):
        return expr.value

    # represents the value held in a variable
    def var(self, expr):
        return self.state.lookup(expr.name)

    # both sides are always evaluated, '&&' and '!!' included
    def binop(self, op, left, right):
        return apply_op(op, left, right)


# an operator waiting for its operands on the evaluator's stack
class _Apply(NamedTuple):
    op: str


def evaluate(expr, state):
    return Eval(state).visit(expr)


# Program configuration: state, remaining input, output so far
#
# Input and output are plain tuples, copied on every read and write, so a
# run costs O(n^2) in the number of values streamed.
#
class Config(NamedTuple):
    state: State
    input: Tuple[int, ...]
    output: Tuple[int, ...]


# Statement evaluator
#
class Run():
    def __init__(self, config):
        self.config = config

    def visit(self, stmt):
        method = getattr(self, type(stmt).__name__.lower(), None)
        if method is None or not isinstance(stmt, Stmt):
            raise TypeError(f"Not a statement: {stmt!r}")
        return method(stmt)

    # read statement
    def read(self, stmt):
        state, stream, output = self.config
        if not stream:
            raise EmptyInputStream(stmt.name)
        return Config(state.update(stmt.name, stream[0]), stream[1:], output)

    # write statement
    def write(self, stmt):
        state, stream, output = self.config
        return Config(state, stream, output + (evaluate(stmt.expr, state),))

    # variable assignment
    def assign(self, stmt):
        state, stream, output = self.config
        return Config(state.update(stmt.name, evaluate(stmt.expr, state)), stream, output)

    def seq(self, stmt):
        return run(stmt, self.config)


def run(stmt, config):
    # sequences are right-leaning, so follow the spine in a loop
    while isinstance(stmt, Seq):
        config = run(stmt.first, config)
        stmt = stmt.second
    config = Run(config).visit(stmt)
    if debug:
        log(f"{show(stmt)} -> {config.state!r} input={list(config.input)} output={list(config.output)}")
    return config


def run_program(stmt, stream):
    config = run(stmt, Config(State(), tuple(stream), ()))
    return list(config.output)


def eval(program, stream):
    """Run a parsed program on an input stream and return its output stream."""
    return run_program(program, stream)


# Main function
#
def parse_args(argv=None):
    ap = argparse.ArgumentParser(prog="simpl", description="Run a Simpl program")
    ap.add_argument("file", nargs="?", help="program source (default: stdin)")
    ap.add_argument("-i", "--input", nargs="*", type=int, default=[], metavar="N",
                    help="integers for the input stream")
    ap.add_argument("--ast", action="store_true", help="print the parsed program instead of running it")
    ap.add_argument("--debug", action="store_true", help="trace parsing and evaluation on stderr")
    return ap.parse_args(argv)


def main(argv=None):
    global debug
    args = parse_args(argv)
    previous = debug
    debug = debug or args.debug
    try:
        return _main(args)
    finally:
        debug = previous


def _main(args):
    try:
        if args.file:
            with open(args.file, encoding="utf-8") as f:
                prog = f.read()
        else:
            prog = sys.stdin.read()
    except OSError as e:
        print(f"Failed to read {args.file}: {e}", file=sys.stderr)
        return 1

    try:
        program = parse(prog)
        if args.ast:
            print(show(program))
            return 0
        for value in eval(program, args.input):
            print(value)
    except SimplError as e:
        print(e, file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
