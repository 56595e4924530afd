import ast
import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np

from .errors import ExpressionError

logger = logging.getLogger(__name__)

SIMPLE_VARIABLE = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*(\.?[xyzwrgba]+)?$")
_DOTTED_IDENTIFIER = re.compile(r"\b([a-zA-Z_][a-zA-Z0-9_]*(?:\.[a-zA-Z0-9_]+)?)\b")

SWIZZLE_TYPES = {1: "float", 2: "vec2", 3: "vec3", 4: "vec4"}
_CALL_START = re.compile(r"\b[a-zA-Z_]\w*\s*\(")


def strip_calls(text: str) -> str:
    """Replaces every `name(...)` span with `0`, leaving only top-level operands."""
    parts, i = [], 0
    while True:
        match = _CALL_START.search(text, i)
        if match is None:
            parts.append(text[i:])
            return "".join(parts)
        depth, j = 0, match.end() - 1
        while j < len(text):
            if text[j] == "(":
                depth += 1
            elif text[j] == ")":
                depth -= 1
                if depth == 0:
                    break
            j += 1
        parts.append(text[i:match.start()])
        parts.append("0")
        i = j + 1


def _fract(x):
    return x - np.floor(x)

def _mix(a, b, t):
    return a * (1.0 - t) + b * t

def _step(edge, x):
    return np.where(x < edge, 0.0, 1.0)

def _smoothstep(edge0, edge1, x):
    """NumPy implementation of GLSL smoothstep."""
    t = np.clip((x - edge0) / (edge1 - edge0), 0.0, 1.0)
    return t * t * (3.0 - 2.0 * t)

def _mod(x, y):
    return x - y * np.floor(x / y)


FUNCTIONS = {
    'sin': np.sin, 'cos': np.cos, 'tan': np.tan,
    'asin': np.arcsin, 'acos': np.arccos, 'atan': np.arctan,
    'sinh': np.sinh, 'cosh': np.cosh, 'tanh': np.tanh,
    'sqrt': np.sqrt, 'exp': np.exp, 'log': np.log, 'log2': np.log2, 'log10': np.log10,
    'abs': np.abs, 'floor': np.floor, 'ceil': np.ceil, 'round': np.round, 'sign': np.sign,
    'pow': np.power, 'min': np.minimum, 'max': np.maximum,
    'mod': _mod, 'fract': _fract, 'clamp': np.clip,
    'mix': _mix, 'step': _step, 'smoothstep': _smoothstep,
}

CONSTANTS = {'pi': np.pi, 'e': np.e}

_BINARY = {
    ast.Add: np.add, ast.Sub: np.subtract, ast.Mult: np.multiply,
    ast.Div: np.divide, ast.Mod: _mod, ast.Pow: np.power,
    ast.BitXor: np.power,
}


class ArithmeticEvaluator:
    """
    Evaluates plain arithmetic over floats, named variables and math functions.

    `^` is treated as exponentiation. Anything outside literals, names, unary
    and binary operators and calls to known functions is rejected with an
    ExpressionError carrying the offending position and token.
    """
    def __init__(self, functions=None, constants=None):
        self.functions = dict(FUNCTIONS if functions is None else functions)
        self.constants = dict(CONSTANTS if constants is None else constants)

    def _parse(self, text: str) -> ast.AST:
        if not text.strip():
            raise ExpressionError("Empty expression", 0, "")
        try:
            return ast.parse(text.strip(), mode='eval').body
        except SyntaxError as e:
            position = (e.offset or 1) - 1
            token = text.strip()[position:position + 1]
            raise ExpressionError(f"Syntax error: {e.msg}", position, token) from e
        except (RecursionError, MemoryError, ValueError) as e:
            raise ExpressionError(f"Expression cannot be parsed: {e}", 0, "") from e

    def variables(self, text: str) -> List[str]:
        """Names the expression reads, excluding constants and call targets."""
        tree = self._parse(text)
        names = set()
        try:
            self._collect(tree, names)
        except RecursionError as e:
            raise ExpressionError("Expression is nested too deeply", 0, "") from e
        return sorted(names)

    def _collect(self, node, names):
        if isinstance(node, ast.Call):
            for arg in node.args:
                self._collect(arg, names)
            return
        if isinstance(node, ast.Name):
            if node.id not in self.constants:
                names.add(node.id)
            return
        for child in ast.iter_child_nodes(node):
            self._collect(child, names)

    def evaluate(self, text: str, variables: dict = None) -> float:
        tree = self._parse(text)
        try:
            with np.errstate(all='ignore'):
                return float(self._eval(tree, variables or {}))
        except RecursionError as e:
            raise ExpressionError("Expression is nested too deeply", 0, "") from e

    def _eval(self, node, variables):
        if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)) \
                and not isinstance(node.value, bool):
            return float(node.value)
        if isinstance(node, ast.Name):
            if node.id in variables:
                return float(variables[node.id])
            if node.id in self.constants:
                return self.constants[node.id]
            raise ExpressionError(f"Unknown variable '{node.id}'", node.col_offset, node.id)
        if isinstance(node, ast.UnaryOp) and isinstance(node.op, (ast.UAdd, ast.USub)):
            value = self._eval(node.operand, variables)
            return -value if isinstance(node.op, ast.USub) else value
        if isinstance(node, ast.BinOp) and type(node.op) in _BINARY:
            return _BINARY[type(node.op)](self._eval(node.left, variables), self._eval(node.right, variables))
        if isinstance(node, ast.Call) and isinstance(node.func, ast.Name) and not node.keywords:
            fn = self.functions.get(node.func.id)
            if fn is None:
                raise ExpressionError(f"Unknown function '{node.func.id}'", node.col_offset, node.func.id)
            args = [self._eval(a, variables) for a in node.args]
            try:
                return fn(*args)
            except TypeError as e:
                raise ExpressionError(f"Bad arguments to '{node.func.id}': {e}", node.col_offset, node.func.id) from e
        raise ExpressionError(f"Unsupported syntax: {type(node).__name__}", getattr(node, 'col_offset', -1), "")


@dataclass
class ExpressionInfo:
    """What the code generator needs to know about one argument."""
    original: str
    glsl: str
    type: str = "float"
    dependencies: List[str] = field(default_factory=list)
    is_simple_var: bool = False
    is_constant: bool = False
    constant_value: float = 0.0


@dataclass
class ParseResult:
    ok: bool
    info: ExpressionInfo
    error: Optional[ExpressionError] = None

    def __bool__(self):
        return self.ok


class ExpressionParser:
    """
    Turns one raw argument string into an ExpressionInfo.

    Args:
        builtins: BuiltinRegistry used to type builtin variables.
        evaluator: Arithmetic evaluator; a default ArithmeticEvaluator if omitted.
    """
    def __init__(self, builtins, evaluator: ArithmeticEvaluator = None):
        self.builtins = builtins
        self.evaluator = evaluator or ArithmeticEvaluator()

    @staticmethod
    def is_simple_variable(text: str) -> bool:
        return bool(SIMPLE_VARIABLE.match(text))

    def parse(self, text: str) -> ParseResult:
        """Never raises; failures come back as a ParseResult with ok=False."""
        text = text.strip()
        if self.is_simple_variable(text):
            return ParseResult(True, self._simple(text))
        try:
            return ParseResult(True, self._complex(text))
        except ExpressionError as e:
            logger.error("Parse error in '%s': %s", text, e.message)
            logger.error("  Position: %d", e.position)
            logger.error("  Token: '%s'", e.token)
            return ParseResult(False, ExpressionInfo(original=text, glsl=text), e)

    def parse_expression(self, text: str) -> ExpressionInfo:
        return self.parse(text).info

    def _simple(self, text: str) -> ExpressionInfo:
        info = ExpressionInfo(original=text, glsl=text, dependencies=[text], is_simple_var=True)
        variable = self.builtins.get_variable(self.builtins.extract_base(text))
        if variable is not None:
            if self.builtins.has_swizzle(text):
                info.type = SWIZZLE_TYPES.get(len(self.builtins.extract_swizzle(text)), "float")
            else:
                info.type = variable.glsl_type
        return info

    def _complex(self, text: str) -> ExpressionInfo:
        deps = self.extract_dependencies(text)
        info = ExpressionInfo(original=text, glsl=text, type=self.infer_type(text), dependencies=deps)
        if not deps:
            info.is_constant = True
            info.constant_value = self.evaluator.evaluate(text)
        return info

    def extract_dependencies(self, text: str) -> List[str]:
        # The evaluator cannot read GLSL field access such as `st.x`.
        if "." in text:
            return self.scan_identifiers(text)
        try:
            return self.evaluator.variables(text)
        except ExpressionError as e:
            logger.debug("Falling back to identifier scan for '%s': %s", text, e.message)
            return self.scan_identifiers(text)

    @staticmethod
    def scan_identifiers(text: str) -> List[str]:
        found = set()
        for match in _DOTTED_IDENTIFIER.finditer(text):
            name = match.group(1)
            if name[0].isdigit():
                continue
            rest = text[match.end():].lstrip()
            if rest.startswith("("):
                continue
            found.add(name)
        return sorted(found)

    def infer_type(self, text: str) -> str:
        """
        Type of a vector operand found outside any call, else float.

        Call results are not typed, so `length(st) * 2.0` stays float while
        `st * 2.0` is vec2.
        """
        for name in self.scan_identifiers(strip_calls(text)):
            variable = self.builtins.get_variable(self.builtins.extract_base(name))
            if variable is None:
                continue
            if self.builtins.has_swizzle(name):
                size = len(self.builtins.extract_swizzle(name))
                if size > 1:
                    return SWIZZLE_TYPES.get(size, "float")
            elif variable.glsl_type != "float":
                return variable.glsl_type
        return "float"
