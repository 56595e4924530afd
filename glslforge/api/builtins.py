import re
from dataclasses import dataclass

_FLOAT_LITERAL = re.compile(r"^-?(\d+\.?\d*|\.\d+)$")
_IDENTIFIER = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")
_SWIZZLED = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*\.[a-zA-Z]+$")

COMPONENTS = "xyzw"

BUILTIN_TYPES = frozenset([
    "bool", "bvec2", "bvec3", "bvec4",
    "int", "ivec2", "ivec3", "ivec4",
    "uint", "uvec2", "uvec3", "uvec4",
    "float", "vec2", "vec3", "vec4",
    "double", "dvec2", "dvec3", "dvec4",
    "mat2", "mat3", "mat4",
    "mat2x2", "mat2x3", "mat2x4",
    "mat3x2", "mat3x3", "mat3x4",
    "mat4x2", "mat4x3", "mat4x4",
    "dmat2", "dmat3", "dmat4",
    "dmat2x2", "dmat2x3", "dmat2x4",
    "dmat3x2", "dmat3x3", "dmat3x4",
    "dmat4x2", "dmat4x3", "dmat4x4",
])

BUILTIN_FUNCTIONS = frozenset([
    # Angle and trigonometry
    "radians", "degrees", "sin", "cos", "tan", "asin", "acos", "atan",
    # Exponential
    "pow", "exp", "log", "exp2", "log2", "sqrt", "inversesqrt",
    # Common
    "abs", "sign", "floor", "trunc", "round", "roundEven", "ceil", "fract",
    "mod", "modf", "min", "max", "clamp", "mix", "step", "smoothstep",
    # Geometric
    "length", "distance", "dot", "cross", "normalize", "faceforward",
    "reflect", "refract",
    # Matrix
    "matrixCompMult",
    # Vector relational
    "lessThan", "lessThanEqual", "greaterThan", "greaterThanEqual",
    "equal", "notEqual", "any", "all", "not",
])


@dataclass(frozen=True)
class BuiltinVariable:
    """A variable that is always available to generated fragment shaders."""
    name: str
    glsl_type: str
    components: int
    needs_uniform: bool
    needs_declaration: bool
    declaration_code: str = ""


DEFAULT_VARIABLES = (
    BuiltinVariable("st", "vec2", 2, True, True, "vec2 st = gl_FragCoord.xy / resolution"),
    BuiltinVariable("time", "float", 1, True, False),
    BuiltinVariable("resolution", "vec2", 2, True, False),
    BuiltinVariable("gl_FragCoord", "vec4", 4, False, False),
)


@dataclass(frozen=True)
class SwizzleCheck:
    valid: bool
    message: str = ""

    def __bool__(self):
        return self.valid


class BuiltinRegistry:
    """
    Catalogue of builtin variables and of GLSL builtin functions and types.

    Constructed once by the host and handed to every component that needs it.
    The function and type tables only answer "is this available without a
    plugin"; no signatures are tracked for them.
    """
    def __init__(self, variables=DEFAULT_VARIABLES, functions=BUILTIN_FUNCTIONS, types=BUILTIN_TYPES):
        self._variables = {v.name: v for v in variables}
        self._functions = frozenset(functions)
        self._types = frozenset(types)

    # --- Variables ---

    def get_variable(self, name: str):
        return self._variables.get(name)

    def is_builtin_variable(self, name: str) -> bool:
        return name in self._variables

    def variable_names(self):
        return sorted(self._variables)

    # --- Functions and types ---

    def is_builtin_function(self, name: str) -> bool:
        return name in self._functions

    def is_builtin_type(self, name: str) -> bool:
        return name in self._types

    def is_builtin(self, name: str) -> bool:
        """True for builtin functions and for type constructors such as `vec3`."""
        return self.is_builtin_function(name) or self.is_builtin_type(name)

    # --- Swizzles ---

    @staticmethod
    def extract_base(expr: str) -> str:
        return expr.split(".", 1)[0]

    @staticmethod
    def extract_swizzle(expr: str) -> str:
        parts = expr.split(".", 1)
        return parts[1] if len(parts) == 2 else ""

    @staticmethod
    def has_swizzle(expr: str) -> bool:
        return "." in expr

    @staticmethod
    def is_float_literal(text: str) -> bool:
        return bool(_FLOAT_LITERAL.match(text.strip()))

    def is_complex_expression(self, text: str) -> bool:
        """Anything that is neither a literal nor a (possibly swizzled) identifier."""
        text = text.strip()
        if self.is_float_literal(text):
            return False
        return not (_IDENTIFIER.match(text) or _SWIZZLED.match(text))

    @staticmethod
    def supported_components(count: int) -> str:
        return COMPONENTS[:max(1, min(count, 4))]

    def validate_swizzle(self, expr: str) -> SwizzleCheck:
        """
        Checks that a swizzled builtin only selects components it has.

        Literals, plain names and compound expressions are accepted as-is;
        only `name.components` arguments are inspected.
        """
        expr = expr.strip()
        if self.is_float_literal(expr) or not _SWIZZLED.match(expr):
            return SwizzleCheck(True)

        base = self.extract_base(expr)
        swizzle = self.extract_swizzle(expr)
        variable = self.get_variable(base)
        if variable is None:
            return SwizzleCheck(False, f"Unknown variable '{base}'")

        allowed = self.supported_components(variable.components)
        if len(swizzle) > 4 or any(c not in allowed for c in swizzle):
            listed = ", ".join(allowed)
            return SwizzleCheck(
                False,
                f"Invalid swizzle '{expr}': base variable '{base}' supports components [{listed}]"
            )
        return SwizzleCheck(True)
