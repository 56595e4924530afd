class GLSLForgeError(Exception):
    """Base class for every error raised inside glslforge."""


class PluginLoadError(GLSLForgeError):
    """A function library could not be opened, verified or registered."""


class FunctionNotFoundError(GLSLForgeError):
    """A function name is neither a GLSL builtin nor provided by a plugin."""
    def __init__(self, name: str, message: str = None):
        self.name = name
        super().__init__(message or f"Function '{name}' not found in GLSL built-ins or plugins")


class InvalidSwizzleError(GLSLForgeError):
    """An argument selects components its base variable does not have."""


class CircularDependencyError(GLSLForgeError):
    """The composition graph reachable from an output node contains a cycle."""
    def __init__(self, source: str, target: str):
        self.source = source
        self.target = target
        super().__init__(f"Circular dependency detected involving: {source} -> {target}")


class UnresolvedReferenceError(GLSLForgeError):
    """A `$shader_<id>` reference names a node that is not registered."""


class UnmatchedParenthesesError(GLSLForgeError):
    """A function call in argument text has no closing parenthesis."""


class ExpressionError(GLSLForgeError):
    """
    Raised by the arithmetic evaluator.

    Args:
        message: Human readable description.
        position: Character offset into the expression, or -1 if unknown.
        token: The offending token, if one could be isolated.
    """
    def __init__(self, message: str, position: int = -1, token: str = ""):
        self.message = message
        self.position = position
        self.token = token
        super().__init__(message)
