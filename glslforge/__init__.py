import logging
import sys

from .api.builtins import BuiltinRegistry, BuiltinVariable
from .api.plugins import (
    PluginRegistry, GLSLPlugin, GLSLFunctionMetadata, FunctionOverload,
    PLUGIN_ABI_VERSION, find_plugin_files,
)
from .api.expressions import ExpressionParser, ExpressionInfo, ParseResult, ArithmeticEvaluator
from .api.dependencies import FunctionDependencyAnalyzer, FunctionKind, split_arguments
from .api.codegen import ShaderCodeGenerator, OverloadStrategy, ComponentCountStrategy
from .api.artifact import ShaderArtifact, ArtifactState
from .api.compiler import ModernGLCompiler, CompileError, CompileResult
from .api.manager import ShaderManager
from .api.composition import ShaderCompositionEngine
from .api.commands import CommandHandler, GlobalOutput, CommandResult
from .api.watcher import PluginWatcher
from .api.host import ShaderHost
from .api.errors import (
    GLSLForgeError, PluginLoadError, FunctionNotFoundError, InvalidSwizzleError,
    CircularDependencyError, UnresolvedReferenceError, UnmatchedParenthesesError, ExpressionError,
)


class _LevelPrefixFormatter(logging.Formatter):
    def format(self, record):
        return f"{record.levelname}: {record.getMessage()}"


def enable_logging(level=logging.INFO):
    """Routes glslforge log records to stderr as `LEVEL: message` lines."""
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_LevelPrefixFormatter())
    logger = logging.getLogger("glslforge")
    logger.addHandler(handler)
    logger.setLevel(level)
    return handler
