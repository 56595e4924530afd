import atexit
import logging
import os
import re
from dataclasses import dataclass
from typing import Optional

from .errors import GLSLForgeError

logger = logging.getLogger(__name__)

_INCLUDE = re.compile(r'^\s*#include\s+"([^"]+)"\s*$', re.MULTILINE)


class CompileError(GLSLForgeError):
    """Compilation failure reported by the GPU driver."""


@dataclass
class CompileResult:
    program: object = None
    error: Optional[CompileError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class HeadlessContext:
    """
    Manages a hidden OpenGL context used to compile shaders without a window.
    Only one context is created per process.
    """
    _ctx = None

    @classmethod
    def get(cls):
        if cls._ctx is not None:
            return cls._ctx

        import glfw
        import moderngl

        if not glfw.init():
            raise RuntimeError("glfw could not be initialized.")

        glfw.window_hint(glfw.VISIBLE, False)
        glfw.window_hint(glfw.CONTEXT_VERSION_MAJOR, 3)
        glfw.window_hint(glfw.CONTEXT_VERSION_MINOR, 3)
        glfw.window_hint(glfw.OPENGL_PROFILE, glfw.OPENGL_CORE_PROFILE)
        glfw.window_hint(glfw.OPENGL_FORWARD_COMPAT, True)

        window = glfw.create_window(1, 1, "glslforge headless", None, None)
        if not window:
            glfw.terminate()
            raise RuntimeError("Failed to create a hidden glfw window.")

        glfw.make_context_current(window)
        cls._ctx = moderngl.create_context()
        atexit.register(glfw.terminate)
        return cls._ctx


def resolve_includes(source: str, include_dir: str, _seen=None) -> str:
    """Inlines `#include "file"` lines, each file at most once."""
    if not include_dir:
        return source
    seen = set() if _seen is None else _seen

    def _replace(match):
        path = os.path.normpath(os.path.join(include_dir, match.group(1)))
        if path in seen:
            return ""
        seen.add(path)
        try:
            with open(path, 'r') as f:
                text = f.read()
        except OSError as e:
            raise CompileError(f"Cannot resolve #include \"{match.group(1)}\" from {include_dir}: {e}") from e
        return resolve_includes(text, os.path.dirname(path), seen)

    return _INCLUDE.sub(_replace, source)


class ModernGLCompiler:
    """
    Compiles vertex/fragment pairs into moderngl programs.

    Args:
        ctx: A moderngl context. When omitted, a hidden headless context is
             created on first use.
    """
    def __init__(self, ctx=None):
        self._ctx = ctx

    @property
    def ctx(self):
        if self._ctx is None:
            self._ctx = HeadlessContext.get()
        return self._ctx

    def compile(self, vertex_source: str, fragment_source: str, include_dir: str = "") -> CompileResult:
        try:
            vertex = resolve_includes(vertex_source, include_dir)
            fragment = resolve_includes(fragment_source, include_dir)
            program = self.ctx.program(vertex_shader=vertex, fragment_shader=fragment)
        except CompileError as e:
            logger.error("Shader compilation failed. Details:\n%s", e)
            return CompileResult(error=e)
        except Exception as e:
            logger.error("Shader compilation failed. Details:\n%s", e)
            return CompileResult(error=CompileError(str(e)))
        return CompileResult(program=program)
