import enum
import logging
from typing import List

import numpy as np

logger = logging.getLogger(__name__)


class ArtifactState(enum.Enum):
    CREATED = "created"
    COMPILING = "compiling"
    IDLE = "idle"
    CONNECTED = "connected"
    ERROR = "error"


class ShaderArtifact:
    """
    One generated shader and the program compiled from it.

    The artifact owns its program; `cleanup()` releases it. Caches hand out
    the same artifact object rather than copies.
    """
    def __init__(self, function_name: str, arguments: List[str]):
        self.function_name = function_name
        self.arguments = list(arguments)
        self.vertex_source = ""
        self.fragment_source = ""
        self.function_code = ""
        self.source_directory = ""
        self.return_type = ""
        self.program = None
        self.error = ""
        self.state = ArtifactState.CREATED
        self.auto_update_time = False
        self.auto_update_resolution = False
        self.float_uniforms = {}
        self.vec2_uniforms = {}

    def __repr__(self):
        return f"ShaderArtifact({self.function_name!r}, {self.arguments!r}, {self.status})"

    def set_shader_code(self, vertex_source: str, fragment_source: str):
        self.vertex_source = vertex_source
        self.fragment_source = fragment_source

    def set_error(self, message: str):
        self.error = message
        self.state = ArtifactState.ERROR
        logger.error("Shader '%s' error: %s", self.function_name, message)

    def compile(self, compiler) -> bool:
        """Hands both stages to `compiler`; returns True on success."""
        if not self.vertex_source or not self.fragment_source:
            self.set_error("No shader source to compile")
            return False
        self.state = ArtifactState.COMPILING
        result = compiler.compile(self.vertex_source, self.fragment_source, self.source_directory)
        if not result.ok:
            self.set_error(str(result.error))
            return False
        self.release_program()
        self.program = result.program
        self.error = ""
        self.state = ArtifactState.IDLE
        return True

    def is_ready(self) -> bool:
        return self.program is not None and self.state in (ArtifactState.IDLE, ArtifactState.CONNECTED)

    @property
    def has_error(self) -> bool:
        return self.state is ArtifactState.ERROR

    @property
    def status(self) -> str:
        if self.has_error:
            return "ERROR"
        if self.is_ready():
            return "COMPILED"
        if self.vertex_source and self.fragment_source:
            return "READY_TO_COMPILE"
        return "NOT_READY"

    def mark_connected(self):
        if self.is_ready():
            self.state = ArtifactState.CONNECTED

    def mark_disconnected(self):
        if self.state is ArtifactState.CONNECTED:
            self.state = ArtifactState.IDLE

    # --- Uniforms ---

    def set_float_uniform(self, name: str, value: float):
        self.float_uniforms[name] = np.float32(value)

    def set_vec2_uniform(self, name: str, x: float, y: float):
        self.vec2_uniforms[name] = np.array([x, y], dtype='f4')

    def update_auto_uniforms(self, elapsed: float, width: float, height: float):
        if self.auto_update_time:
            self.set_float_uniform("time", elapsed)
        if self.auto_update_resolution:
            self.set_vec2_uniform("resolution", width, height)

    def apply_uniforms(self):
        """Pushes stored uniform values into the compiled program."""
        if self.program is None:
            return
        for name, value in self.float_uniforms.items():
            try: self.program[name].value = float(value)
            except KeyError: pass
        for name, value in self.vec2_uniforms.items():
            try: self.program[name].value = tuple(float(v) for v in value)
            except KeyError: pass

    def release_program(self):
        if self.program is not None:
            self.program.release()
            self.program = None

    def cleanup(self):
        self.release_program()
        if self.state is not ArtifactState.ERROR:
            self.state = ArtifactState.CREATED
