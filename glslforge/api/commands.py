import enum
import logging
from dataclasses import dataclass
from typing import Dict, Optional

from .artifact import ShaderArtifact
from .dependencies import FunctionKind, split_arguments

logger = logging.getLogger(__name__)


class OutputState(enum.Enum):
    IDLE = "idle"
    CONNECTED = "connected"


class GlobalOutput:
    """
    The single slot whose artifact the host renders each frame.

    Disconnecting only drops the reference; the artifact stays owned by the
    cache that created it.
    """
    def __init__(self):
        self.current: Optional[ShaderArtifact] = None
        self.current_id = ""
        self.connection_count = 0
        self.disconnection_count = 0

    @property
    def state(self) -> OutputState:
        return OutputState.CONNECTED if self.current is not None else OutputState.IDLE

    def connect(self, shader_id: str, artifact: ShaderArtifact) -> bool:
        if artifact is None or not artifact.is_ready():
            logger.error("Cannot connect shader '%s' - shader is not ready (compilation failed?)", shader_id)
            return False
        if self.current is not None:
            self.disconnect()
        self.current, self.current_id = artifact, shader_id
        artifact.mark_connected()
        self.connection_count += 1
        logger.info("Connected shader '%s' to global output (connection #%d)", shader_id, self.connection_count)
        return True

    def disconnect(self) -> bool:
        if self.current is None:
            logger.warning("No shader to disconnect")
            return False
        self.current.mark_disconnected()
        logger.info("Disconnected shader '%s' from global output", self.current_id)
        self.current, self.current_id = None, ""
        self.disconnection_count += 1
        return True

    def update(self, elapsed: float, width: float, height: float):
        """Refreshes automatic uniforms of the connected artifact for this frame."""
        if self.current is not None:
            self.current.update_auto_uniforms(elapsed, width, height)
            self.current.apply_uniforms()


@dataclass
class CommandResult:
    ok: bool
    value: str = ""

    def __bool__(self):
        return self.ok


class CommandHandler:
    """
    Serves the create/connect/free requests delivered by a transport layer.

    Every created artifact is also registered as a composition node, so later
    requests can reference it as `$shader_<n>`. Requests without references
    go through the ShaderManager cache; the rest compile as a graph.
    """
    def __init__(self, manager, engine, output: GlobalOutput = None):
        self.manager = manager
        self.engine = engine
        self.output = output or GlobalOutput()
        self._artifacts: Dict[str, ShaderArtifact] = {}

    def create(self, function_name: str, raw_arguments: str) -> CommandResult:
        arguments = split_arguments(raw_arguments)
        for arg in arguments:
            check = self.engine.builtins.validate_swizzle(arg)
            if not check.valid:
                return CommandResult(False, check.message)

        classified = self.engine.analyzer.classify(function_name)
        shader_id = self.engine.register_node(function_name, arguments)
        if shader_id is None:
            return CommandResult(False, f"Function '{function_name}' not found in GLSL built-ins or plugins")

        # The manager only serves plugin functions; builtins compile as a one-node graph.
        if classified.kind is FunctionKind.BUILTIN or any("$shader_" in arg for arg in arguments):
            artifact = self.engine.compile_graph(shader_id)
            reason = "Failed to compile shader graph"
        else:
            artifact = self.manager.create_shader_with_id(shader_id, function_name, arguments)
            reason = artifact.error or "Failed to compile shader"

        if artifact is None or not artifact.is_ready():
            self.engine.remove_node(shader_id)
            return CommandResult(False, reason)

        self._artifacts[shader_id] = artifact
        return CommandResult(True, shader_id)

    def connect(self, shader_id: str) -> CommandResult:
        artifact = self._artifacts.get(shader_id)
        if artifact is None:
            return CommandResult(False, f"Unknown shader id '{shader_id}'")
        if not self.output.connect(shader_id, artifact):
            return CommandResult(False, f"Shader '{shader_id}' is not ready")
        return CommandResult(True, shader_id)

    def free(self, shader_id: str) -> CommandResult:
        """Frees a shader and every shader built on top of it."""
        if shader_id not in self._artifacts:
            return CommandResult(False, f"Unknown shader id '{shader_id}'")
        self._release(shader_id)
        return CommandResult(True, shader_id)

    def _release(self, shader_id: str):
        dependents = self.engine.dependents_of(shader_id)
        self._artifacts.pop(shader_id, None)
        if self.output.current_id == shader_id:
            self.output.disconnect()
        self.manager.remove_shader_by_id(shader_id)
        self.engine.remove_node(shader_id)
        for dependent in dependents:
            logger.info("Freeing '%s', which references '%s'", dependent, shader_id)
            self._release(dependent)

    def active_ids(self):
        return list(self._artifacts)
