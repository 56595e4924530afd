import enum
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .artifact import ShaderArtifact
from .codegen import DEFAULT_RETURN_TYPE, GeneratedShader, ShaderCodeGenerator, output_conversion
from .dependencies import FunctionDependencyAnalyzer, FunctionKind
from .errors import CircularDependencyError, GLSLForgeError, UnresolvedReferenceError
from .manager import uses_builtin

logger = logging.getLogger(__name__)

_REFERENCE = re.compile(r"\$(shader_\w+)")


class NodeState(enum.Enum):
    UNVISITED = 0
    IN_PROGRESS = 1
    DONE = 2


@dataclass
class CompositionNode:
    id: str
    function_name: str
    arguments: List[str]
    inputs: List[str] = field(default_factory=list)
    resolved: bool = False


def result_name(node_id: str) -> str:
    return f"{node_id}_result"


def substitute_references(argument: str) -> str:
    """`$shader_3 * 2.0` -> `shader_3_result * 2.0`."""
    return _REFERENCE.sub(lambda m: result_name(m.group(1)), argument)


class ShaderCompositionEngine:
    """
    Collects shader nodes that reference each other through `$shader_<id>`
    arguments and compiles the chain feeding an output node as one program.

    Nodes are stored by id only; edges hold ids and are looked up on demand.

    Args:
        plugins: PluginRegistry for function metadata and sources.
        builtins: BuiltinRegistry shared with the rest of the pipeline.
        compiler: Object with `compile(vertex, fragment, include_dir) -> CompileResult`.
        generator: Optional ShaderCodeGenerator whose helpers build each node's code.
    """
    def __init__(self, plugins, builtins, compiler, generator: ShaderCodeGenerator = None):
        self.plugins = plugins
        self.builtins = builtins
        self.compiler = compiler
        self.generator = generator or ShaderCodeGenerator(plugins, builtins)
        self.analyzer = FunctionDependencyAnalyzer(plugins, builtins)
        self.debug_mode = False
        self._nodes: Dict[str, CompositionNode] = {}
        self._cache: Dict[str, ShaderArtifact] = {}
        self._counter = 0

    def __len__(self):
        return len(self._nodes)

    def set_debug_mode(self, enabled: bool):
        self.debug_mode = enabled

    # --- Nodes ---

    def register_node(self, function_name: str, arguments) -> Optional[str]:
        """
        Stores a pending node and returns its id, or None if the function is
        unknown or an argument selects components its variable does not have.
        """
        classified = self.analyzer.classify(function_name)
        if classified.kind is FunctionKind.UNKNOWN:
            logger.error("Cannot register node: %s", classified.reason)
            return None
        for arg in arguments:
            check = self.builtins.validate_swizzle(arg)
            if not check.valid:
                logger.error("Cannot register node: %s", check.message)
                return None
        self._counter += 1
        node_id = f"shader_{self._counter}"
        self._nodes[node_id] = CompositionNode(node_id, function_name, [a.strip() for a in arguments])
        if self.debug_mode:
            logger.info("Registered node %s: %s(%s)", node_id, function_name, ", ".join(arguments))
        return node_id

    def get_node(self, node_id: str) -> Optional[CompositionNode]:
        return self._nodes.get(node_id)

    def has_node(self, node_id: str) -> bool:
        return node_id in self._nodes

    def node_count(self) -> int:
        return len(self._nodes)

    def remove_node(self, node_id: str) -> bool:
        """Removes one node. Nodes that referenced it fail on their next compile."""
        return self._nodes.pop(node_id, None) is not None

    def dependents_of(self, node_id: str) -> List[str]:
        """Ids of the nodes whose arguments reference `node_id`."""
        return [n.id for n in self._nodes.values()
                if any(node_id in _REFERENCE.findall(arg) for arg in n.arguments)]

    def clear_all(self):
        self._nodes.clear()
        self.clear_cache()

    def clear_cache(self):
        for artifact in self._cache.values():
            artifact.cleanup()
        self._cache.clear()

    # --- Graph analysis ---

    def resolve_dependencies(self, node_id: str):
        node = self._nodes[node_id]
        inputs = []
        for arg in node.arguments:
            for ref in _REFERENCE.findall(arg):
                if ref not in self._nodes:
                    node.resolved = False
                    raise UnresolvedReferenceError(f"Node '{node_id}' references unknown node '{ref}'")
                if ref not in inputs:
                    inputs.append(ref)
        node.inputs = inputs
        node.resolved = True

    def _visit(self, node_id: str, marks: Dict[str, NodeState], order: List[str], parent: str = None):
        if node_id not in self._nodes:
            raise UnresolvedReferenceError(f"Unknown node '{node_id}'")
        state = marks.get(node_id, NodeState.UNVISITED)
        if state is NodeState.IN_PROGRESS:
            raise CircularDependencyError(parent, node_id)
        if state is NodeState.DONE:
            return
        marks[node_id] = NodeState.IN_PROGRESS
        for dep in self._nodes[node_id].inputs:
            self._visit(dep, marks, order, node_id)
        marks[node_id] = NodeState.DONE
        order.append(node_id)

    def analyze_dependencies(self, output_id: str) -> List[str]:
        """Dependency-first order of the nodes reachable from `output_id`."""
        for node_id in self._nodes:
            self.resolve_dependencies(node_id)
        order = []
        self._visit(output_id, {}, order)
        return order

    def generate_graph_key(self, chain: List[str]) -> str:
        parts = [f"{self._nodes[n].function_name}({','.join(self._nodes[n].arguments)})" for n in chain]
        return "graph_" + "_".join(parts)

    # --- Code generation ---

    def generate_unified_shader(self, chain: List[str]) -> GeneratedShader:
        gen = self.generator
        local_types = {}
        uniforms, builtins_used = set(), set()
        functions, emitted = [], set()
        body = []
        return_type = "float"

        for node_id in chain:
            node = self._nodes[node_id]
            arguments = [substitute_references(a) for a in node.arguments]
            infos = gen.describe(arguments, local_types)
            uniforms |= gen.needed_uniforms(infos, exclude=local_types)
            builtins_used |= gen.needed_builtins(infos)

            prefix = f"_{node_id}_expr"
            callee = node.function_name
            analysis = self.analyzer.analyze_arguments(node.function_name, arguments)
            if not analysis.is_valid:
                raise GLSLForgeError(analysis.error)

            for name in sorted(analysis.plugin_functions):
                if name not in emitted:
                    source = self.plugins.load_source(name)
                    if not source:
                        raise GLSLForgeError(f"Failed to load GLSL code for function: {name}")
                    functions.append(f"// {name}\n{source}")
                    emitted.add(name)

            if node.function_name in analysis.plugin_functions:
                overload = gen.select_overload(node.function_name, infos)
                return_type = overload.return_type if overload else DEFAULT_RETURN_TYPE
                if gen.needs_wrapper(overload, infos):
                    callee = f"{node.function_name}_{node_id}"
                    functions.append(gen.generate_wrapper(node.function_name, overload, infos, callee))
            else:
                return_type = gen.builtin_return_type(node.function_name, infos)

            body += gen.generate_temporaries(infos, prefix)
            call_args = ", ".join(gen.call_arguments(infos, prefix))
            body.append(f"    {return_type} {result_name(node_id)} = {callee}({call_args});")
            local_types[result_name(node_id)] = return_type

        main = gen.builtin_declarations(builtins_used)
        if main:
            main.append("")
        main += body
        main.append(f"    {output_conversion(return_type, result_name(chain[-1]))}")

        fragment = gen.render_fragment(gen.uniform_declarations(uniforms), "\n\n".join(functions), main)
        return GeneratedShader(gen.generate_vertex_shader(), fragment, return_type)

    # --- Compilation ---

    def compile_graph(self, output_id: str) -> Optional[ShaderArtifact]:
        """Compiles the chain feeding `output_id`. Returns None on any failure."""
        try:
            chain = self.analyze_dependencies(output_id)
        except GLSLForgeError as e:
            logger.error("Dependency analysis failed for %s: %s", output_id, e)
            return None

        key = self.generate_graph_key(chain)
        cached = self._cache.get(key)
        if cached is not None and cached.is_ready():
            logger.info("Returning cached graph: %s", key)
            return cached

        try:
            generated = self.generate_unified_shader(chain)
        except GLSLForgeError as e:
            logger.error("Failed to generate unified shader code: %s", e)
            return None
        if self.debug_mode:
            logger.info("Generated unified shader:\n%s", generated.fragment)

        arguments = [a for n in chain for a in self._nodes[n].arguments]
        artifact = ShaderArtifact(self._nodes[output_id].function_name, arguments)
        artifact.set_shader_code(generated.vertex, generated.fragment)
        artifact.return_type = generated.return_type
        artifact.source_directory = self._include_dir(chain)

        if not artifact.compile(self.compiler):
            logger.error("Failed to compile unified shader for %s", output_id)
            return None

        parser = self.generator.parser
        artifact.auto_update_time = uses_builtin(self.builtins, parser, arguments, "time")
        artifact.auto_update_resolution = uses_builtin(self.builtins, parser, arguments, "st")
        self._cache[key] = artifact
        logger.info("Compiled graph %s (%d nodes)", output_id, len(chain))
        return artifact

    def _include_dir(self, chain) -> str:
        for node_id in chain:
            path = self.plugins.resolve_source_path(self._nodes[node_id].function_name)
            if path:
                return os.path.dirname(path)
        return ""
