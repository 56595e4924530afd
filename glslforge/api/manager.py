import logging
import os
from typing import Dict, List, Optional

from .artifact import ShaderArtifact
from .codegen import ShaderCodeGenerator
from .dependencies import FunctionDependencyAnalyzer

logger = logging.getLogger(__name__)


def uses_builtin(builtins, parser, arguments, name: str) -> bool:
    """True if any argument reads builtin `name`, directly or inside an expression."""
    for arg in arguments:
        if builtins.extract_base(arg.strip()) == name:
            return True
        if builtins.is_complex_expression(arg):
            deps = parser.parse_expression(arg).dependencies
            if any(builtins.extract_base(dep) == name for dep in deps):
                return True
    return False


class ShaderManager:
    """
    Creates single-function shaders and caches them by signature.

    `create_shader` never raises: every failure comes back as an artifact in
    the ERROR state carrying a message.

    Args:
        plugins: PluginRegistry that provides function metadata and sources.
        builtins: BuiltinRegistry shared with the rest of the pipeline.
        compiler: Object with `compile(vertex, fragment, include_dir) -> CompileResult`.
        generator: Optional ShaderCodeGenerator; one is built if omitted.
    """
    def __init__(self, plugins, builtins, compiler, generator: ShaderCodeGenerator = None):
        self.plugins = plugins
        self.builtins = builtins
        self.compiler = compiler
        self.generator = generator or ShaderCodeGenerator(plugins, builtins)
        self.analyzer = FunctionDependencyAnalyzer(plugins, builtins)
        self._cache: Dict[str, ShaderArtifact] = {}
        self._active: Dict[str, ShaderArtifact] = {}

    def __len__(self):
        return len(self._cache)

    @staticmethod
    def generate_cache_key(function_name: str, arguments) -> str:
        """`snoise`, [`st`, `time`] -> `snoise_st_time`. Underscores inside a part are escaped."""
        parts = [function_name] + list(arguments)
        return "_".join(p.replace("\\", "\\\\").replace("_", "\\_") for p in parts)

    def get_cached_shader(self, key: str) -> Optional[ShaderArtifact]:
        return self._cache.get(key)

    def _error(self, function_name, arguments, message) -> ShaderArtifact:
        artifact = ShaderArtifact(function_name, arguments)
        artifact.set_error(message)
        return artifact

    def create_shader(self, function_name: str, arguments) -> ShaderArtifact:
        arguments = [a.strip() for a in arguments]
        logger.info("Creating shader for function: %s with %d arguments", function_name, len(arguments))

        for arg in arguments:
            check = self.builtins.validate_swizzle(arg)
            if not check.valid:
                return self._error(function_name, arguments, check.message)

        key = self.generate_cache_key(function_name, arguments)
        cached = self._cache.get(key)
        if cached is not None and cached.is_ready():
            logger.info("Returning cached shader: %s", key)
            return cached

        metadata = self.plugins.find_function(function_name)
        if metadata is None:
            return self._error(function_name, arguments, f"Function '{function_name}' not found in any loaded plugin")

        plugin = self.plugins.owner_of(function_name)
        if self.plugins.has_builtin_conflict(function_name):
            logger.warning("Using function '%s' from plugin '%s' which conflicts with GLSL built-in "
                           "- behavior is undetermined", function_name, plugin)

        analysis = self.analyzer.analyze_arguments(function_name, arguments)
        if not analysis.is_valid:
            return self._error(function_name, arguments, analysis.error)

        code = self.plugins.load_source(function_name, plugin)
        if not code:
            return self._error(function_name, arguments, f"Failed to load GLSL code for function: {function_name}")
        for nested in sorted(analysis.plugin_functions - {function_name}):
            nested_code = self.plugins.load_source(nested)
            if not nested_code:
                return self._error(function_name, arguments, f"Failed to load GLSL code for function: {nested}")
            code = nested_code + "\n" + code

        artifact = ShaderArtifact(function_name, arguments)
        artifact.function_code = code
        artifact.source_directory = os.path.dirname(self.plugins.resolve_source_path(function_name, plugin))

        generated = self.generator.generate_fragment_shader(code, function_name, arguments)
        artifact.set_shader_code(generated.vertex, generated.fragment)
        artifact.return_type = generated.return_type

        if not artifact.compile(self.compiler):
            logger.error("Failed to compile shader for function: %s", function_name)
            return artifact

        parser = self.generator.parser
        artifact.auto_update_time = uses_builtin(self.builtins, parser, arguments, "time")
        artifact.auto_update_resolution = uses_builtin(self.builtins, parser, arguments, "st")

        self._cache[key] = artifact
        logger.info("Compiled and cached shader: %s", key)
        return artifact

    # --- Artifacts addressed by id ---

    def create_shader_with_id(self, shader_id: str, function_name: str, arguments) -> ShaderArtifact:
        artifact = self.create_shader(function_name, arguments)
        if artifact.is_ready():
            self._active[shader_id] = artifact
        return artifact

    def get_shader_by_id(self, shader_id: str) -> Optional[ShaderArtifact]:
        return self._active.get(shader_id)

    def remove_shader_by_id(self, shader_id: str) -> bool:
        return self._active.pop(shader_id, None) is not None

    def get_all_active_shader_ids(self) -> List[str]:
        return list(self._active)

    # --- Cache maintenance ---

    def clear_cache(self):
        """Drops every cached artifact and releases its program."""
        for artifact in self._cache.values():
            artifact.cleanup()
        self._cache.clear()
        self._active.clear()
        logger.info("Shader cache cleared")

    def cache_info(self) -> List[str]:
        lines = [f"Shader cache: {len(self._cache)} entries, {len(self._active)} active ids"]
        for key, artifact in self._cache.items():
            lines.append(f"  {key}: {artifact.status}")
        return lines

    def print_cache_info(self):
        for line in self.cache_info():
            logger.info("%s", line)
