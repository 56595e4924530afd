import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .expressions import ExpressionInfo, ExpressionParser, strip_calls

logger = logging.getLogger(__name__)

VERTEX_SHADER = """#version 150

uniform mat4 modelViewProjectionMatrix;

in vec4 position;
in vec2 texcoord;

out vec2 vTexCoord;

void main() {
    vTexCoord = texcoord;
    gl_Position = modelViewProjectionMatrix * position;
}
"""

FRAGMENT_TEMPLATE = """#version 150

in vec2 vTexCoord;
out vec4 outputColor;

{uniforms}

{functions}

void main() {{
{main}
}}
"""

COMPONENTS = "xyzw"
DEFAULT_RETURN_TYPE = "vec3"

OUTPUT_CONVERSIONS = {
    "float": "vec4(vec3({0}), 1.0)",
    "vec2": "vec4({0}.xy, 0.0, 1.0)",
    "vec3": "vec4({0}, 1.0)",
    "vec4": "{0}",
}

# Builtins whose result is a scalar whatever their argument types are.
SCALAR_BUILTINS = frozenset(["length", "distance", "dot", "any", "all"])


def component_count(glsl_type: str) -> int:
    """float=1, vecN=N (also ivecN, bvecN, ...), anything else 1."""
    if glsl_type and glsl_type[-1] in "234" and glsl_type[:-1].endswith("vec"):
        return int(glsl_type[-1])
    return 1


def glsl_float(value: float) -> str:
    return f"{float(value)}"


def output_conversion(return_type: str, var: str = "result") -> str:
    template = OUTPUT_CONVERSIONS.get(return_type, OUTPUT_CONVERSIONS["float"])
    return f"outputColor = {template.format(var)};"


class OverloadStrategy:
    """Chooses which overload of a plugin function a call should target."""
    def select(self, overloads, infos: List[ExpressionInfo]):
        raise NotImplementedError


class ComponentCountStrategy(OverloadStrategy):
    """
    Matches overloads by total GLSL component count of the user's arguments.

    Priority: a single-vector parameter of exactly the right size, then a
    multi-parameter overload of the same arity and slot sizes, then any
    multi-parameter overload with the same component total, then the
    single-vector overload nearest in size (larger wins ties). The first
    overload is the last resort.
    """
    def select(self, overloads, infos):
        overloads = list(overloads)
        if not overloads:
            return None
        total = sum(component_count(i.type) for i in infos)
        singles = [o for o in overloads if len(o.param_types) == 1]
        multis = [o for o in overloads if len(o.param_types) > 1]

        for o in singles:
            if component_count(o.param_types[0]) == total and self.can_combine(infos, o.param_types[0]):
                return o
        for o in multis:
            if len(o.param_types) == len(infos) and \
                    all(component_count(p) == component_count(i.type) for p, i in zip(o.param_types, infos)):
                return o
        for o in multis:
            if sum(component_count(p) for p in o.param_types) == total:
                return o
        if singles:
            return min(singles, key=lambda o: (abs(component_count(o.param_types[0]) - total),
                                               component_count(o.param_types[0]) < total))
        return overloads[0]

    @staticmethod
    def can_combine(infos, target_type: str) -> bool:
        if target_type != "float" and not target_type.startswith("vec"):
            return False
        return all(i.type == "float" or i.type.startswith("vec") for i in infos)


@dataclass
class GeneratedShader:
    vertex: str
    fragment: str
    return_type: str
    overload: object = None
    wrapper: str = ""
    infos: List[ExpressionInfo] = field(default_factory=list)


class ShaderCodeGenerator:
    """
    Builds vertex and fragment source for one function call.

    Args:
        plugins: PluginRegistry used for overload metadata.
        builtins: BuiltinRegistry used for uniform and declaration lookup.
        parser: ExpressionParser for argument text; built from `builtins` if omitted.
        strategy: OverloadStrategy; ComponentCountStrategy if omitted.
    """
    def __init__(self, plugins, builtins, parser: ExpressionParser = None, strategy: OverloadStrategy = None):
        self.plugins = plugins
        self.builtins = builtins
        self.parser = parser or ExpressionParser(builtins)
        self.strategy = strategy or ComponentCountStrategy()

    def generate_vertex_shader(self) -> str:
        return VERTEX_SHADER

    def describe(self, arguments, local_types: Dict[str, str] = None) -> List[ExpressionInfo]:
        """Parses every argument; names in `local_types` are typed from it."""
        infos = []
        for arg in arguments:
            info = self.parser.parse_expression(arg)
            if local_types and info.is_simple_var and info.glsl in local_types:
                info.type = local_types[info.glsl]
            elif local_types and not info.is_constant and info.type == "float":
                for name in self.parser.scan_identifiers(strip_calls(info.glsl)):
                    if component_count(local_types.get(name, "float")) > 1:
                        info.type = local_types[name]
                        break
            infos.append(info)
        return infos

    # --- Uniforms and declarations ---

    def needed_uniforms(self, infos, exclude=()) -> set:
        names = set()
        for info in infos:
            for dep in info.dependencies:
                base = self.builtins.extract_base(dep)
                if base in exclude:
                    continue
                variable = self.builtins.get_variable(base)
                if variable is not None:
                    if variable.needs_uniform:
                        names.add("resolution" if base == "st" else base)
                elif not info.is_constant:
                    names.add(base)
        return names

    def uniform_declarations(self, names) -> str:
        lines = []
        for name in sorted(names):
            variable = self.builtins.get_variable(name)
            glsl_type = variable.glsl_type if variable is not None else "float"
            lines.append(f"uniform {glsl_type} {name};")
        return "\n".join(lines)

    def generate_uniforms(self, infos, exclude=()) -> str:
        return self.uniform_declarations(self.needed_uniforms(infos, exclude))

    def needed_builtins(self, infos) -> set:
        return {self.builtins.extract_base(dep)
                for info in infos for dep in info.dependencies
                if self.builtins.is_builtin_variable(self.builtins.extract_base(dep))}

    def builtin_declarations(self, names) -> List[str]:
        lines = []
        for name in sorted(names):
            variable = self.builtins.get_variable(name)
            if variable is not None and variable.needs_declaration:
                lines.append(f"    {variable.declaration_code};")
        return lines

    def generate_declarations(self, infos) -> List[str]:
        return self.builtin_declarations(self.needed_builtins(infos))

    def generate_temporaries(self, infos, prefix: str = "_expr") -> List[str]:
        return [f"    {info.type} {prefix}{i} = {info.glsl};"
                for i, info in enumerate(infos)
                if not info.is_simple_var and not info.is_constant]

    def call_arguments(self, infos, prefix: str = "_expr") -> List[str]:
        args = []
        for i, info in enumerate(infos):
            if info.is_constant:
                args.append(glsl_float(info.constant_value))
            elif info.is_simple_var:
                args.append(info.glsl)
            else:
                args.append(f"{prefix}{i}")
        return args

    # --- Overloads and wrappers ---

    def select_overload(self, function_name: str, infos):
        metadata = self.plugins.find_function(function_name)
        if metadata is None or not metadata.overloads:
            return None
        overload = self.strategy.select(metadata.overloads, infos)
        logger.debug("Selected overload %s for %s", overload, function_name)
        return overload

    @staticmethod
    def needs_wrapper(overload, infos) -> bool:
        if overload is None:
            return False
        if len(overload.param_types) != len(infos):
            return True
        return any(p != i.type for p, i in zip(overload.param_types, infos))

    @staticmethod
    def _pack(param_type: str, items) -> str:
        """Builds one parameter from (arg_name, component, arg_components) items."""
        need = component_count(param_type)
        if not items:
            return "0.0" if need == 1 else f"{param_type}(0.0)"
        groups = []
        for name, comp, size in items:
            if groups and groups[-1][0] == name:
                groups[-1][1].append(comp)
            else:
                groups.append((name, [comp], size))
        parts = []
        for name, comps, size in groups:
            if size == 1 or len(comps) == size:
                parts.append(name)
            else:
                parts.append(f"{name}.{''.join(COMPONENTS[c] for c in comps)}")
        if need == 1:
            return parts[0]
        parts += ["0.0"] * (need - len(items))
        if len(groups) == 1 and len(items) == need:
            return parts[0]
        return f"{param_type}({', '.join(parts)})"

    def wrapper_call(self, overload, infos) -> str:
        """Maps the wrapper's `argN` parameters onto the target overload, zero-padding short slots."""
        stream = [(f"arg{i}", c, component_count(info.type))
                  for i, info in enumerate(infos)
                  for c in range(component_count(info.type))]
        params, cursor = [], 0
        for param_type in overload.param_types:
            need = component_count(param_type)
            params.append(self._pack(param_type, stream[cursor:cursor + need]))
            cursor += need
        return ", ".join(params)

    def generate_wrapper(self, function_name: str, overload, infos, wrapper_name: str = None) -> str:
        wrapper_name = wrapper_name or f"{function_name}_wrapper"
        signature = ", ".join(f"{info.type} arg{i}" for i, info in enumerate(infos))
        return (f"{overload.return_type} {wrapper_name}({signature}) {{\n"
                f"    return {function_name}({self.wrapper_call(overload, infos)});\n"
                f"}}\n")

    def builtin_return_type(self, function_name: str, infos) -> str:
        if self.builtins.is_builtin_type(function_name):
            return function_name
        if function_name in SCALAR_BUILTINS or not infos:
            return "float"
        return max((i.type for i in infos), key=component_count)

    # --- Assembly ---

    def render_fragment(self, uniforms: str, functions: str, main_lines) -> str:
        return FRAGMENT_TEMPLATE.format(uniforms=uniforms, functions=functions, main="\n".join(main_lines))

    def generate_fragment_shader(self, function_code: str, function_name: str, arguments) -> GeneratedShader:
        infos = self.describe(arguments)
        overload = self.select_overload(function_name, infos)
        return_type = overload.return_type if overload else DEFAULT_RETURN_TYPE

        functions = function_code
        callee = function_name
        wrapper = ""
        if self.needs_wrapper(overload, infos):
            wrapper = self.generate_wrapper(function_name, overload, infos)
            functions += "\n\n// Generated wrapper function to adapt arguments\n" + wrapper
            callee = f"{function_name}_wrapper"

        main = []
        declarations = self.generate_declarations(infos)
        if declarations:
            main += declarations + [""]
        temporaries = self.generate_temporaries(infos)
        if temporaries:
            main += temporaries + [""]
        main.append(f"    {return_type} result = {callee}({', '.join(self.call_arguments(infos))});")
        main.append(f"    {output_conversion(return_type)}")

        fragment = self.render_fragment(self.generate_uniforms(infos), functions, main)
        logger.debug("Generated fragment shader for %s:\n%s", function_name, fragment)
        return GeneratedShader(self.generate_vertex_shader(), fragment, return_type, overload, wrapper, infos)
