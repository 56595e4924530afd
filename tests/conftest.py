import os
import pytest
from unittest.mock import MagicMock

from glslforge import BuiltinRegistry, PluginRegistry, ModernGLCompiler

# Dependency checks
try:
    import moderngl
    import glfw
    HEADLESS_SUPPORTED = os.environ.get("SKIP_GPU", "") != "1"
except ImportError:
    HEADLESS_SUPPORTED = False

requires_gpu = pytest.mark.skipif(not HEADLESS_SUPPORTED, reason="Requires moderngl and glfw.")

PLUGIN_TEMPLATE = '''
from glslforge import GLSLPlugin, GLSLFunctionMetadata, FunctionOverload

DESTROYED = []

class TestPlugin(GLSLPlugin):
    name = {name!r}
    version = "1.0"
    author = "tests"

    def __init__(self):
        super().__init__([
            GLSLFunctionMetadata(n, f, c, tuple(FunctionOverload(r, tuple(p)) for r, p in o))
            for n, f, c, o in {functions!r}
        ])

{abi}
{create}
def destroy_plugin(instance):
    DESTROYED.append(instance.name)

def get_plugin_info():
    return "test plugin {name}"
'''

CREATE_SYMBOL = '''
def create_plugin():
    return TestPlugin()
'''

NOISE_FUNCTIONS = [
    ("snoise", "glsl/snoise.glsl", "generative", [("float", ["vec2"]), ("float", ["vec3"])]),
    ("random", "glsl/random.glsl", "generative", [("float", ["vec2"])]),
]

SHAPE_FUNCTIONS = [
    ("circleSDF", "glsl/circleSDF.glsl", "sdf", [("float", ["vec2"])]),
    ("palette", "glsl/palette.glsl", "color", [("vec3", ["float"])]),
    ("sphereSDF", "glsl/sphereSDF.glsl", "sdf", [("float", ["vec3"]), ("float", ["vec3", "float"])]),
    ("mix", "glsl/mix.glsl", "color", [("vec3", ["vec3", "vec3", "float"])]),
]


@pytest.fixture
def make_plugin(tmp_path):
    """Writes a plugin module plus one GLSL stub per function and returns its path."""
    def _make(name, functions=NOISE_FUNCTIONS, abi=1, create=True, directory=None, sources=None):
        root = tmp_path / (directory or name)
        (root / "glsl").mkdir(parents=True, exist_ok=True)
        abi_code = f"def get_plugin_abi_version():\n    return {abi}\n" if abi is not None else ""
        code = PLUGIN_TEMPLATE.format(
            name=name, functions=functions, abi=abi_code, create=CREATE_SYMBOL if create else "")
        path = root / f"{name}_plugin.py"
        path.write_text(code)
        for fn_name, file_path, _, overloads in functions:
            text = (sources or {}).get(fn_name)
            if text is None:
                text = "\n".join(
                    f"{ret} {fn_name}({', '.join(f'{p} a{i}' for i, p in enumerate(params))}) {{ return {ret}(0.0); }}"
                    for ret, params in overloads)
            (root / file_path).write_text(text)
        return str(path)
    return _make


@pytest.fixture
def builtins():
    return BuiltinRegistry()


@pytest.fixture
def plugins(builtins, make_plugin):
    registry = PluginRegistry(builtins)
    assert registry.load(make_plugin("noise"))
    assert registry.load(make_plugin("shapes", SHAPE_FUNCTIONS))
    yield registry
    registry.unload_all()


@pytest.fixture
def mock_ctx():
    return MagicMock()


@pytest.fixture
def compiler(mock_ctx):
    return ModernGLCompiler(mock_ctx)


@pytest.fixture
def failing_compiler():
    ctx = MagicMock()
    ctx.program.side_effect = Exception("0:12(2): error: syntax error, unexpected '}'")
    return ModernGLCompiler(ctx)
