import os
import pytest
from glslforge import PluginRegistry, ShaderHost

PLUGINS = os.path.join(os.path.dirname(__file__), "..", "examples", "plugins")


def test_bundled_plugins_load(builtins):
    registry = PluginRegistry(builtins)
    assert registry.load_all(PLUGINS) == 2
    assert registry.get_plugin_statistics() == {"noise": 2, "shapes": 2}
    assert registry.find_function("snoise").category == "generative"
    registry.unload_all()


def test_bundled_snoise_include_resolves(mock_ctx):
    host = ShaderHost(PLUGINS, ctx=mock_ctx)
    shader = host.manager.create_shader("snoise", ["st", "time"])
    assert shader.is_ready(), shader.error
    fragment = mock_ctx.program.call_args.kwargs["fragment_shader"]
    assert "float random(vec2 st)" in fragment
    assert "#include" not in fragment
    host.shutdown()
