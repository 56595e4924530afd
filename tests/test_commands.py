import pytest
from glslforge import CommandHandler, GlobalOutput, ShaderManager, ShaderCompositionEngine, ShaderArtifact, ArtifactState
from glslforge.api.commands import OutputState


@pytest.fixture
def handler(plugins, builtins, compiler):
    manager = ShaderManager(plugins, builtins, compiler)
    engine = ShaderCompositionEngine(plugins, builtins, compiler)
    return CommandHandler(manager, engine)


def test_create_connect_free(handler):
    created = handler.create("snoise", "st, time")
    assert created.ok and created.value == "shader_1"
    assert handler.active_ids() == ["shader_1"]
    assert handler.manager.get_shader_by_id("shader_1") is not None

    connected = handler.connect("shader_1")
    assert connected
    assert handler.output.state is OutputState.CONNECTED
    artifact = handler.output.current

    freed = handler.free("shader_1")
    assert freed
    assert handler.output.state is OutputState.IDLE
    assert handler.active_ids() == []
    assert not handler.engine.has_node("shader_1")
    # Freeing an id does not release the cached program.
    assert artifact.is_ready()


def test_create_with_reference_compiles_graph(handler, mock_ctx):
    first = handler.create("circleSDF", "st")
    second = handler.create("palette", f"${first.value}")
    assert second.ok and second.value == "shader_2"
    fragment = mock_ctx.program.call_args.kwargs["fragment_shader"]
    assert "vec3 shader_2_result = palette(shader_1_result);" in fragment


def test_create_errors(handler):
    unknown = handler.create("nothing", "st")
    assert not unknown.ok
    assert "nothing" in unknown.value

    bad_swizzle = handler.create("snoise", "st.q")
    assert not bad_swizzle.ok
    assert "supports components [x, y]" in bad_swizzle.value
    assert handler.engine.node_count() == 0


def test_connect_and_free_unknown_ids(handler):
    assert not handler.connect("shader_42")
    assert not handler.free("shader_42")


def test_global_output_rejects_unready_artifact():
    output = GlobalOutput()
    assert not output.connect("x", ShaderArtifact("snoise", []))
    assert output.state is OutputState.IDLE
    assert not output.disconnect()


def test_global_output_switching(compiler):
    output = GlobalOutput()
    a, b = ShaderArtifact("a", []), ShaderArtifact("b", [])
    for artifact in (a, b):
        artifact.set_shader_code("VS", "FS")
        artifact.compile(compiler)
    assert output.connect("a", a)
    assert output.connect("b", b)
    assert output.current is b and output.current_id == "b"
    assert output.connection_count == 2 and output.disconnection_count == 1
    assert a.is_ready() and a.state is ArtifactState.IDLE


def test_output_update_refreshes_auto_uniforms(handler):
    created = handler.create("snoise", "st, time")
    handler.connect(created.value)
    handler.output.update(2.0, 320, 240)
    artifact = handler.output.current
    assert float(artifact.float_uniforms["time"]) == pytest.approx(2.0)
    assert list(artifact.vec2_uniforms["resolution"]) == [320.0, 240.0]


def test_free_releases_dependents_and_later_graphs_still_compile(handler):
    a = handler.create("circleSDF", "st").value
    b = handler.create("palette", f"${a}").value
    handler.connect(b)

    assert handler.free(a)
    assert handler.active_ids() == []
    assert not handler.engine.has_node(b)
    assert handler.output.state is OutputState.IDLE

    c = handler.create("circleSDF", "st * 2.0")
    d = handler.create("palette", f"${c.value}")
    assert c.ok and d.ok
    assert handler.active_ids() == [c.value, d.value]


def test_invalid_swizzle_in_graph_request_never_compiles(handler, mock_ctx):
    first = handler.create("circleSDF", "st")
    calls = mock_ctx.program.call_count

    result = handler.create("sphereSDF", f"${first.value}, st.q")
    assert not result.ok
    assert result.value == "Invalid swizzle 'st.q': base variable 'st' supports components [x, y]"
    assert mock_ctx.program.call_count == calls
    assert handler.engine.node_count() == 1


def test_builtin_main_function_compiles_as_graph(handler, mock_ctx):
    result = handler.create("sin", "time")
    assert result.ok and result.value == "shader_1"
    fragment = mock_ctx.program.call_args.kwargs["fragment_shader"]
    assert "float shader_1_result = sin(time);" in fragment
    assert handler.connect(result.value)
