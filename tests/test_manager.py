import os
import pytest
from unittest.mock import patch
from glslforge import ShaderManager, ArtifactState


@pytest.fixture
def manager(plugins, builtins, compiler):
    return ShaderManager(plugins, builtins, compiler)


def test_create_shader(manager, mock_ctx, plugins):
    shader = manager.create_shader("snoise", ["st", "time"])
    assert shader.is_ready()
    assert shader.state is ArtifactState.IDLE
    assert shader.return_type == "float"
    assert shader.source_directory == os.path.dirname(plugins.resolve_source_path("snoise"))
    assert shader.auto_update_time and shader.auto_update_resolution

    fragment = mock_ctx.program.call_args.kwargs["fragment_shader"]
    assert "float snoise(vec3 a0)" in fragment
    assert "snoise_wrapper(st, time)" in fragment
    assert len(manager) == 1


def test_cache_hit_skips_generation(manager, mock_ctx):
    first = manager.create_shader("snoise", ["st", "time"])
    with patch.object(manager.generator, "generate_fragment_shader") as generate:
        second = manager.create_shader("snoise", ["st", "time"])
        generate.assert_not_called()
    assert second is first
    assert mock_ctx.program.call_count == 1


def test_different_arguments_use_different_slots(manager):
    a = manager.create_shader("snoise", ["st"])
    b = manager.create_shader("snoise", ["st", "time"])
    assert a is not b
    assert manager.generate_cache_key("snoise", ["st", "time"]) == "snoise_st_time"
    assert manager.get_cached_shader("snoise_st") is a


def test_invalid_swizzle_fails_fast(manager, mock_ctx):
    shader = manager.create_shader("snoise", ["st.q"])
    assert shader.state is ArtifactState.ERROR
    assert shader.error == "Invalid swizzle 'st.q': base variable 'st' supports components [x, y]"
    mock_ctx.program.assert_not_called()


def test_unknown_function(manager):
    shader = manager.create_shader("nothing", ["st"])
    assert shader.has_error
    assert shader.error == "Function 'nothing' not found in any loaded plugin"


def test_unknown_nested_function(manager):
    shader = manager.create_shader("snoise", ["wobble(st)"])
    assert shader.has_error
    assert "wobble" in shader.error


def test_nested_plugin_sources_are_included(manager, mock_ctx):
    shader = manager.create_shader("palette", ["random(st) + time"])
    assert shader.is_ready()
    fragment = mock_ctx.program.call_args.kwargs["fragment_shader"]
    assert "float random(vec2 a0)" in fragment
    assert "vec3 palette(float a0)" in fragment
    assert "float _expr0 = random(st) + time;" in fragment


def test_missing_glsl_file(manager, plugins):
    os.remove(plugins.resolve_source_path("random"))
    shader = manager.create_shader("random", ["st"])
    assert shader.has_error
    assert shader.error == "Failed to load GLSL code for function: random"


def test_compile_error_is_not_cached(plugins, builtins, failing_compiler):
    manager = ShaderManager(plugins, builtins, failing_compiler)
    shader = manager.create_shader("snoise", ["st"])
    assert shader.has_error
    assert "syntax error" in shader.error
    assert len(manager) == 0


def test_auto_update_flags_from_nested_expressions(manager):
    shader = manager.create_shader("palette", ["sin(time*10.0)+cos(time*5.0)"])
    assert shader.auto_update_time
    assert not shader.auto_update_resolution
    shader = manager.create_shader("palette", ["st.x"])
    assert shader.auto_update_resolution and not shader.auto_update_time


def test_builtin_conflict_warning(manager, caplog):
    with caplog.at_level("WARNING"):
        manager.create_shader("mix", ["st", "st", "0.5"])
    assert "conflicts with GLSL built-in" in caplog.text


def test_ids_and_cache_maintenance(manager):
    shader = manager.create_shader_with_id("node_1", "snoise", ["st"])
    failed = manager.create_shader_with_id("node_2", "nothing", [])
    assert failed.has_error
    assert manager.get_shader_by_id("node_1") is shader
    assert manager.get_all_active_shader_ids() == ["node_1"]
    assert manager.cache_info()[0] == "Shader cache: 1 entries, 1 active ids"
    assert "snoise_st: COMPILED" in manager.cache_info()[1]

    assert manager.remove_shader_by_id("node_1")
    assert not manager.remove_shader_by_id("node_1")
    assert shader.is_ready()

    program = shader.program
    manager.clear_cache()
    program.release.assert_called_once()
    assert len(manager) == 0 and not shader.is_ready()


def test_cache_keys_do_not_collide_across_underscores(manager):
    assert manager.generate_cache_key("noise_st", ["time"]) != manager.generate_cache_key("noise", ["st", "time"])
    assert manager.generate_cache_key("a_b", ["c", "d"]) != manager.generate_cache_key("a", ["b_c", "d"])


def test_glsl_only_argument_still_declares_its_uniforms(manager, mock_ctx):
    shader = manager.create_shader("palette", ["time > 1 ? 1 : 0"])
    assert shader.is_ready()
    assert shader.auto_update_time
    fragment = mock_ctx.program.call_args.kwargs["fragment_shader"]
    assert "uniform float time;" in fragment
