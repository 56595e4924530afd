from pathlib import Path
from glslforge import ShaderHost, enable_logging

PLUGINS = Path(__file__).parent / "plugins"

def main():
    """
    Demonstrates chaining shaders through `$shader_<id>` references.

    This example shows how to:
    - Register nodes without compiling them.
    - Feed one node's result into another node's arguments.
    - Compile the whole chain into one program.
    """
    enable_logging()
    host = ShaderHost(PLUGINS)
    engine = host.engine

    noise = engine.register_node("snoise", ["st * 4.0", "time"])
    color = engine.register_node("palette", [f"${noise} + time * 0.1"])

    print(engine.analyze_dependencies(color))
    shader = engine.compile_graph(color)
    if shader:
        print(shader.fragment_source)
    return host

if __name__ == "__main__":
    host = main()
    host.shutdown()
