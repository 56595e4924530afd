from pathlib import Path
from glslforge import ShaderHost, enable_logging

PLUGINS = Path(__file__).parent / "plugins"

def main():
    """
    Demonstrates creating a single shader from a plugin function.

    This example shows how to:
    - Load every plugin below a directory.
    - Request `snoise(st, time)`; the vec3 overload is picked and a wrapper
      packs the vec2 and the float into it.
    - Connect the result to the global output.
    """
    enable_logging()
    host = ShaderHost(PLUGINS)
    shader = host.manager.create_shader("snoise", ["st", "time"])
    print(shader.fragment_source)
    if shader.is_ready():
        host.output.connect("noise", shader)
    return host

if __name__ == "__main__":
    host = main()
    host.shutdown()
