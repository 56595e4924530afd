from pathlib import Path
from glslforge import ShaderHost, enable_logging

PLUGINS = Path(__file__).parent / "plugins"

def main():
    """
    Demonstrates the create/connect/free requests a network layer would send.
    """
    enable_logging()
    host = ShaderHost(PLUGINS, watch=True)

    result = host.commands.create("circleSDF", "st")
    print(result)
    if result:
        print(host.commands.connect(result.value))
        host.tick(0.0, 800, 600)
        print(host.commands.free(result.value))
    return host

if __name__ == "__main__":
    host = main()
    host.shutdown()
