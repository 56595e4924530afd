from glslforge import GLSLPlugin, GLSLFunctionMetadata, FunctionOverload


class NoisePlugin(GLSLPlugin):
    name = "noise"
    version = "1.0.0"
    author = "glslforge"

    def __init__(self):
        super().__init__([
            GLSLFunctionMetadata("random", "glsl/random.glsl", "generative", (
                FunctionOverload("float", ("vec2",)),
            )),
            GLSLFunctionMetadata("snoise", "glsl/snoise.glsl", "generative", (
                FunctionOverload("float", ("vec2",)),
                FunctionOverload("float", ("vec3",)),
            )),
        ])


def get_plugin_abi_version():
    return 1

def create_plugin():
    return NoisePlugin()

def destroy_plugin(instance):
    instance.functions.clear()

def get_plugin_info():
    return "Value noise and hash functions"
