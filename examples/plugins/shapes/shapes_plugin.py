from glslforge import GLSLPlugin, GLSLFunctionMetadata, FunctionOverload


class ShapesPlugin(GLSLPlugin):
    name = "shapes"
    version = "0.3.0"
    author = "glslforge"

    def __init__(self):
        super().__init__([
            GLSLFunctionMetadata("circleSDF", "glsl/circleSDF.glsl", "sdf", (
                FunctionOverload("float", ("vec2",)),
                FunctionOverload("float", ("vec2", "vec2")),
            )),
            GLSLFunctionMetadata("palette", "glsl/palette.glsl", "color", (
                FunctionOverload("vec3", ("float",)),
            )),
        ])


def get_plugin_abi_version():
    return 1

def create_plugin():
    return ShapesPlugin()

def destroy_plugin(instance):
    instance.functions.clear()

def get_plugin_info():
    return "Signed distance shapes and color palettes"
