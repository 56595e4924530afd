import math
import pytest
from glslforge import ExpressionParser, ArithmeticEvaluator, ExpressionError


@pytest.fixture
def parser(builtins):
    return ExpressionParser(builtins)


def test_simple_builtin_variable(parser):
    info = parser.parse_expression("st")
    assert info.is_simple_var and not info.is_constant
    assert info.type == "vec2"
    assert info.dependencies == ["st"]
    assert info.glsl == "st"


@pytest.mark.parametrize("arg,type_", [("st.x", "float"), ("st.yx", "vec2"), ("gl_FragCoord.xyz", "vec3"), ("time", "float")])
def test_swizzle_overrides_type(parser, arg, type_):
    assert parser.parse_expression(arg).type == type_


def test_user_variable_defaults_to_float(parser):
    info = parser.parse_expression("speed")
    assert info.is_simple_var
    assert info.type == "float"
    assert info.dependencies == ["speed"]


@pytest.mark.parametrize("literal", ["1", "0.25", "3.14159", "-2.5", "100.0"])
def test_numeric_literal_is_constant(parser, literal):
    info = parser.parse_expression(literal)
    assert info.is_constant
    assert info.dependencies == []
    assert info.constant_value == pytest.approx(float(literal))


def test_constant_arithmetic(parser):
    info = parser.parse_expression("2.0 * 3.0 + sin(0.0)")
    assert info.is_constant
    assert info.constant_value == pytest.approx(6.0)
    assert parser.parse_expression("2^3").constant_value == pytest.approx(8.0)
    assert parser.parse_expression("pi / 2").constant_value == pytest.approx(math.pi / 2)


@pytest.mark.parametrize("expr,deps", [
    ("time * 2 + resolution", ["resolution", "time"]),
    ("sin(time) * cos(speed)", ["speed", "time"]),
    ("amp * amp + time", ["amp", "time"]),
    ("max(time, offset) - 1", ["offset", "time"]),
])
def test_dependencies_are_free_variables(parser, expr, deps):
    info = parser.parse_expression(expr)
    assert sorted(info.dependencies) == deps
    assert not info.is_constant


def test_scenario_sin_cos_time(parser):
    info = parser.parse_expression("sin(time*10.0)+cos(time*5.0)")
    assert info.dependencies == ["time"]
    assert not info.is_constant
    assert info.glsl == "sin(time*10.0)+cos(time*5.0)"
    assert info.type == "float"


def test_dotted_expression_uses_manual_scan(parser):
    info = parser.parse_expression("st.x * 2.0 + length(st)")
    assert info.dependencies == ["st", "st.x"]
    assert not info.is_simple_var


def test_vector_dependency_infers_vector_type(parser):
    assert parser.parse_expression("st * 4.0").type == "vec2"


def test_parse_failure_is_a_value(parser):
    result = parser.parse("1 + * 2")
    assert not result.ok
    assert isinstance(result.error, ExpressionError)
    assert result.info.type == "float"
    assert result.info.dependencies == []
    assert result.info.glsl == "1 + * 2"


def test_parse_never_raises_on_unknown_function(parser):
    result = parser.parse("bogus(1)")
    assert not result
    assert result.error.token == "bogus"


def test_evaluator_variables_exclude_calls_and_constants():
    ev = ArithmeticEvaluator()
    assert ev.variables("sin(t) + pi * x") == ["t", "x"]
    assert ev.evaluate("x * 2", {"x": 4}) == pytest.approx(8.0)
    assert ev.evaluate("mix(0, 10, 0.25)") == pytest.approx(2.5)
    assert ev.evaluate("smoothstep(0, 1, 0.5)") == pytest.approx(0.5)
    assert ev.evaluate("mod(-1, 3)") == pytest.approx(2.0)


def test_evaluator_reports_position():
    with pytest.raises(ExpressionError) as info:
        ArithmeticEvaluator().evaluate("1 + ")
    assert info.value.position >= 0


def test_glsl_only_syntax_falls_back_to_identifier_scan(parser):
    result = parser.parse("time > 1 ? 1 : 0")
    assert result.ok
    assert result.info.dependencies == ["time"]
    assert not result.info.is_constant
    assert result.info.glsl == "time > 1 ? 1 : 0"


def test_very_long_expression_does_not_raise(parser):
    text = "+".join(["time"] * 3000)
    result = parser.parse(text)
    assert result.ok
    assert result.info.dependencies == ["time"]


def test_evaluator_turns_deep_nesting_into_expression_error():
    text = "+".join(["x"] * 3000)
    with pytest.raises(ExpressionError):
        ArithmeticEvaluator().variables(text)
    with pytest.raises(ExpressionError):
        ArithmeticEvaluator().evaluate(text, {"x": 1.0})
