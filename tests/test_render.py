import json

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from stp.emitters.json_emitter import JsonEmitter
from stp.emitters.source_emitter import SourceEmitter
from stp.emitters.tree_emitter import TreeEmitter
from stp.stp_ast import ASTNode
from stp.stp_parser import parse
from stp.stp_render import Renderer

PROGRAM = """\
# demo
import linalg.solvers
sym theta
x = [1 2; 3 4]'
fn scale(m, by=2) {
    ret m * by
}
for i in 1...2...10 {
    if i mod 3 == 0 {
        cont
    } elseif i > 7 {
        break
    } else {
        y = -scale(x, by=i)%;
    }
}
while not_done(50%) {
    msg = "x=\\{x + 1\\} \\x41\\101\\n"
}
exit
"""


def render(source: str, target: str = "stp") -> str:
    return Renderer(target).render(parse(source))


def test_render_canonical_spacing() -> None:
    assert render("x=1+2*-y") == "x = 1 + 2 * -y\n"


def test_render_program_is_a_fixpoint() -> None:
    assert render(PROGRAM) == PROGRAM


def test_render_then_reparse_keeps_structure() -> None:
    tree = parse(PROGRAM)
    again = parse(Renderer("stp").render(tree))
    assert tree.same_structure(again)


def test_render_if_chain_layout() -> None:
    assert render("if a {b} elseif c {d} else {e}") == (
        "if a {\n    b\n} elseif c {\n    d\n} else {\n    e\n}\n"
    )


def test_render_keyword_only_definition() -> None:
    assert render("fn f(, k = 1) {}") == "fn f(k=1) {\n}\n"


def test_render_matrix_elements() -> None:
    assert render("[1 -2, 3;4 - 5]") == "[1 -2 3; 4 - 5]\n"


def test_render_error_nodes_as_comments() -> None:
    tree = parse("x = \ny = 1", strict=False)
    out = Renderer("stp").render(tree)
    assert out.startswith("# error: Expected expression")
    assert out.endswith("y = 1\n")


def test_render_empty_tree() -> None:
    assert render("") == ""


def test_tree_dump() -> None:
    assert render("x = 1", "tree").split("\n") == [
        "'source_file'",
        "  'assignment'",
        "    assign_name: 'identifier' : \"x\"",
        "    assign_expr: 'number' : \"1\"",
        "",
    ]


def test_tree_dump_lists_errors() -> None:
    out = Renderer("tree").render(parse("x = )", strict=False))
    assert "'ERROR'" in out
    assert "syntax error: Expected expression" in out


def test_json_output() -> None:
    doc = json.loads(render("x = 1", "json"))
    stmt = doc["children"][0]
    assert stmt["kind"] == "assignment"
    assert stmt["fields"] == {"assign_name": [0], "assign_expr": [1]}
    assert "errors" not in doc


def test_json_output_lists_errors() -> None:
    doc = json.loads(Renderer("json").render(parse("x = )", strict=False)))
    assert doc["errors"][0]["kind"] == "syntax error"
    assert doc["errors"][0]["col"] == 5


def test_target_is_case_insensitive() -> None:
    assert Renderer("JSON").target == "json"


def test_unknown_target() -> None:
    with pytest.raises(ValueError):
        Renderer("py")


def test_render_requires_astnode() -> None:
    with pytest.raises(TypeError):
        Renderer("stp").render("x = 1")  # type: ignore[arg-type]


def test_missing_emitter_method() -> None:
    with pytest.raises(NotImplementedError):
        Renderer("json").render(ASTNode("number", "1"))
    with pytest.raises(NotImplementedError):
        Renderer("stp").render(ASTNode("mystery"))


def test_source_emitter_expression_dispatch() -> None:
    emitter = SourceEmitter()
    node = parse("f(a, k=[1 2])").children[0].children[0]
    assert emitter.emit_expr(node) == "f(a, k=[1 2])"
    with pytest.raises(NotImplementedError):
        emitter.emit_expr(ASTNode("block"))
    with pytest.raises(TypeError):
        emitter.emit_expr(None)


def test_emitters_start_empty() -> None:
    assert TreeEmitter().get_output() == ""
    assert JsonEmitter().get_output() == "{}\n"


names = st.sampled_from(["a", "b", "x1", "foo", "m.n"])
leaves = st.one_of(
    names,
    st.integers(min_value=0, max_value=500).map(str),
    st.sampled_from(["1.5", "50%", "1...10", "0...2...8", '"s"', r'"\x41\n"']),
)
binary_ops = st.sampled_from(
    ["+", "-", "*", "/", "^", ".*", "./", ".^", "@", "&", "mod", "==", "!=", "<", "<=", ">", ">=", "in", "and", "or", "not"]
)


def extend(children: st.SearchStrategy[str]) -> st.SearchStrategy[str]:
    return st.one_of(
        st.tuples(children, binary_ops, children).map(lambda t: f"{t[0]} {t[1]} {t[2]}"),
        st.tuples(st.sampled_from(["-", "+", "~"]), children).map(lambda t: t[0] + t[1]),
        st.tuples(children, st.sampled_from(["'", "!", "%"])).map(lambda t: f"({t[0]}){t[1]}"),
        children.map(lambda c: f"({c})"),
        st.tuples(children, children).map(lambda t: f"f({t[0]}, k={t[1]})"),
        st.tuples(children, children, children).map(lambda t: f"[{t[0]} {t[1]}; {t[2]}]"),
        children.map(lambda c: f'"v=\\{{{c}\\}}!"'),
    )


expressions = st.recursive(leaves, extend, max_leaves=12)


@settings(max_examples=150, deadline=None, suppress_health_check=[HealthCheck.too_slow])  # type: ignore[misc]
@given(expressions)  # type: ignore[misc]
def test_render_reparse_idempotent(source: str) -> None:
    tree = parse(f"x = {source}")
    text = Renderer("stp").render(tree)
    again = parse(text)
    assert tree.same_structure(again)
    assert Renderer("stp").render(again) == text
