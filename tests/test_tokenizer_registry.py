import sys
import os
import pytest

REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if REPO_ROOT not in sys.path:
    sys.path.insert(0, REPO_ROOT)

import cmd_emulator as v


def _noop(sh, *args):
    return None


def test_tokenize_empty_and_blank():
    assert v.tokenize("") == []
    assert v.tokenize("   \t ") == []


def test_tokenize_collapses_whitespace():
    assert v.tokenize("dir  a   b") == ["dir", "a", "b"]
    assert v.tokenize("  copy\ta.txt  b.txt \n") == ["copy", "a.txt", "b.txt"]


def test_tokenize_has_no_quoting():
    # a quoted path with a space still splits in two
    assert v.tokenize('type "my file.txt"') == ["type", '"my', 'file.txt"']


def test_lookup_ignores_case_and_leading_dots():
    reg = v.build_registry()
    d = reg.lookup("cd")
    assert reg.lookup("CD") is d
    assert reg.lookup(".cd") is d
    assert reg.lookup("  ..Cd ") is d


def test_exit_names_are_equivalent():
    reg = v.build_registry()
    assert reg.lookup(".exit") is reg.lookup("Exit") is reg.lookup("EXIT")


def test_lookup_unknown_raises_command_not_found():
    reg = v.build_registry()
    with pytest.raises(v.CommandNotFound) as exc:
        reg.lookup("frobnicate")
    assert exc.value.name == "frobnicate"
    assert reg.get("frobnicate") is None


def test_help_lookup():
    reg = v.build_registry()
    assert "Syntax: copy source destination" in reg.help("COPY")
    assert reg.help("nosuch") is None


def test_registry_rejects_duplicate_names():
    reg = v.CommandRegistry([v.OperationDescriptor("Foo", (), _noop)])
    with pytest.raises(ValueError):
        reg.register(v.OperationDescriptor(".foo", (), _noop))


def test_registry_contents():
    reg = v.build_registry()
    assert len(reg) == len(v.BUILTINS)
    assert "ECHO" in reg
    assert "bogus" not in reg
    assert reg.names() == sorted(reg.names())
    assert [d.name for d in reg] == reg.names()


def test_descriptor_name_is_canonical():
    d = v.OperationDescriptor(".Ping", (), _noop, "Sends a ping.\nSyntax: ping host")
    assert d.name == "ping"
    assert d.synopsis == "Sends a ping."


def test_rest_of_line_must_be_last():
    with pytest.raises(ValueError):
        v.OperationDescriptor("bad", (v.RestOfLine("rest"), v.Text("x")), _noop)


def test_required_parameter_cannot_follow_optional():
    with pytest.raises(ValueError):
        v.OperationDescriptor("bad", (v.Text("a", optional=True), v.Text("b")), _noop)


def test_empty_name_rejected():
    with pytest.raises(ValueError):
        v.OperationDescriptor("...", (), _noop)
