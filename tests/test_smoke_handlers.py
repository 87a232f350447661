import sys
import os
import io
import traceback
import pytest

REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if REPO_ROOT not in sys.path:
    sys.path.insert(0, REPO_ROOT)

import cmd_emulator as v


def test_smoke_builtins_do_not_raise(tmp_path):
    """Dispatch every built-in with no arguments and fail if anything other
    than ``exit`` lets an exception escape. Reported errors are acceptable.
    """
    out = io.StringIO()
    d = v.Dispatcher(v.build_registry(), v.Config(color=False), stdout=out,
                     stdin=io.StringIO(), cwd=str(tmp_path))
    failures = []
    for name in d.registry.names():
        if name == "exit":
            continue
        try:
            frame = d.dispatch(name)
            assert frame.state in (v.State.SUCCEEDED, v.State.FAILED)
        except Exception:
            failures.append((name, traceback.format_exc()))

    if failures:
        msgs = []
        for n, tb in failures:
            msgs.append(f"{n}:\n{tb}")
        pytest.fail(f"{len(failures)} commands raised exceptions:\n\n" + "\n\n".join(msgs))


def test_every_builtin_has_help():
    for descriptor in v.BUILTINS:
        assert descriptor.synopsis, descriptor.name
        assert "Syntax:" in descriptor.help_text, descriptor.name
