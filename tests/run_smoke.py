#
# usr/bin/env python3
"""Smoke test: dispatch every built-in command to make sure none crashes.

This script builds the command registry, then dispatches each command name
with no arguments inside a scratch directory. Commands that report an error
(a missing argument, say) are considered OK; only exceptions that escape the
dispatcher are treated as failures. ``exit`` is skipped since ending the
process is its job.
"""
from __future__ import annotations
import traceback
import tempfile
import sys
import os

# Make the repository root importable so we can import cmd_emulator as a module.
REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if REPO_ROOT not in sys.path:
    sys.path.insert(0, REPO_ROOT)

import cmd_emulator


def main():
    registry = cmd_emulator.build_registry()
    print(f"Found {len(registry)} registered commands.")

    failures = []
    with tempfile.TemporaryDirectory() as scratch:
        dispatcher = cmd_emulator.Dispatcher(registry, cmd_emulator.Config(), cwd=scratch)
        for name in registry.names():
            if name == "exit":
                continue
            try:
                dispatcher.dispatch(name)
            except Exception as e:
                tb = traceback.format_exc()
                failures.append((name, str(e), tb))

    if failures:
        print(f"\n{len(failures)} commands raised exceptions:\n")
        for n, err, tb in failures:
            print(f"- {n}: {err}")
            print(tb)
        sys.exit(2)

    print("\nAll built-in commands returned (no uncaught exceptions).")


if __name__ == '__main__':
    main()
