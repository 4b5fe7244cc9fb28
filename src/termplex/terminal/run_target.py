"""Resolve a terminal action into the command a new pane runs."""

from __future__ import annotations

import os
from collections.abc import Mapping

from termplex.errors import ExitCode, TermplexError
from termplex.terminal.models import OpenFile, RunCommand, TerminalAction

EDITOR_ENV_VARS = ("EDITOR", "VISUAL")
SHELL_ENV_VAR = "SHELL"


def _lookup(env: Mapping[str, str], name: str) -> str:
    return env.get(name, "").strip()


def resolve_editor(env: Mapping[str, str] | None = None) -> str:
    source = os.environ if env is None else env
    for name in EDITOR_ENV_VARS:
        editor = _lookup(source, name)
        if editor:
            return editor
    raise TermplexError(
        "Can't edit files if an editor is not defined.",
        code=ExitCode.CONFIG_ERROR,
        hint="Define the EDITOR or VISUAL environment variable with the path to your editor (eg. /usr/bin/vim).",
    )


def resolve_shell(env: Mapping[str, str] | None = None) -> str:
    source = os.environ if env is None else env
    shell = _lookup(source, SHELL_ENV_VAR)
    if not shell:
        raise TermplexError(
            "Could not find the SHELL variable.",
            code=ExitCode.CONFIG_ERROR,
            hint="Export SHELL with the path to your login shell (eg. /bin/bash).",
        )
    return shell


def resolve_run_command(
    action: TerminalAction | None,
    env: Mapping[str, str] | None = None,
) -> RunCommand:
    if isinstance(action, OpenFile):
        return RunCommand(command=resolve_editor(env), args=(str(action.path),))
    if isinstance(action, RunCommand):
        return action
    if action is None:
        return RunCommand(command=resolve_shell(env))
    raise TermplexError(
        f"Unsupported terminal action: {action!r}",
        code=ExitCode.VALIDATION_ERROR,
        hint="Use OpenFile, RunCommand or no action for the default shell.",
    )
