"""Helpers shared by several checks."""

from shellpit.core.constructs import CommandInvocation

# Options of read and mapfile that consume the following word
_READ_ARG_OPTIONS = "adinNptu"
_MAPFILE_ARG_OPTIONS = "dnOsuCc"


def assigned_names(invocation: CommandInvocation) -> tuple[list[str], list[str]]:
    """Variables a builtin writes, as (scalars, arrays).

    Covers read, mapfile/readarray and printf -v.

    Example:
        read -r -a parts line  ->  (['line'], ['parts'])
    """
    name = invocation.name
    if name == "read":
        return _read_targets(invocation.args)
    if name in ("mapfile", "readarray"):
        return [], [_mapfile_target(invocation.args)]
    if name == "printf":
        target = printf_target(invocation)
        return ([target] if target else []), []
    return [], []


def printf_target(invocation: CommandInvocation) -> str:
    """Variable named by ``printf -v NAME``, or an empty string."""
    args = invocation.args
    for index, arg in enumerate(args):
        if arg == "-v" and index + 1 < len(args):
            return args[index + 1].split("[", 1)[0]
        if arg.startswith("-v") and len(arg) > 2:
            return arg[2:].split("[", 1)[0]
        if not arg.startswith("-"):
            break
    return ""


def _read_targets(args: tuple[str, ...]) -> tuple[list[str], list[str]]:
    scalars: list[str] = []
    arrays: list[str] = []
    index = 0
    while index < len(args):
        arg = args[index]
        if arg.startswith("-") and len(arg) > 1 and not scalars:
            for position, flag in enumerate(arg[1:]):
                if flag in _READ_ARG_OPTIONS:
                    value = arg[position + 2 :]
                    if not value and index + 1 < len(args):
                        index += 1
                        value = args[index]
                    if flag == "a" and value:
                        arrays.append(value)
                    break
        else:
            scalars.append(arg)
        index += 1
    if not scalars and not arrays:
        scalars.append("REPLY")
    return scalars, arrays


def _mapfile_target(args: tuple[str, ...]) -> str:
    target = "MAPFILE"
    index = 0
    while index < len(args):
        arg = args[index]
        if arg.startswith("-") and len(arg) > 1:
            if arg[1] in _MAPFILE_ARG_OPTIONS and len(arg) == 2:
                index += 1
        else:
            target = arg
        index += 1
    return target
