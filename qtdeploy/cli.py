"""Command line entry point of the deployment tool."""

from __future__ import annotations

import sys

from .common import DeployError, Platform
from .deploy import deploy, deploy_webkit2
from .modules import WEB_PROCESS, QtModule, platform_from_mkspec
from .common import verbose_level
from .options import UsageError, parse_arguments, usage
from .process import query_qmake_all

__all__ = ["main"]


def _print_usage(qmake_variables: dict[str, str]) -> None:
    version = qmake_variables.get("QT_VERSION", "unknown")
    print(f"\nqtdeploy based on Qt {version}\n\n{usage()}")


def main(argv: list[str] | None = None) -> int:
    """Run the deployment tool; return the process exit status."""
    if argv is None:
        argv = sys.argv[1:]

    error_message = ""
    try:
        qmake_variables = query_qmake_all()
    except DeployError as exc:
        qmake_variables = {}
        error_message = str(exc)
    xspec = qmake_variables.get("QMAKE_XSPEC", "")
    platform = platform_from_mkspec(xspec)

    try:
        options = parse_arguments(argv, platform)
    except UsageError as exc:
        if exc.message:
            print(exc.message, file=sys.stderr)
        _print_usage(qmake_variables)
        return 0 if exc.help_requested else 1
    if options.help:
        _print_usage(qmake_variables)
        return 0

    if not qmake_variables or not xspec or "QT_INSTALL_BINS" not in qmake_variables:
        print(f"Unable to query qmake: {error_message}", file=sys.stderr)
        return 1

    if platform == Platform.UNKNOWN:
        print(f"Unsupported platform {xspec}", file=sys.stderr)
        return 1

    if options.webkit2:
        options.additional_libraries |= QtModule.WEBKIT

    try:
        result = deploy(options, qmake_variables)
    except DeployError as exc:
        print(exc, file=sys.stderr)
        return 1

    wants_web_process = options.webkit2 == 1 or (
        bool(result.deployed_qt_libraries & QtModule.WEBKIT)
        and bool(result.directly_used_qt_libraries & QtModule.QUICK)
    )
    if options.webkit2 != -1 and wants_web_process:
        if verbose_level():
            print(f"Deploying: {WEB_PROCESS}...", file=sys.stderr)
        try:
            deploy_webkit2(qmake_variables, options)
        except DeployError as exc:
            print(exc, file=sys.stderr)
            return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())