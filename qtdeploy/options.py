"""Command line options of the deployment tool."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from typing import Iterable, Iterator

from .common import DeployError, Platform, set_verbose_level
from .fileutils import NameFilter
from .modules import ALL_MODULES, WEB_PROCESS, QtModule, format_qt_modules, qt_module_by_option

__all__ = ["Options", "UsageError", "usage", "find_binary", "parse_arguments"]

_INTEGER = re.compile(r"\s*[+-]?[0-9]+\s*")


@dataclass
class Options:
    """What to deploy, and where."""

    plugins: bool = True
    libraries: bool = True
    quick_imports: bool = True
    translations: bool = True
    platform: Platform = Platform.WINDOWS
    additional_libraries: QtModule = QtModule(0)
    disabled_libraries: QtModule = QtModule(0)
    directory: str = ""
    library_directory: str = ""
    binary: str = ""
    help: bool = False
    webkit2: int = 0
    """1 to force deployment of the web process, -1 to skip it, 0 to decide."""


class UsageError(DeployError):
    """Raised when the command line cannot be used.

    The message may be empty; ``help_requested`` tells whether help had been
    asked for before the error was found.
    """

    def __init__(self, message: str = "", help_requested: bool = False) -> None:
        super().__init__(message)
        self.message = message
        self.help_requested = help_requested


_USAGE = """Usage: qtdeploy file [options]

Copies/updates the dependent Qt libraries and plugins required for
a Windows/WinRT application to the build-directory.

<file> is an executable file or build directory.

Options:
         -libdir <path>     : Copy libraries to <path>
         -no-plugins        : Skip plugin deployment
         -no-libraries      : Skip library deployment
         -no-quick-imports  : Skip deployment of Qt Quick imports
         -no-translations   : Skip deployment of the translations
         -webkit2           : Deployment of WebKit2 (web process)
         -no-webkit2        : Skip deployment of WebKit2
         -h                 : Display help
         -verbose=<0-3>     : 0 = no output, 1 = progress (default),
                              2 = normal, 3 = debug

Libraries can be added by passing their name (-xml) or disabled by passing
the name prepended by -no- (-no-xml).
Available libraries: """


def usage() -> str:
    """Return the help text."""
    return _USAGE + format_qt_modules(ALL_MODULES, option=True)


def find_binary(directory: str | os.PathLike, platform: Platform) -> str | None:
    """Return the first executable in ``directory`` that is not the web
    process, or None. On Windows and WinRT only ``*.exe`` files count."""
    directory = os.path.normpath(str(directory))
    patterns = ["*.exe"] if platform in (Platform.WINDOWS, Platform.WINRT) else []
    for name in NameFilter(patterns)(directory):
        path = os.path.join(directory, name)
        if not os.access(path, os.X_OK):
            continue
        if WEB_PROCESS.lower() not in name.lower():
            return path
    return None


_FLAG_OPTIONS = {
    "-no-plugins": ("plugins", False),
    "-no-libraries": ("libraries", False),
    "-no-quick-imports": ("quick_imports", False),
    "-no-translations": ("translations", False),
    "-h": ("help", True),
    "-webkit2": ("webkit2", 1),
    "-no-webkit2": ("webkit2", -1),
}


def _error(options: Options, message: str = "") -> UsageError:
    return UsageError(message, help_requested=options.help)


def _parse_option(option: str, rest: Iterator[str], options: Options) -> None:
    if option == "-libdir":
        value = next(rest, None)
        if value is None:
            raise _error(options)
        options.library_directory = value
        return
    if option in _FLAG_OPTIONS:
        name, value = _FLAG_OPTIONS[option]
        setattr(options, name, value)
        return
    if option.startswith("-verbose"):
        text = option[option.find("=") + 1:]
        if not _INTEGER.fullmatch(text):
            raise _error(options, "Could not parse verbose level.")
        set_verbose_level(int(text))
        return
    if option.startswith("-no-"):
        module = qt_module_by_option(option[4:])
        if module:
            options.disabled_libraries |= module
            return
    module = qt_module_by_option(option[1:])
    if module:
        options.additional_libraries |= module
        return
    raise _error(options, f"Unhandled option '{option}'.")


def _parse_target(argument: str, options: Options) -> None:
    if options.directory:
        raise _error(options)
    path = os.path.normpath(argument)
    if not os.path.exists(path):
        raise _error(options, f"'{argument}' does not exist.")
    absolute = os.path.abspath(path)
    if os.path.isfile(absolute):
        options.binary = absolute
        options.directory = os.path.dirname(absolute)
        return
    binary = find_binary(absolute, options.platform)
    if not binary:
        raise _error(options, f"Unable to find binary in {argument}.")
    options.binary = binary
    options.directory = absolute


def parse_arguments(
    arguments: Iterable[str], platform: Platform = Platform.WINDOWS
) -> Options:
    """Parse command line arguments (without the program name).

    Raises UsageError when an argument is invalid or no binary was given.
    A verbosity option sets the verbose level as it is parsed.
    """
    options = Options(platform=platform)
    rest = iter(arguments)
    for argument in rest:
        if argument.startswith("-"):
            _parse_option(argument, rest, options)
        else:
            _parse_target(argument, options)
    if not options.binary:
        raise _error(options)
    return options