"""The Qt modules known to the deployment tool and lookups on them."""

from __future__ import annotations

import enum
from dataclasses import dataclass

from .common import Platform

__all__ = [
    "QtModule",
    "ModuleEntry",
    "QT_MODULE_ENTRIES",
    "ALL_MODULES",
    "WEB_PROCESS",
    "format_qt_modules",
    "qt_module_by_option",
    "qt_module",
    "translation_name_filters",
    "qt_module_for_plugin",
    "platform_from_mkspec",
    "web_process_binary",
]


class QtModule(enum.IntFlag):
    """Qt modules as combinable flags."""

    CORE = 0x1
    GUI = 0x2
    SQL = 0x4
    NETWORK = 0x8
    MULTIMEDIA = 0x10
    MULTIMEDIA_WIDGETS = 0x20
    OPENGL = 0x40
    PRINT_SUPPORT = 0x80
    DECLARATIVE = 0x100
    QML = 0x200
    QUICK = 0x400
    QUICK_PARTICLES = 0x800
    SCRIPT = 0x1000
    SVG = 0x2000
    XML = 0x4000
    XML_PATTERNS = 0x8000
    HELP = 0x10000
    SENSORS = 0x20000
    V8 = 0x40000
    WIDGETS = 0x80000
    WEBKIT = 0x100000
    WEBKIT_WIDGETS = 0x200000
    SERIAL_PORT = 0x400000
    POSITIONING = 0x800000


ALL_MODULES = 0xFFFFFFFF

WEB_PROCESS = "QtWebProcess"


@dataclass(frozen=True)
class ModuleEntry:
    """Command line option, library name and translation catalogue of a module."""

    module: QtModule
    option: str
    library_name: str
    translation: str | None = None


QT_MODULE_ENTRIES: tuple[ModuleEntry, ...] = (
    ModuleEntry(QtModule.CORE, "core", "Qt5Core", "qtbase"),
    ModuleEntry(QtModule.GUI, "gui", "Qt5Gui", "qtbase"),
    ModuleEntry(QtModule.SQL, "sql", "Qt5Sql", "qtbase"),
    ModuleEntry(QtModule.NETWORK, "network", "Qt5Network", "qtbase"),
    ModuleEntry(QtModule.MULTIMEDIA, "multimedia", "Qt5Multimedia", "qtmultimedia"),
    ModuleEntry(
        QtModule.MULTIMEDIA_WIDGETS, "multimediawidgets", "Qt5MultimediaWidgets",
        "qtmultimedia",
    ),
    ModuleEntry(QtModule.OPENGL, "opengl", "Qt5OpenGL"),
    ModuleEntry(QtModule.PRINT_SUPPORT, "printsupport", "Qt5PrintSupport"),
    ModuleEntry(QtModule.DECLARATIVE, "declarative", "Qt5Declarative", "qtquick1"),
    ModuleEntry(QtModule.QML, "qml", "Qt5Qml", "qtdeclarative"),
    ModuleEntry(QtModule.QUICK, "quick", "Qt5Quick", "qtdeclarative"),
    ModuleEntry(QtModule.QUICK_PARTICLES, "quickparticles", "Qt5QuickParticles"),
    ModuleEntry(QtModule.SCRIPT, "script", "Qt5Script", "qtscript"),
    ModuleEntry(QtModule.XML, "xml", "Qt5Xml"),
    ModuleEntry(QtModule.XML_PATTERNS, "xmlpatterns", "Qt5XmlPatterns", "qtxmlpatterns"),
    ModuleEntry(QtModule.HELP, "help", "Qt5Help", "qt_help"),
    ModuleEntry(QtModule.SENSORS, "sensors", "Qt5Sensors"),
    ModuleEntry(QtModule.SVG, "svg", "Qt5Svg"),
    ModuleEntry(QtModule.V8, "v8", "Qt5V8"),
    ModuleEntry(QtModule.WEBKIT, "webkit", "Qt5WebKit"),
    ModuleEntry(QtModule.WEBKIT_WIDGETS, "webkitwidgets", "Qt5WebKitWidgets"),
    ModuleEntry(QtModule.WIDGETS, "widgets", "Qt5Widgets", "qtbase"),
    ModuleEntry(QtModule.SERIAL_PORT, "serialport", "Qt5SerialPort"),
    ModuleEntry(QtModule.POSITIONING, "positioning", "Qt5Positioning"),
)

_NO_MODULE = QtModule(0)


def format_qt_modules(mask: int, option: bool = False) -> str:
    """Return the names of the modules in ``mask``, separated by spaces.

    Option names are used when ``option`` is true, library names otherwise.
    """
    return " ".join(
        entry.option if option else entry.library_name
        for entry in QT_MODULE_ENTRIES
        if mask & entry.module
    )


def qt_module_by_option(name: str) -> QtModule:
    """Return the module whose option name is ``name``, or an empty flag."""
    return next(
        (entry.module for entry in QT_MODULE_ENTRIES if entry.option == name),
        _NO_MODULE,
    )


def qt_module(library: str) -> QtModule:
    """Return the first module whose library name occurs in ``library``
    (ignoring case), or an empty flag."""
    lowered = library.lower()
    return next(
        (
            entry.module
            for entry in QT_MODULE_ENTRIES
            if entry.library_name.lower() in lowered
        ),
        _NO_MODULE,
    )


def translation_name_filters(modules: int, prefix: str) -> list[str]:
    """Return the translation file names for ``modules`` in language ``prefix``,
    each name once."""
    result: list[str] = []
    for entry in QT_MODULE_ENTRIES:
        if entry.module & modules and entry.translation:
            name = f"{entry.translation}_{prefix}.qm"
            if name not in result:
                result.append(name)
    return result


_PLUGIN_MODULES: dict[str, QtModule] = {
    "accessible": QtModule.GUI,
    "iconengines": QtModule.GUI,
    "imageformats": QtModule.GUI,
    "platforms": QtModule.GUI,
    "bearer": QtModule.NETWORK,
    "sqldrivers": QtModule.SQL,
    "mediaservice": QtModule.MULTIMEDIA,
    "playlistformats": QtModule.MULTIMEDIA,
    "printsupport": QtModule.PRINT_SUPPORT,
    "qmltooling": QtModule.DECLARATIVE | QtModule.QUICK,
}


def qt_module_for_plugin(sub_dir_name: str) -> QtModule:
    """Return the modules that need the plugins of a plugin subdirectory."""
    return _PLUGIN_MODULES.get(sub_dir_name, _NO_MODULE)


def platform_from_mkspec(xspec: str) -> Platform:
    """Derive the target platform from a qmake ``QMAKE_XSPEC`` value."""
    if xspec == "linux-g++":
        return Platform.UNIX
    if xspec.startswith("win32-"):
        return Platform.WINDOWS
    if xspec.startswith(("winrt", "winphone")):
        return Platform.WINRT
    return Platform.UNKNOWN


def web_process_binary(platform: Platform) -> str:
    """Return the file name of the web process executable on ``platform``."""
    if platform in (Platform.WINDOWS, Platform.WINRT):
        return WEB_PROCESS + ".exe"
    return WEB_PROCESS