"""Finding and copying the Qt libraries, plugins, QML imports and
translations an application needs."""

from __future__ import annotations

import dataclasses
import os
import re
import sys
from dataclasses import dataclass
from typing import NamedTuple

from .common import DeployError, Platform, verbose_level
from .executable import ExecutableInfo, find_dependent_libraries, read_executable, read_pe_executable
from .fileutils import NameFilter, create_directory, find_in_path, normalize_file_name, update_file
from .modules import (
    QT_MODULE_ENTRIES,
    QtModule,
    format_qt_modules,
    qt_module,
    qt_module_for_plugin,
    translation_name_filters,
    web_process_binary,
)
from .options import Options
from .process import run_process

__all__ = [
    "DeployResult",
    "DllDirectoryFilter",
    "QmlDirectoryFilter",
    "find_d3d_compiler",
    "find_dependent_qt_libraries",
    "find_qt_plugins",
    "library_path",
    "deploy_translations",
    "deploy",
    "deploy_webkit2",
]

_QT_LIBRARY_PATTERN = re.compile("Qt5|libgcc|libstdc|libwinpthread", re.IGNORECASE)
_LCONVERT = "lconvert"
_NO_MODULE = QtModule(0)

_PLATFORM_PLUGINS = {
    Platform.WINDOWS: "qwindows",
    Platform.WINRT: "qwinrt",
    Platform.UNIX: "libqxcb",
}


def _native(path: str) -> str:
    return str(path).replace("/", os.sep)


def _file_name(path: str) -> str:
    return re.split(r"[\\/]", path)[-1]


def _is_windows(platform: Platform) -> bool:
    return platform in (Platform.WINDOWS, Platform.WINRT)


def _subdirectories(directory: str) -> list[str]:
    try:
        names = os.listdir(directory)
    except OSError:
        return []
    return sorted(
        (
            name
            for name in names
            if not name.startswith(".") and os.path.isdir(os.path.join(directory, name))
        ),
        key=lambda name: (name.lower(), name),
    )


@dataclass
class DeployResult:
    """Modules an executable uses directly, uses at all, and that were deployed."""

    directly_used_qt_libraries: QtModule = _NO_MODULE
    used_qt_libraries: QtModule = _NO_MODULE
    deployed_qt_libraries: QtModule = _NO_MODULE


class DllDirectoryFilter:
    """Lists the DLLs of a directory whose debug flag matches the build type.

    Names are pre-filtered by ``<prefix>d.dll`` or ``<prefix>.dll``; each
    candidate is then checked by reading its PE header.
    """

    def __init__(self, debug: bool, prefix: str = "*") -> None:
        self.debug = debug
        self._name_filter = NameFilter([prefix + ("d.dll" if debug else ".dll")])

    def __call__(self, directory: str | os.PathLike) -> list[str]:
        directory = str(directory)
        result = []
        for dll in self._name_filter(directory):
            path = os.path.abspath(os.path.join(directory, dll))
            try:
                info = read_pe_executable(path)
            except DeployError as exc:
                print(f"Warning: Unable to read {_native(path)}: {exc}", file=sys.stderr)
                continue
            if info.is_debug == self.debug:
                result.append(dll)
        return result


class QmlDirectoryFilter:
    """Lists the files of a QML import directory: matching DLLs followed by
    JavaScript, ``qmldir``, type description and image files."""

    def __init__(self, debug: bool) -> None:
        self._qml_filter = NameFilter(["*.js", "qmldir", "*.qmltypes", "*.png"])
        self._dll_filter = DllDirectoryFilter(debug)

    def __call__(self, directory: str | os.PathLike) -> list[str]:
        return self._dll_filter(directory) + self._qml_filter(directory)


def find_d3d_compiler() -> str | None:
    """Return the newest D3D compiler DLL found in the search path."""
    for version in range(46, 39, -1):
        path = find_in_path(f"D3Dcompiler_{version}.dll")
        if path:
            return path
    return None


class _QtDependencies(NamedTuple):
    libraries: list[str]
    info: ExecutableInfo
    direct_count: int


def _collect_qt_libraries(
    qt_bin_dir: str, binary: str, platform: Platform, result: list[str]
) -> tuple[ExecutableInfo, int]:
    try:
        info = read_executable(binary, platform)
    except DeployError as exc:
        raise DeployError(
            f"Unable to find dependent libraries of {_native(binary)} :{exc}"
        ) from exc
    start = len(result)
    for library in info.dependent_libraries:
        if _QT_LIBRARY_PATTERN.search(library):
            path = normalize_file_name(f"{qt_bin_dir}/{_file_name(library)}")
            if path not in result:
                result.append(path)
    added = result[start:]
    for library in added:
        _collect_qt_libraries(qt_bin_dir, library, platform, result)
    return info, len(added)


def find_dependent_qt_libraries(
    qt_bin_dir: str, binary: str, platform: Platform
) -> _QtDependencies:
    """Recursively find the Qt and compiler runtime libraries of ``binary``.

    Returns the library paths (located in ``qt_bin_dir``), the executable's
    own information, and how many of the libraries it depends on directly.
    """
    libraries: list[str] = []
    info, direct_count = _collect_qt_libraries(qt_bin_dir, str(binary), platform, libraries)
    return _QtDependencies(libraries, info, direct_count)


def find_qt_plugins(
    used_modules: int, plugins_dir: str, debug: bool, platform: Platform
) -> tuple[list[str], str | None]:
    """Return the plugin paths needed by ``used_modules`` and the platform
    plugin among them, if any."""
    if not plugins_dir:
        return [], None
    result: list[str] = []
    platform_plugin = None
    for sub_dir_name in _subdirectories(plugins_dir):
        if not qt_module_for_plugin(sub_dir_name) & used_modules:
            continue
        sub_dir = f"{plugins_dir}/{sub_dir_name}"
        is_platform_plugin = sub_dir_name == "platforms"
        pattern = _PLATFORM_PLUGINS.get(platform, "") if is_platform_plugin else "*"
        if platform == Platform.UNIX:
            entry_filter = NameFilter([pattern + ".so"])
        else:
            entry_filter = DllDirectoryFilter(debug, pattern)
        for plugin in entry_filter(sub_dir):
            path = os.path.abspath(os.path.join(sub_dir, plugin))
            if is_platform_plugin:
                platform_plugin = path
            result.append(path)
    return result, platform_plugin


def library_path(library_location: str, name: str, platform: Platform, debug: bool) -> str:
    """Return the path of the library ``name`` in ``library_location``."""
    result = library_location + "/"
    if _is_windows(platform):
        return result + name + ("d" if debug else "") + ".dll"
    if platform == Platform.UNIX:
        return result + "lib" + name + ".so"
    return result


def deploy_translations(source_path: str, used_modules: int, target: str) -> None:
    """Combine the Qt translations of ``used_modules`` into one
    ``qt_<language>.qm`` file per language in ``target`` using lconvert."""
    source_dir = source_path or "."
    prefixes = [name[7:-3] for name in NameFilter(["qtbase_*.qm"])(source_dir)]
    if not prefixes:
        print(
            f"Warning: Could not find any translations in {_native(source_path)} "
            "(developer build?).",
            file=sys.stderr,
        )
        return
    absolute_target = os.path.abspath(target)
    for prefix in prefixes:
        target_file = f"qt_{prefix}.qm"
        arguments = ["-o", _native(f"{absolute_target}/{target_file}")]
        arguments += NameFilter(translation_name_filters(used_modules, prefix))(source_dir)
        if verbose_level():
            print(f"Creating {target_file}...", file=sys.stderr)
        result = run_process(_LCONVERT, arguments, source_dir)
        if result.exit_code:
            raise DeployError(f"{_LCONVERT} returns {result.exit_code}")


def _icu_libraries(dependent: list[str], platform: Platform) -> list[str]:
    core = [library for library in dependent if "qt5core" in library.lower()]
    if not core:
        return []
    icu = [
        library
        for library in find_dependent_libraries(core[0], platform)
        if "icu" in library.lower()
    ]
    if not icu:
        return []
    match = re.search(r"\d+", icu[0])
    if match:
        version = match.group()
        if verbose_level() > 1:
            print(f"Adding ICU version {version}", file=sys.stderr)
        icu.append(f"icudt{version}.dll")
    paths = []
    for library in icu:
        path = find_in_path(library)
        if not path:
            raise DeployError(f"Unable to locate ICU library {library}")
        paths.append(path)
    return paths


def _angle_libraries(platform_plugin: str, qt_bin_dir: str, platform: Platform) -> list[str]:
    egl = [
        library
        for library in find_dependent_libraries(platform_plugin, platform)
        if "libegl" in library.lower()
    ]
    if not egl:
        return []
    egl_path = f"{qt_bin_dir}/{_file_name(egl[0])}"
    result = [egl_path]
    gles = [
        library
        for library in find_dependent_libraries(egl_path, platform)
        if "libglesv2" in library.lower()
    ]
    if gles:
        result.append(f"{qt_bin_dir}/{_file_name(gles[0])}")
    d3d_compiler = find_d3d_compiler()
    if d3d_compiler is None:
        print("Warning: Cannot find any version of the d3dcompiler DLL.", file=sys.stderr)
    else:
        result.append(d3d_compiler)
    return result


def _deploy_plugins(plugins: list[str], directory: str) -> None:
    for plugin in plugins:
        dir_name = os.path.basename(os.path.dirname(plugin))
        target_dir = os.path.join(directory, dir_name)
        if not os.path.exists(target_dir):
            print(f"Creating directory {dir_name}.")
            try:
                os.mkdir(target_dir)
            except OSError as exc:
                print(f"Cannot create {dir_name}.", file=sys.stderr)
                raise DeployError(f"Cannot create {dir_name}.") from exc
        update_file(plugin, target_dir)


def _deploy_quick_imports(
    options: Options, qmake_variables: dict[str, str], result: DeployResult, debug: bool
) -> None:
    deployed = result.deployed_qt_libraries
    uses_quick1 = bool(deployed & QtModule.DECLARATIVE)
    uses_quick2 = bool(
        (result.directly_used_qt_libraries & QtModule.QUICK)
        or (options.additional_libraries & QtModule.QUICK)
    )
    if not (uses_quick1 or uses_quick2):
        return
    entry_filter = QmlDirectoryFilter(debug)
    if uses_quick2:
        import_path = qmake_variables.get("QT_INSTALL_QML", "")
        imports = ["QtQml", "QtQuick", "QtQuick.2"]
        if deployed & QtModule.MULTIMEDIA:
            imports.append("QtMultimedia")
        if deployed & QtModule.SENSORS:
            imports.append("QtSensors")
        if deployed & QtModule.WEBKIT:
            imports.append("QtWebKit")
        for name in imports:
            update_file(f"{import_path}/{name}", options.directory, entry_filter)
    if uses_quick1:
        import_path = qmake_variables.get("QT_INSTALL_IMPORTS", "")
        imports = ["Qt"]
        if deployed & QtModule.WEBKIT:
            imports.append("QtWebKit")
        for name in imports:
            update_file(f"{import_path}/{name}", options.directory, entry_filter)


def deploy(options: Options, qmake_variables: dict[str, str]) -> DeployResult:
    """Deploy everything ``options.binary`` needs into ``options.directory``.

    Raises DeployError when a step fails.
    """
    platform = options.platform
    qt_bin_dir = qmake_variables.get("QT_INSTALL_BINS", "")
    if platform == Platform.UNIX:
        library_location = qmake_variables.get("QT_INSTALL_LIBS", "")
    else:
        library_location = qt_bin_dir
    if verbose_level() > 1:
        print(f"Qt binaries in {_native(qt_bin_dir)}", file=sys.stderr)

    dependencies = find_dependent_qt_libraries(library_location, options.binary, platform)
    info = dependencies.info
    dependent = list(dependencies.libraries)
    build = "debug" if info.is_debug else "release"
    print(f"{_native(options.binary)}: {info.word_size}bit, {build} executable.")
    if not dependent:
        raise DeployError(f"{_native(options.binary)} does not seem to be a Qt executable.")

    if _is_windows(platform):
        dependent.extend(_icu_libraries(dependent, platform))

    result = DeployResult()
    deployed_libraries: list[str] = []
    for index, library in enumerate(dependent):
        module = qt_module(library)
        if module:
            result.used_qt_libraries |= module
            if index < dependencies.direct_count:
                result.directly_used_qt_libraries |= module
        else:
            deployed_libraries.append(library)
    result.deployed_qt_libraries = QtModule(
        int(result.used_qt_libraries | options.additional_libraries)
        & ~int(options.disabled_libraries)
    )
    deployed_libraries.extend(
        library_path(library_location, entry.library_name, platform, info.is_debug)
        for entry in QT_MODULE_ENTRIES
        if result.deployed_qt_libraries & entry.module
    )

    if verbose_level() >= 1:
        print(
            f"Direct dependencies: {format_qt_modules(result.directly_used_qt_libraries)}\n"
            f"All dependencies   : {format_qt_modules(result.used_qt_libraries)}\n"
            f"To be deployed     : {format_qt_modules(result.deployed_qt_libraries)}",
            file=sys.stderr,
        )

    plugins, platform_plugin = find_qt_plugins(
        result.deployed_qt_libraries,
        qmake_variables.get("QT_INSTALL_PLUGINS", ""),
        info.is_debug,
        platform,
    )
    if verbose_level() > 1:
        print("Plugins: " + ",".join(plugins), file=sys.stderr)

    if platform_plugin and _is_windows(platform):
        deployed_libraries.extend(_angle_libraries(platform_plugin, qt_bin_dir, platform))

    if options.libraries:
        target = options.directory
        if options.library_directory:
            create_directory(options.library_directory)
            target = options.library_directory
        for library in deployed_libraries:
            update_file(library, target)

    if options.plugins:
        _deploy_plugins(plugins, options.directory)

    if options.quick_imports:
        _deploy_quick_imports(options, qmake_variables, result, info.is_debug)

    if options.translations:
        deploy_translations(
            qmake_variables.get("QT_INSTALL_TRANSLATIONS", ""),
            result.deployed_qt_libraries,
            options.directory,
        )
    return result


def deploy_webkit2(qmake_variables: dict[str, str], options: Options) -> DeployResult:
    """Copy the web process into the application directory and deploy its
    dependencies, without QML imports and translations."""
    web_process = web_process_binary(options.platform)
    source = qmake_variables.get("QT_INSTALL_LIBEXECS", "") + "/" + web_process
    update_file(source, options.directory)
    web_options = dataclasses.replace(
        options,
        binary=f"{options.directory}/{web_process}",
        quick_imports=False,
        translations=False,
    )
    return deploy(web_options, qmake_variables)