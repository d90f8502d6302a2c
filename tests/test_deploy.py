import os
import struct

import pytest

from qtdeploy.common import DeployError, Platform
from qtdeploy.deploy import (
    DeployResult,
    DllDirectoryFilter,
    QmlDirectoryFilter,
    deploy,
    deploy_translations,
    deploy_webkit2,
    find_d3d_compiler,
    find_dependent_qt_libraries,
    find_qt_plugins,
    library_path,
)
from qtdeploy.modules import QtModule
from qtdeploy.options import Options

LDD_CORE = (
    "printf '\\tlibQt5Core.so.5 => /opt/qt/libQt5Core.so.5 (0x0)\\n"
    "\\tlibc.so.6 => /lib/libc.so.6 (0x0)\\n'\n"
)
FILE_DEBUG64 = 'echo "ELF 64-bit LSB executable, not stripped"\n'


def _pe_image(debug):
    data = bytearray(320)
    data[0:2] = b"MZ"
    struct.pack_into("<i", data, 0x3C, 64)
    data[64:68] = b"PE\0\0"
    struct.pack_into("<HHIIIHH", data, 68, 0x14C, 0, 0, 0, 0, 224, 0)
    struct.pack_into("<H", data, 88, 0x10B)
    if debug:
        struct.pack_into("<II", data, 88 + 96 + 8 * 6, 0x1000, 28)
    return bytes(data)


def _script(directory, name, body):
    path = directory / name
    path.write_text("#!/bin/sh\n" + body)
    path.chmod(0o755)
    return path


@pytest.fixture
def bin_dir(tmp_path, monkeypatch):
    directory = tmp_path / "fakebin"
    directory.mkdir()
    monkeypatch.setenv("PATH", str(directory) + os.pathsep + os.environ.get("PATH", ""))
    return directory


@pytest.fixture
def unix_setup(tmp_path, bin_dir):
    _script(bin_dir, "ldd", LDD_CORE)
    _script(bin_dir, "file", FILE_DEBUG64)
    libs = tmp_path / "libs"
    libs.mkdir()
    (libs / "libQt5Core.so").write_text("core")
    app = tmp_path / "app"
    app.mkdir()
    (app / "app").write_text("binary")
    options = Options(
        platform=Platform.UNIX,
        binary=str(app / "app"),
        directory=str(app),
        translations=False,
    )
    variables = {"QT_INSTALL_BINS": str(tmp_path / "bins"), "QT_INSTALL_LIBS": str(libs)}
    return options, variables, libs, app


def test_library_path_windows_debug_and_release():
    assert library_path("/qt/bin", "Qt5Core", Platform.WINDOWS, True) == "/qt/bin/Qt5Cored.dll"
    assert library_path("/qt/bin", "Qt5Core", Platform.WINRT, False) == "/qt/bin/Qt5Core.dll"


def test_library_path_unix_and_unknown():
    assert library_path("/qt/lib", "Qt5Gui", Platform.UNIX, True) == "/qt/lib/libQt5Gui.so"
    assert library_path("/qt/lib", "Qt5Gui", Platform.UNKNOWN, False) == "/qt/lib/"


def test_dll_directory_filter_selects_by_debug_flag(tmp_path, capsys):
    (tmp_path / "food.dll").write_bytes(_pe_image(debug=True))
    (tmp_path / "bard.dll").write_bytes(_pe_image(debug=False))
    (tmp_path / "baz.dll").write_bytes(_pe_image(debug=False))
    (tmp_path / "broken.dll").write_bytes(b"garbage")
    assert DllDirectoryFilter(True)(tmp_path) == ["food.dll"]
    assert DllDirectoryFilter(False)(tmp_path) == ["bard.dll", "baz.dll"]
    assert "Warning: Unable to read" in capsys.readouterr().err


def test_dll_directory_filter_prefix(tmp_path):
    (tmp_path / "qwindows.dll").write_bytes(_pe_image(debug=False))
    (tmp_path / "qminimal.dll").write_bytes(_pe_image(debug=False))
    assert DllDirectoryFilter(False, "qwindows")(tmp_path) == ["qwindows.dll"]


def test_qml_directory_filter_lists_dlls_then_qml_files(tmp_path):
    (tmp_path / "a.dll").write_bytes(_pe_image(debug=False))
    for name in ("qmldir", "x.js", "y.qml", "i.png"):
        (tmp_path / name).write_text("")
    assert QmlDirectoryFilter(False)(tmp_path) == ["a.dll", "i.png", "qmldir", "x.js"]


def test_find_qt_plugins_windows(tmp_path):
    plugins = tmp_path / "plugins"
    for sub, name in [
        ("platforms", "qwindows.dll"),
        ("platforms", "qminimal.dll"),
        ("imageformats", "qjpeg.dll"),
        ("sqldrivers", "qsqlite.dll"),
        ("designer", "x.dll"),
    ]:
        (plugins / sub).mkdir(parents=True, exist_ok=True)
        (plugins / sub / name).write_bytes(_pe_image(debug=False))
    found, platform_plugin = find_qt_plugins(QtModule.GUI, str(plugins), False, Platform.WINDOWS)
    assert found == [
        str(plugins / "imageformats" / "qjpeg.dll"),
        str(plugins / "platforms" / "qwindows.dll"),
    ]
    assert platform_plugin == str(plugins / "platforms" / "qwindows.dll")


def test_find_qt_plugins_unix(tmp_path):
    plugins = tmp_path / "plugins"
    (plugins / "platforms").mkdir(parents=True)
    (plugins / "platforms" / "libqxcb.so").write_text("")
    (plugins / "platforms" / "libqminimal.so").write_text("")
    (plugins / "sqldrivers").mkdir()
    (plugins / "sqldrivers" / "libqsqlite.so").write_text("")
    found, platform_plugin = find_qt_plugins(QtModule.GUI, str(plugins), False, Platform.UNIX)
    assert found == [str(plugins / "platforms" / "libqxcb.so")]
    assert platform_plugin == found[0]


def test_find_qt_plugins_without_directory():
    assert find_qt_plugins(QtModule.GUI, "", False, Platform.WINDOWS) == ([], None)


def test_find_d3d_compiler_prefers_newest(tmp_path, monkeypatch):
    for version in (43, 46):
        _script(tmp_path, f"D3Dcompiler_{version}.dll", "")
    monkeypatch.setenv("PATH", str(tmp_path))
    assert find_d3d_compiler() == str(tmp_path / "D3Dcompiler_46.dll")


def test_find_d3d_compiler_missing(tmp_path, monkeypatch):
    monkeypatch.setenv("PATH", str(tmp_path))
    assert find_d3d_compiler() is None


def test_find_dependent_qt_libraries_filters_and_recurses(tmp_path, bin_dir):
    _script(
        bin_dir,
        "ldd",
        "printf '\\tlibQt5Core.so.5 => /x/libQt5Core.so.5\\n"
        "\\tlibstdc++.so.6 => /x/libstdc++.so.6\\n\\tlibc.so.6 => /lib/libc.so.6\\n'\n",
    )
    _script(bin_dir, "file", FILE_DEBUG64)
    found = find_dependent_qt_libraries("/qt/lib", str(tmp_path / "app"), Platform.UNIX)
    assert found.libraries == ["/qt/lib/libQt5Core.so.5", "/qt/lib/libstdc++.so.6"]
    assert found.direct_count == 2
    assert found.info.word_size == 64
    assert found.info.is_debug is True


def test_find_dependent_qt_libraries_error(tmp_path, bin_dir):
    _script(bin_dir, "ldd", "exit 1\n")
    _script(bin_dir, "file", FILE_DEBUG64)
    with pytest.raises(DeployError, match="Unable to find dependent libraries of"):
        find_dependent_qt_libraries("/qt/lib", str(tmp_path / "app"), Platform.UNIX)


def test_deploy_copies_qt_libraries(unix_setup):
    options, variables, libs, app = unix_setup
    result = deploy(options, variables)
    assert result == DeployResult(QtModule.CORE, QtModule.CORE, QtModule.CORE)
    assert (app / "libQt5Core.so").read_text() == "core"


def test_deploy_into_library_directory(unix_setup, tmp_path):
    options, variables, libs, app = unix_setup
    options.library_directory = str(tmp_path / "out" / "lib")
    deploy(options, variables)
    assert (tmp_path / "out" / "lib" / "libQt5Core.so").read_text() == "core"
    assert not (app / "libQt5Core.so").exists()


def test_deploy_disabled_module_is_not_copied(unix_setup):
    options, variables, libs, app = unix_setup
    options.disabled_libraries = QtModule.CORE
    result = deploy(options, variables)
    assert result.used_qt_libraries == QtModule.CORE
    assert not result.deployed_qt_libraries & QtModule.CORE
    assert not (app / "libQt5Core.so").exists()


def test_deploy_plugins(unix_setup, tmp_path):
    options, variables, libs, app = unix_setup
    (libs / "libQt5Gui.so").write_text("gui")
    plugins = tmp_path / "plugins"
    (plugins / "platforms").mkdir(parents=True)
    (plugins / "platforms" / "libqxcb.so").write_text("xcb")
    (plugins / "platforms" / "libqminimal.so").write_text("minimal")
    (plugins / "imageformats").mkdir()
    (plugins / "imageformats" / "libqgif.so").write_text("gif")
    variables["QT_INSTALL_PLUGINS"] = str(plugins)
    options.additional_libraries = QtModule.GUI
    result = deploy(options, variables)
    assert result.deployed_qt_libraries == QtModule.CORE | QtModule.GUI
    assert (app / "platforms" / "libqxcb.so").read_text() == "xcb"
    assert (app / "imageformats" / "libqgif.so").read_text() == "gif"
    assert not (app / "platforms" / "libqminimal.so").exists()


def test_deploy_quick_imports(unix_setup, tmp_path, bin_dir):
    options, variables, libs, app = unix_setup
    _script(bin_dir, "ldd", "printf '\\tlibQt5Quick.so.5 => /x/libQt5Quick.so.5\\n'\n")
    (libs / "libQt5Quick.so").write_text("quick")
    qml = tmp_path / "qml"
    for name in ("QtQml", "QtQuick", "QtQuick.2"):
        (qml / name).mkdir(parents=True)
        (qml / name / "qmldir").write_text(name)
        (qml / name / "ignored.txt").write_text("")
    variables["QT_INSTALL_QML"] = str(qml)
    result = deploy(options, variables)
    assert result.directly_used_qt_libraries == QtModule.QUICK
    assert (app / "QtQuick.2" / "qmldir").read_text() == "QtQuick.2"
    assert not (app / "QtQml" / "ignored.txt").exists()


def test_deploy_rejects_non_qt_executable(unix_setup, bin_dir):
    options, variables, libs, app = unix_setup
    _script(bin_dir, "ldd", "printf '\\tlibc.so.6 => /lib/libc.so.6\\n'\n")
    with pytest.raises(DeployError, match="does not seem to be a Qt executable"):
        deploy(options, variables)


def test_deploy_webkit2_copies_web_process(unix_setup, tmp_path):
    options, variables, libs, app = unix_setup
    libexec = tmp_path / "libexec"
    libexec.mkdir()
    (libexec / "QtWebProcess").write_text("web")
    variables["QT_INSTALL_LIBEXECS"] = str(libexec)
    options.translations = True
    result = deploy_webkit2(variables, options)
    assert (app / "QtWebProcess").read_text() == "web"
    assert result.deployed_qt_libraries == QtModule.CORE


def test_deploy_translations_without_catalogues(tmp_path, capsys):
    source = tmp_path / "translations"
    source.mkdir()
    deploy_translations(str(source), QtModule.CORE, str(tmp_path))
    assert "Could not find any translations" in capsys.readouterr().err


def test_deploy_translations_runs_lconvert(tmp_path, bin_dir, monkeypatch):
    log = tmp_path / "lconvert.log"
    monkeypatch.setenv("LCONVERT_LOG", str(log))
    _script(bin_dir, "lconvert", "printf '%s\\n' \"$@\" > \"$LCONVERT_LOG\"\n")
    source = tmp_path / "translations"
    source.mkdir()
    for name in ("qtbase_de.qm", "qtmultimedia_de.qm", "qtscript_de.qm"):
        (source / name).write_text("")
    target = tmp_path / "app"
    target.mkdir()
    deploy_translations(str(source), QtModule.CORE | QtModule.MULTIMEDIA, str(target))
    assert log.read_text().splitlines() == [
        "-o",
        str(target / "qt_de.qm"),
        "qtbase_de.qm",
        "qtmultimedia_de.qm",
    ]


def test_deploy_translations_lconvert_failure(tmp_path, bin_dir):
    _script(bin_dir, "lconvert", "exit 3\n")
    source = tmp_path / "translations"
    source.mkdir()
    (source / "qtbase_fr.qm").write_text("")
    with pytest.raises(DeployError, match="lconvert returns 3"):
        deploy_translations(str(source), QtModule.CORE, str(tmp_path))