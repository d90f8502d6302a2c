# qtdeploy

`qtdeploy` copies the files a Qt 5 application needs at run time into the
application's directory. These are the Qt libraries, the plugins, the Qt Quick
imports and the translations. It runs `qmake -query` to find where Qt is
installed. It then reads the executable to find the Qt libraries it depends on.
A file is copied only when the target is missing or older than the source.

## Installation

```
pip install .
```

To run the test suite, install the test extra:

```
pip install ".[test]"
pytest
```

## Usage

```
qtdeploy <file> [options]
```

`<file>` is either an executable or the build directory that holds it. If it is
a directory, the first executable in it is used, with names in sorted order.
On Windows and WinRT only `*.exe` files count. The web process
(`QtWebProcess`) is never chosen.

| Option | Effect |
| --- | --- |
| `-libdir <path>` | Copy libraries to `<path>` instead of the application directory (created if needed) |
| `-no-plugins` | Skip plugin deployment |
| `-no-libraries` | Skip library deployment |
| `-no-quick-imports` | Skip deployment of Qt Quick imports |
| `-no-translations` | Skip deployment of the translations |
| `-webkit2` | Deploy WebKit2 (the web process) |
| `-no-webkit2` | Skip deployment of WebKit2 |
| `-h` | Display help |
| `-verbose=<0-3>` | 0 = no output, 1 = progress (default), 2 = normal, 3 = debug |

To add a Qt library, pass its name, for example `-xml`. To leave one out, pass
its name with `-no-` in front, for example `-no-xml`. Run `qtdeploy -h` to see
every library name. The command exits with 0 on success or after `-h`, and
with 1 on any error.

`qmake` must be on `PATH`. The target platform comes from its `QMAKE_XSPEC`
value:

- `linux-g++` is Unix.
- `win32-*` is Windows.
- `winrt*` and `winphone*` are WinRT.

Any other value is reported as an unsupported platform.

What gets deployed:

- **Libraries.** This covers the Qt libraries and the compiler runtime
  libraries (`libgcc`, `libstdc++`, `libwinpthread`). It also covers libraries
  you add with an option, minus any you disable.
- **ICU libraries on Windows.** When `Qt5Core` needs ICU, the ICU libraries and
  their `icudt` data library are deployed. They are looked up on `PATH`.
- **ANGLE on Windows.** When the platform plugin needs ANGLE, `libEGL`,
  `libGLESv2` and the newest `D3Dcompiler_46`…`_40` DLL found on `PATH` are
  deployed.
- **Plugins.** Each plugin goes into a subdirectory of the same name, for
  example `platforms/` or `imageformats/`.
- **Qt Quick imports.** These are deployed when the application uses Qt Quick
  2 or the declarative module.
- **Translations.** One `qt_<language>.qm` file is written per language, merged
  by running `lconvert`.

On Linux, dependencies are read with `ldd`, and the word size and debug flag
with `file`. Windows PE files are read directly and need no external tool.

WebKit2 is deployed when you pass `-webkit2`. It is also deployed when WebKit is
deployed and the application uses Qt Quick directly, unless you pass
`-no-webkit2`. In that case `QtWebProcess` is copied from Qt's libexec
directory and its dependencies are deployed too.

## Library use

Each deployment step can also be called from Python:

```python
from qtdeploy.deploy import deploy
from qtdeploy.modules import platform_from_mkspec
from qtdeploy.options import parse_arguments
from qtdeploy.process import query_qmake_all

variables = query_qmake_all()
platform = platform_from_mkspec(variables["QMAKE_XSPEC"])
options = parse_arguments(["build/myapp.exe", "-no-translations"], platform)
result = deploy(options, variables)
print(result.deployed_qt_libraries)
```

`parse_arguments` takes the arguments without the program name. It raises
`qtdeploy.options.UsageError` for an invalid command line.

The lower-level helpers live in these modules:

- `qtdeploy.executable`: `read_executable`, `read_pe_executable`,
  `read_elf_executable` and `find_dependent_libraries`.
- `qtdeploy.fileutils`: `update_file`, `NameFilter`, `create_directory` and
  `find_in_path`.
- `qtdeploy.process`: `run_process`, `query_qmake` and `parse_qmake_query`.

Any step that fails raises `qtdeploy.common.DeployError`.

## Limitations

- ELF files are not parsed directly. On Unix, `ldd` and `file` must be
  installed.
- The Qt version shown in the help text is the `QT_VERSION` that qmake reports.
  If qmake cannot be queried, it is shown as "unknown".