[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "qtdeploy"
version = "0.1.0"
description = "Copy the Qt libraries, plugins, QML imports and translations an application needs next to its executable"
requires-python = ">=3.10"
dependencies = []
keywords = ["qt", "deployment", "qmake", "dll", "plugins", "translations"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Operating System :: Microsoft :: Windows",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Build Tools",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
qtdeploy = "qtdeploy.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["qtdeploy"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
