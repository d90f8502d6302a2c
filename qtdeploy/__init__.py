"""Deploy the Qt libraries, plugins, imports and translations an application needs."""

__version__ = "0.1.0"