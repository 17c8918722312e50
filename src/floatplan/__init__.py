"""Float Plan: local-first state and synchronization engine."""

try:
    from importlib.metadata import version as _pkg_version
    __version__ = _pkg_version("floatplan")
except Exception:
    __version__ = "dev"
