"""
Referenda Tester Package

Dry-runs Substrate governance referenda on forked chains.

Core imports are lazily loaded so importing the package stays cheap.
For direct module access, import from submodules:

    from reftester.network import NetworkCoordinator, RunRequest
    from reftester.governance import simulate_referendum
    from reftester.exceptions import ScheduledCallNotFoundError
"""

__version__ = '0.4.0'


# Lazy imports to avoid loading the chain stack at package import
def __getattr__(name):
    """Lazy module loading."""
    if name == 'NetworkCoordinator':
        from .network import NetworkCoordinator
        return NetworkCoordinator
    elif name == 'RunRequest':
        from .network import RunRequest
        return RunRequest
    elif name == 'main':
        from .cli import main
        return main
    raise AttributeError(f"module 'reftester' has no attribute {name!r}")

__all__ = ['NetworkCoordinator', 'RunRequest', 'main', '__version__']
