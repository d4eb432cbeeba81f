"""
Faultgate CLI.

Usage:
    faultgate levels [--config FILE] [--env-file FILE]
    faultgate run SCRIPT [ARGS]... [--log-file FILE] [--thrown MASK] ...
"""

__version__ = "0.3.0"
__cli_name__ = "faultgate"


def main():
    """Wrapper to avoid eager import of __main__ which causes warnings with -m."""
    from .__main__ import main as _main
    return _main()
