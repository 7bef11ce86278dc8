"""
Version utility functions.
"""

from wayfield import __version__


def get_version() -> str:
    """
    Get the current version of Wayfield.

    Returns:
        str: The version string.
    """
    return __version__


def format_version_info() -> dict[str, str]:
    """
    Get formatted version information.

    Returns:
        dict[str, str]: Dictionary containing version information.
    """
    return {
        "version": get_version(),
        "project": "Wayfield",
        "description": "Road network and chunked terrain pipeline for world servers",
    }
