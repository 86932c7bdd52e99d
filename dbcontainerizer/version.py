"""Version metadata for the database containerizer distribution."""
from __future__ import annotations

from importlib import metadata as importlib_metadata


DISTRIBUTION: str = "database-containerizer"


def load_version() -> str:
    """Look up the installed version of this distribution.

    Returns
    -------
    str
        The version string recorded in the distribution metadata.

    Raises
    ------
    OSError
        If the distribution is not installed, or records an empty version.
    """
    try:
        version = importlib_metadata.version(DISTRIBUTION).strip()
    except importlib_metadata.PackageNotFoundError as err:
        raise OSError(
            f"missing distribution metadata for '{DISTRIBUTION}'.  Version lookup "
            "requires an installed package context."
        ) from err
    if not version:
        raise OSError(f"installed distribution version for '{DISTRIBUTION}' is empty")
    return version
