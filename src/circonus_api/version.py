from importlib import metadata

DISTRIBUTION_NAME = "circonus-apiclient"
# Reported from a source checkout that was never installed.
FALLBACK_VERSION = "0.1.0"


def get_version(distribution: str = DISTRIBUTION_NAME) -> str:
    try:
        return metadata.version(distribution)
    except metadata.PackageNotFoundError:
        return FALLBACK_VERSION


__version__ = get_version()
