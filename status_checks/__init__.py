"""Probe-and-aggregate core for the status aggregator.

Targets are probed concurrently by `status_checks.probe`, memoized by
`status_checks.cache`, and reshaped for dashboards and agents by
`status_checks.views`. The HTTP layer lives in `status_api`.
"""

APP_NAME = "moltbookdowndetector"
__version__ = "0.1.0"
APP_VERSION = __version__
PROJECT_URL = "https://github.com/officialpm/moltbookdowndetector"


def default_user_agent() -> str:
    return f"{APP_NAME}/{APP_VERSION} (+{PROJECT_URL})"
