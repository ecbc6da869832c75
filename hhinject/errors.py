"""Exception types shared by the hhinject modules.

Only ``ConfigurationError`` ever reaches the command line; per-target
problems (unreachable hosts, malformed responses) are recorded as data on the
scan results instead of being raised.
"""


class HHInjectError(Exception):
    """Base class for errors raised by hhinject."""


class ConfigurationError(HHInjectError):
    """Fatal problem with the run configuration, raised before any scanning.

    ``exit_code`` is the process status the CLI exits with; ``show_usage``
    asks the CLI to print the usage line first.
    """

    def __init__(self, message: str, exit_code: int = 1, show_usage: bool = False) -> None:
        super().__init__(message)
        self.exit_code = exit_code
        self.show_usage = show_usage


class DiffUnavailable(HHInjectError):
    """One of the two artifacts needed for a diff is missing."""


class RequestDeadlineExceeded(HHInjectError):
    """A request did not complete within its timeout."""
