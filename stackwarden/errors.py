"""Exception types shared by the orchestrator and the download client."""


class WardenError(Exception):
    """Base class for every error raised by Stack Warden."""


class CommandFailure(WardenError):
    """An external command exited non-zero, timed out, or could not spawn."""

    def __init__(self, message, argv=None, exit_code=None, stderr=""):
        super().__init__(message)
        self.argv = list(argv or [])
        self.exit_code = exit_code
        self.stderr = stderr


class RestartBusy(WardenError):
    """A restart was requested while another one was already running."""


class AuthFailure(WardenError):
    """The download manager rejected our credentials."""


class TransportFailure(WardenError):
    """A downstream service could not be reached."""


class JobRequestError(WardenError):
    """The download manager answered, but refused the job request."""
