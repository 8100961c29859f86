"""Exception types raised by fuku."""

from __future__ import annotations


class FukuError(Exception):
    """Base class for fuku errors.

    Each subclass carries a fixed summary in ``message``; an optional detail
    is appended after a colon.
    """

    message = "fuku error"

    def __init__(self, detail: object = None) -> None:
        self.detail = detail
        text = self.message if detail is None else f"{self.message}: {detail}"
        super().__init__(text)


class OperationCancelledError(FukuError):
    """The operation was cancelled before it could finish."""

    message = "operation cancelled"


class ProfileNotFoundError(FukuError):
    message = "profile not found"


class UnsupportedProfileFormatError(FukuError):
    message = "unsupported profile format"


class ServiceNotFoundError(FukuError):
    message = "service not found"


class ServiceNotInRegistryError(FukuError):
    message = "service not found in registry"


class ServiceDirectoryNotExistError(FukuError):
    message = "service directory does not exist"


class InvalidReadinessTypeError(FukuError):
    message = "invalid readiness type"


class ReadinessTimeoutError(FukuError):
    message = "readiness check timed out"


class InvalidRegexPatternError(FukuError):
    message = "invalid regex pattern"


class FailedToGetWorkingDirError(FukuError):
    message = "failed to get working directory"


class FailedToCreatePipeError(FukuError):
    message = "failed to create pipe"


class FailedToStartCommandError(FukuError):
    message = "failed to start command"


class FailedToCreateRequestError(FukuError):
    message = "failed to create request"


class StartupInterruptedError(FukuError):
    message = "startup interrupted"


class CommandChannelClosedError(FukuError):
    message = "command channel closed"


class FailedToAcquireWorkerError(FukuError):
    message = "failed to acquire worker"


class MaxRetriesExceededError(FukuError):
    message = "max retry attempts exceeded"


class FailedToTerminateProcessError(FukuError):
    message = "failed to terminate process"