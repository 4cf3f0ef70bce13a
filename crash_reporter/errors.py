"""Exception hierarchy for the crash reporter."""


class CrashReporterError(Exception):
    """Base class for every error raised by the crash reporter."""


class ArtifactStoreError(CrashReporterError):
    """A backtrace artifact could not be written, read or removed."""

    def __init__(self, key: str, message: str = ""):
        self.key = key
        super().__init__(message or key)


class ArtifactAlreadyExists(ArtifactStoreError):
    """The generated artifact name is taken; retry under a new name."""


class ArtifactUploadFailed(ArtifactStoreError):
    """Writing the artifact failed; retry under the same name."""


class ArtifactDeleteFailed(ArtifactStoreError):
    """Removing the artifact failed. Never fatal, only noted in the report."""


class TransportFailure(CrashReporterError):
    """The mail transport refused or failed to deliver a notification."""
