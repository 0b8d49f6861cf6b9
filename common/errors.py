from __future__ import annotations


class RelayError(RuntimeError):
    code = "relay_error"


class NotPermitted(RelayError):
    code = "not_permitted"

    def __init__(self, message: str, *, identity: int | None = None, action: str | None = None):
        super().__init__(message)
        self.identity = identity
        self.action = action


class NotWhitelisted(NotPermitted):
    code = "not_whitelisted"


class StorageError(RelayError):
    code = "storage_error"

    def __init__(self, message: str, *, operation: str | None = None):
        super().__init__(message)
        self.operation = operation


class UpstreamError(RelayError):
    code = "upstream_error"


class TranscriptionFailed(UpstreamError):
    code = "transcription_failed"


class ConfigurationError(RelayError):
    code = "configuration_error"
