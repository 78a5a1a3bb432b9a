from __future__ import annotations


class DorMergerError(Exception):
    """Base exception for merge tool errors."""


class UsageError(DorMergerError):
    """Bad or missing command-line arguments."""


class ConfigError(DorMergerError):
    """Missing or invalid configuration, input file or merge plan."""


class InvalidIdentifierError(DorMergerError):
    pass


class ObjectNotFoundError(DorMergerError):
    pass


class FatalPreconditionError(DorMergerError):
    """The primary object is missing or does not allow modification."""


class ChildProcessingError(DorMergerError):
    pass


class FatalSaveError(DorMergerError):
    """The primary object could not be persisted."""


class InvalidContentMetadataError(DorMergerError):
    pass
