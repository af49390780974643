"""Exception hierarchy for the drive service."""


class DriveError(Exception):
    """
    Base exception class for all drive errors.

    The message is what the remote operator sees in an error response.
    """
    pass


class CommandValidationError(DriveError):
    """
    Raised when a command is malformed or missing required fields.
    Always raised before any filesystem access.
    """
    pass


class PathTraversalError(CommandValidationError):
    """
    Raised when a composed path would resolve outside the storage root.
    """

    def __init__(self, message: str = "Invalid path"):
        super().__init__(message)


class NotFoundError(DriveError):
    """
    Raised when the target of a read, delete, info or rename does not exist.
    """

    def __init__(self, message: str = "File not found"):
        super().__init__(message)


class ConflictError(DriveError):
    """
    Raised when a rename destination already exists.
    """

    def __init__(self, message: str = "Destination already exists"):
        super().__init__(message)


class TransportError(DriveError):
    """
    Raised when the pub/sub transport cannot connect or publish.
    """
    pass


class UnsupportedKindError(DriveError):
    """
    Raised when an outbound message has a kind outside image/text/file.
    """

    def __init__(self, kind: object):
        super().__init__(f"unknown content type: {kind!r}")
        self.kind = kind
