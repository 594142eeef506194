"""Error taxonomy for the folder graph.

Every error raised by the engine aborts the enclosing unit of work. The
HTTP layer maps them onto responses through ``status_code``.
"""


class FolderGraphError(Exception):
    status_code = 500

    def __init__(self, detail: str = ""):
        super().__init__(detail)
        self.detail = detail or self.__class__.__name__


class ValidationError(FolderGraphError):
    """Malformed input or a missing required linkage."""
    status_code = 400


class NotFoundError(FolderGraphError):
    """Node or edge absent, or already in the requested lifecycle state."""
    status_code = 404


class ConflictError(FolderGraphError):
    """Duplicate edge or a detected loop."""
    status_code = 409


class FolderLoopError(ValidationError, ConflictError):
    """Self-bind or cycle. Catchable as either parent class."""
    status_code = 409

    def __init__(self, detail: str = "loop"):
        super().__init__(detail)


class IntegrityError(FolderGraphError):
    """The graph would be left inconsistent. Indicates a bug, not bad input."""
    status_code = 500


class PermissionPropagationError(FolderGraphError):
    """The structural change committed, a permission call made afterwards failed."""
    status_code = 502
