from __future__ import annotations


class AssignmentError(Exception):
    """
    Expected business-rule violation raised by the assignment engine.
    `code` is stable and machine readable; routers map it to an HTTP status.
    """
    code: str = "error"

    def __init__(self, code: str | None = None, message: str | None = None):
        if code is not None:
            self.code = code
        self.message = message or self.code.replace("_", " ")
        super().__init__(self.message)


class ChallengeNotFound(AssignmentError):
    code = "not_found"


class PostNotFound(AssignmentError):
    code = "not_found"


class PickError(AssignmentError):
    """already_taken | already_assigned | already_joined | not_available | out_of_window"""


class CancelError(AssignmentError):
    """not_yours"""


class CompleteError(AssignmentError):
    """not_assigned | not_joined | already_submitted"""


class AwardError(AssignmentError):
    """not_open | already_awarded | no_submission"""


class UnassignError(AssignmentError):
    """not_assigned"""


class RevokeError(AssignmentError):
    """already_revoked"""


class DeletePostError(AssignmentError):
    """forbidden"""


class MediaError(AssignmentError):
    """unsupported_media | media_not_found | too_large"""
