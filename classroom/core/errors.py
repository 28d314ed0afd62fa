"""
Domain errors raised by the services.

Every error carries a stable ``code`` (what clients branch on) and the
HTTP status it maps to. ``classroom.main`` renders them as
``{"detail": message, "code": code}``.
"""


class DomainError(Exception):
    code = "error"
    status_code = 400
    default_message = "Request could not be processed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


# --- validation -------------------------------------------------------------


class MissingFields(DomainError):
    code = "missing_fields"
    default_message = "Task ID and comment are required"


class InvalidComment(DomainError):
    code = "invalid_comment"
    default_message = "Comment has an invalid length"


class InvalidCollaborator(DomainError):
    code = "invalid_collaborator"
    default_message = "Invalid email format for collaborator"


class InvalidAttachment(DomainError):
    code = "invalid_attachment"
    default_message = "Attachment is incomplete or was not uploaded"


class DeadlinePassed(DomainError):
    code = "deadline_passed"
    default_message = "Task deadline has passed"


class AttemptLimitReached(DomainError):
    code = "attempt_limit_reached"
    status_code = 409
    default_message = "No submission attempts left for this task"


class AlreadySubmitted(DomainError):
    code = "already_submitted"
    status_code = 409
    default_message = "You have already submitted this task"


class GradeRequired(DomainError):
    code = "grade_required"
    default_message = "Grade is required"


class GradeInvalid(DomainError):
    code = "grade_invalid"
    default_message = "Grade must be a valid number"


class GradeOutOfRange(DomainError):
    code = "grade_out_of_range"
    default_message = "Grade is out of range"


class FeedbackTooShort(DomainError):
    code = "feedback_too_short"
    default_message = "Feedback must be at least 10 characters long"


class FeedbackTooLong(DomainError):
    code = "feedback_too_long"
    default_message = "Feedback is too long"


class InvalidStatus(DomainError):
    code = "invalid_status"
    default_message = "Status is not a valid review status"


class InvalidIdentifier(DomainError):
    """An entity reference did not normalize to a canonical id."""

    code = "invalid_identifier"
    default_message = "Malformed identifier"


# --- uploads ----------------------------------------------------------------


class NoFiles(DomainError):
    code = "no_files"
    default_message = "No files provided"


class TooManyFiles(DomainError):
    code = "too_many_files"
    default_message = "Too many files in one upload"


class InvalidFileType(DomainError):
    code = "invalid_type"
    default_message = "File type is not allowed"


class FileTooLarge(DomainError):
    code = "file_too_large"
    default_message = "File exceeds the maximum size"


class InvalidFilename(DomainError):
    code = "invalid_filename"
    default_message = "Filename is not acceptable"


class UploadFailed(DomainError):
    code = "upload_failed"
    status_code = 502
    default_message = "Failed to store uploaded files"


# --- lookup / authorization -------------------------------------------------


class TaskNotFound(DomainError):
    code = "task_not_found"
    status_code = 404
    default_message = "Task not found"


class NotFound(DomainError):
    code = "not_found"
    status_code = 404
    default_message = "Submission not found"


class NotAssigned(DomainError):
    code = "not_assigned"
    status_code = 403
    default_message = "You are not assigned to this task"


class AccessDenied(DomainError):
    code = "access_denied"
    status_code = 403
    default_message = "Access denied"


class NotAuthorized(DomainError):
    code = "not_authorized"
    status_code = 403
    default_message = "You are not authorized to grade this submission"
