from src.shared.exceptions import ConflictError


class AlreadyAccepted(ConflictError):
    """Another responder won the accept race."""
    code = "already_accepted"
