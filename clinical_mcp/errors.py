class ClinicalSessionError(Exception):
    """Base class for errors surfaced to callers of the session manager."""

    status_code = 400


class SessionNotFound(ClinicalSessionError):
    status_code = 404

    def __init__(self, session_id: str, reason: str = "Session not found"):
        self.session_id = session_id
        super().__init__(f"{reason}: {session_id}")


class InvalidState(ClinicalSessionError):
    status_code = 409


class NoNewSymptoms(ClinicalSessionError):
    status_code = 400


class UnsupportedProvider(ClinicalSessionError, ValueError):
    status_code = 422

    def __init__(self, provider: str):
        self.provider = provider
        super().__init__(f"Unsupported AI provider: {provider}")


class SessionLimitExceeded(ClinicalSessionError):
    status_code = 503


# The errors below never leave a clinical operation; the manager converts
# them into fallback recommendations.

class UpstreamCompletionFailure(Exception):
    pass


class ParseFailure(Exception):
    pass


class SemanticValidationFailure(Exception):
    pass
