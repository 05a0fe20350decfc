# =========================================================================
# CUSTOM EXCEPTIONS
# =========================================================================

class RecordSyncError(Exception):
    """Base exception for record sync errors"""
    pass

class AuthenticityFailure(RecordSyncError):
    """Webhook signature missing (400) or wrong (401). Never retried."""

    def __init__(self, message: str, status: int = 401):
        super().__init__(message)
        self.status = status

class ValidationFailure(RecordSyncError):
    """Registry notification failed the client state check"""
    status = 400

class LookupMiss(RecordSyncError):
    """Identity or mapping not found"""
    pass

class UpstreamFailure(RecordSyncError):
    """Store or collaborator call failed"""
    pass

class TranslationAmbiguity(RecordSyncError):
    """Webhook event kind could not be recognized"""
    pass
