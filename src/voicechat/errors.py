"""Error taxonomy for the conversation gateway.

Errors are grouped by where they are absorbed:
- ProtocolError: malformed or unknown frame, answered with an error frame
- SessionNotFound: frame for a dead or unknown session, dropped
- CollaboratorError: model or speech failure, recovered inside the session
- TransportError: connection-level failure, tears the session down
"""


class VoiceChatError(Exception):
    """Base exception for conversation gateway errors."""

    pass


class ProtocolError(VoiceChatError):
    """Raised when an inbound frame cannot be decoded."""

    pass


class SessionNotFound(VoiceChatError, KeyError):
    """Raised when a session id is unknown or the session is closing."""

    def __init__(self, session_id: str) -> None:
        super().__init__(session_id)
        self.session_id = session_id

    def __str__(self) -> str:
        return f"Session not found: {self.session_id}"


class CollaboratorError(VoiceChatError):
    """Raised when a transcript or speech collaborator call fails."""

    def __init__(self, collaborator: str, message: str) -> None:
        super().__init__(f"{collaborator}: {message}")
        self.collaborator = collaborator


class TransportError(VoiceChatError, ConnectionError):
    """Raised when the underlying connection is closed or broken."""

    pass
