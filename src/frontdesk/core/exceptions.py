"""
Domain errors raised by the engine.

These are usage errors: the caller broke the contract, so they are surfaced
immediately and never retried. Routers map them to HTTP status codes.
"""


class FrontDeskError(Exception):
    """Base class for all engine errors"""


class SessionNotFound(FrontDeskError):
    """No active conversation for the given session key"""

    def __init__(self, session_key: str):
        super().__init__(f"No active session for '{session_key}'")
        self.session_key = session_key


class HelpRequestNotFound(FrontDeskError):
    def __init__(self, request_id: int):
        super().__init__(f"Help request {request_id} not found")
        self.request_id = request_id


class InvalidTransition(FrontDeskError):
    """Help request is already in a terminal state"""

    def __init__(self, request_id: int, status: str):
        super().__init__(f"Request {request_id} is not pending (status: {status})")
        self.request_id = request_id
        self.status = status
