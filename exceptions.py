# ==========================================================
#                  EXCEPTIONS
# ==========================================================
# Raised by the bonus and wallet helpers, rendered by the error
# handlers registered in app.py as {"success": False, "message": ...}


class FulusError(Exception):
    """Base application exception"""
    status_code = 500
    default_message = "Server error"

    def __init__(self, message=None, status_code=None):
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)

    def to_dict(self):
        return {"success": False, "message": self.message}


class ValidationError(FulusError):
    status_code = 400
    default_message = "Invalid request"


class NotFound(FulusError):
    status_code = 404
    default_message = "Not found"


class Conflict(FulusError):
    status_code = 409
    default_message = "Conflict"


class AlreadyCollected(Conflict):
    status_code = 400
    default_message = "Bonus already collected"


class AlreadyActive(Conflict):
    status_code = 400
    default_message = "Account is already active"


class InsufficientFunds(FulusError):
    status_code = 400
    default_message = "Insufficient balance"


class Unauthorized(FulusError):
    status_code = 401
    default_message = "Unauthorized"


class Unavailable(FulusError):
    status_code = 503
    default_message = "DB not connected"
