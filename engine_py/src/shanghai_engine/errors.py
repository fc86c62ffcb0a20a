# engine_py/src/shanghai_engine/errors.py

class GameError(Exception):
    """Base exception for game-related errors."""
    def __init__(self, code: str, message: str):
        self.code = code
        self.message = message
        super().__init__(f"[{code}] {message}")

# Specific error codes
INVALID_PHASE = "INVALID_PHASE"
NOT_YOUR_TURN = "NOT_YOUR_TURN"
NOT_AUTHORIZED = "NOT_AUTHORIZED"
INVALID_MELD = "INVALID_MELD"
RESOURCE_EXHAUSTED = "RESOURCE_EXHAUSTED"
NOT_FOUND = "NOT_FOUND"
INVALID_SETTINGS = "INVALID_SETTINGS"
