# exceptions.py

class PermanentError(Exception):
    """An error that will not be fixed by a retry (e.g., a denied permission)."""
    pass

class MissingParameterError(PermanentError, ValueError):
    """A required operation parameter was not supplied. Raised before any request is sent."""
    pass

class AuthenticationError(PermanentError):
    """The OAuth client config or token could not be loaded."""
    pass
