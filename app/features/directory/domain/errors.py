"""
Error taxonomy for the directory core.

Duplicate votes are not an error: an insert-or-ignore that hits the unique
constraint comes back as a VoteReceipt with inserted=False.
"""


class FetchError(Exception):
    """The listing/vote store is unreachable or returned an error."""

    def __init__(self, message: str, operation: str = "unknown"):
        super().__init__(message)
        self.operation = operation


class AuthRequiredError(Exception):
    """A protected operation needed an identity and sign-in did not produce one."""

    def __init__(self, message: str = "Sign-in required", sign_in_url: str | None = None):
        super().__init__(message)
        self.sign_in_url = sign_in_url
