"""
Authorization error taxonomy.

Every error raised on the decision path carries a stable ``reason`` string.
The decision engine turns any of them into ``Verdict(allowed=False, reason=...)``;
the exception message (the internal detail) only reaches logs and the audit sink.

Decision path:
- StoreUnavailable: grant/policy store I/O failed
- InvalidPolicy: malformed policy condition (policy is skipped)
- UnknownRole / UnknownPermission: data references an undefined enum value
- Cancelled: caller deadline exceeded

Administration:
- ManagementDenied: actor may not perform the mutation
- PolicyNotFound: policy id does not exist
"""


class AuthorizationError(Exception):
    """Base class for all authorization engine errors."""

    reason: str = "authorization error"

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.reason
        super().__init__(self.detail)


class StoreUnavailable(AuthorizationError):
    """Grant or policy store could not be reached."""

    reason = "store unavailable"


class InvalidPolicy(AuthorizationError):
    """A policy condition is malformed and cannot be evaluated."""

    reason = "invalid policy"

    def __init__(self, detail: str | None = None, policy_id: str | None = None):
        self.policy_id = policy_id
        super().__init__(detail)


class UnknownRole(AuthorizationError):
    """Reference to a role that is not defined."""

    reason = "unknown role"


class UnknownPermission(AuthorizationError):
    """Reference to a permission or action that is not defined."""

    reason = "unknown permission"


class Cancelled(AuthorizationError):
    """The caller's deadline passed before a decision was reached."""

    reason = "cancelled"


class ManagementDenied(AuthorizationError):
    """The acting user is not allowed to perform an administrative mutation."""

    reason = "management denied"


class PolicyNotFound(AuthorizationError):
    """No policy exists with the given id."""

    reason = "policy not found"
