"""Allow/deny outcomes shared by the interceptors."""

from dataclasses import dataclass

import grpc


@dataclass(frozen=True)
class Decision:
    """
    Outcome of an authorization check.

    A denial carries the gRPC status code and the description sent to the
    caller when the call is closed.
    """

    allowed: bool
    code: grpc.StatusCode | None = None
    message: str | None = None

    @classmethod
    def deny(cls, code: grpc.StatusCode, message: str) -> "Decision":
        return cls(allowed=False, code=code, message=message)

    def abort(self, context: grpc.ServicerContext) -> None:
        """Close the call with this denial's status. Raises, like ``context.abort``."""
        if self.allowed:
            raise ValueError("Cannot abort a call with an allow decision")
        context.abort(self.code, self.message)


ALLOW = Decision(allowed=True)
