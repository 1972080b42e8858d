"""
Engine Exceptions
=================

Exception hierarchy raised by the yield allocation engine.

Callers can distinguish three families of failure:

- :class:`PreconditionError` and its subclasses are raised *before* any
  state mutation. The Distribution State is unchanged and the caller may
  decide whether a retry makes sense (e.g. wait out ``CycleNotElapsed``,
  never retry ``InvalidRecipients`` without fixing the input).
- :class:`InvariantViolation` signals a programming or configuration
  defect detected mid-computation. The operation is halted.
- :class:`ConfigLoadError` covers engine configuration files.

Example
-------
>>> from tranche_yield.engine.errors import CycleNotElapsed, PreconditionError
>>> try:
...     engine.run_distribution(earnings)
... except CycleNotElapsed as e:
...     print(f"Retry after {e.ready_at}")
"""

from __future__ import annotations

from typing import Optional


class YieldEngineError(Exception):
    """
    Base exception for all engine failures.

    All engine-specific exceptions inherit from this class,
    allowing callers to catch every engine error with a single handler.
    """

    pass


# --- PRECONDITION VIOLATIONS ---
class PreconditionError(YieldEngineError):
    """Raised when an operation is rejected before touching any state."""

    pass


class NotUnlocked(PreconditionError):
    """Raised when a distribution operation runs before ``initialize()``."""

    def __init__(self, message: str = "Engine has not been initialized") -> None:
        super().__init__(message)


class AlreadyInitialized(PreconditionError):
    """Raised when ``initialize()`` is called a second time."""

    def __init__(self, message: str = "Engine is already initialized") -> None:
        super().__init__(message)


class CycleNotElapsed(PreconditionError):
    """
    Raised when a distribution is attempted before the cycle period elapsed.

    Attributes
    ----------
    ready_at : int
        Earliest timestamp (seconds) at which the next cycle may run.
    now : int
        Timestamp at which the attempt was made.
    """

    def __init__(self, ready_at: int, now: int) -> None:
        self.ready_at = ready_at
        self.now = now
        super().__init__(
            f"Distribution cycle not elapsed: next cycle at {ready_at}, "
            f"now {now} ({ready_at - now}s remaining)"
        )


class Unauthorized(PreconditionError):
    """Raised when the authorization predicate rejects a governed action."""

    def __init__(self, caller: Optional[str], action: str) -> None:
        self.caller = caller
        self.action = action
        super().__init__(f"Caller {caller!r} is not authorized to {action}")


class InvalidRecipients(PreconditionError):
    """Raised when a recipient set fails validation."""

    pass


class InvalidParameter(PreconditionError):
    """Raised when a configuration setter receives an out-of-bounds value."""

    pass


class DivisionByZero(PreconditionError):
    """
    Raised by :func:`fixed_point.floor_div` when the divisor is zero.

    Kept distinct from the builtin ``ZeroDivisionError`` so callers can tell
    an explicit zero-guard rejection apart from an arithmetic bug.
    """

    pass


class ReentrantCall(PreconditionError):
    """Raised when an engine operation is entered while one is in progress."""

    def __init__(self, operation: str) -> None:
        self.operation = operation
        super().__init__(f"Re-entrant call to {operation} rejected: distribution in progress")


# --- INTERNAL INVARIANTS ---
class InvariantViolation(YieldEngineError):
    """
    Raised when a derived value breaks an algebraic invariant.

    Examples are a tranche share above one whole unit or a recipient set
    whose weights no longer sum to 10000 after validation. These indicate
    a defect and are never silently clamped.
    """

    pass


# --- CONFIGURATION FILES ---
class ConfigLoadError(YieldEngineError):
    """Base exception for engine configuration file issues."""

    pass


class SchemaViolationError(ConfigLoadError):
    """Raised when a configuration document violates the expected schema."""

    pass
