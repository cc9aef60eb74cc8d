# gridsim/utils/errors.py
class UserInputError(RuntimeError):
    """
    Raised for invalid user-provided config (dates, symbols, etc).
    Should NOT print traceback.
    """


class ValidationError(UserInputError):
    """
    Requested range cannot be served: start before the first available day,
    end inside the settlement buffer, or end before start.

    Raised before any fetch or replay work is done.
    """


class BacktestError(RuntimeError):
    """Unexpected engine / storage state. Aborts the run."""


class BacktestCancelled(Exception):
    """
    Cooperative cancellation.

    Deliberately NOT a BacktestError: callers must report it as a
    cancellation, never as a failure.
    """

    def __init__(self, reason: str = "Backtest cancelled"):
        super().__init__(reason)
        self.reason = reason
