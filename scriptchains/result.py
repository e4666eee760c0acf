"""
Result - Represents the outcome of an event, middleware or chain execution.
"""

class Result:
    """
    Represents the outcome of an execution.
    Contains success status and optional error information.
    """

    def __init__(self, success, error=None, data=None, source=None, context=None):
        """
        Initialize a Result.

        Args:
            success: Boolean indicating if the execution succeeded
            error: Optional reason text for a failure
            data: Optional additional data about the result
            source: Name of the event or middleware that failed (optional)
            context: EventContext that should be live after this step
                (None keeps the current one)
        """
        self.success = success
        self.error = error
        self.data = data
        self.source = source
        self.context = context

    @staticmethod
    def ok(data=None, context=None):
        """Create a successful result."""
        return Result(True, data=data, context=context)

    @staticmethod
    def fail(error, data=None, source=None):
        """
        Create a failed result.

        Args:
            error: Reason text (exceptions are converted to their message)
            data: Optional additional data about the failure
            source: Name of the failing event or middleware

        Returns:
            Result instance indicating failure
        """
        if isinstance(error, BaseException):
            error = str(error) or error.__class__.__name__
        return Result(False, error=error, data=data, source=source)

    def is_success(self):
        """Return True if the result indicates success."""
        return self.success

    def is_failure(self):
        """Return True if the result indicates failure."""
        return not self.success

    def __bool__(self):
        """Allow Result to be used in boolean context (if result: ...)"""
        return self.success

    def __repr__(self):
        if self.success:
            return f"Result.ok(data={self.data})"
        return f"Result.fail(error={self.error!r}, source={self.source!r})"

    def __str__(self):
        if self.success:
            return "Success"
        if self.source:
            return f"Failure in {self.source}: {self.error}"
        return f"Failure: {self.error}"
