"""
EventContext - Shared data container that flows through the event chain.
"""

from collections.abc import Mapping

INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1


def is_int64(value):
    return (isinstance(value, int) and not isinstance(value, bool)
            and INT64_MIN <= value <= INT64_MAX)


class EventContext:
    """
    A shared key/value store that flows through the entire chain.

    Values are dynamically typed. The engine understands 64-bit integers,
    text and floats; anything else is carried as an opaque value.

    Exactly one context is live for a chain run. It is mutated in place by
    events and middleware and is never copied unless someone calls copy().
    """

    def __init__(self, data=None):
        """
        Initialize the EventContext with optional initial data.

        Args:
            data: Mapping of initial context data (optional). The mapping is
                copied, so later changes to it do not leak into the context.
        """
        self._data = dict(data) if data is not None else {}

    def get(self, key, default=None):
        """Return the raw value for key, or default if not found."""
        return self._data.get(key, default)

    def get_int(self, key, default=0):
        """Return the value as a 64-bit integer, or default on absence or mismatch."""
        value = self._data.get(key)
        return value if is_int64(value) else default

    def get_str(self, key, default=""):
        """Return the value as text, or default on absence or mismatch."""
        value = self._data.get(key)
        return value if isinstance(value, str) else default

    def get_float(self, key, default=0.0):
        """Return the value as a float (integers are widened), or default."""
        value = self._data.get(key)
        if isinstance(value, float):
            return value
        if is_int64(value):
            return float(value)
        return default

    def get_as(self, key, kind, default=None):
        """
        Get a value coerced to the expected kind.

        Never raises: an absent key or a value of another kind yields default.

        Args:
            key: The key to retrieve
            kind: One of int, str or float
            default: Fallback value

        Returns:
            The stored value as kind, or default
        """
        if kind is int:
            return self.get_int(key, default)
        if kind is str:
            return self.get_str(key, default)
        if kind is float:
            return self.get_float(key, default)
        value = self._data.get(key)
        return value if isinstance(value, kind) else default

    def set(self, key, value):
        """
        Set a value in the context. Last write wins.

        Returns:
            self (for method chaining)
        """
        self._data[key] = value
        return self

    def has(self, key):
        """Check if a key exists in the context."""
        return key in self._data

    def remove(self, key):
        """Remove a key from the context if present."""
        self._data.pop(key, None)
        return self

    def clear(self):
        """Clear all data from the context."""
        self._data.clear()
        return self

    def replace(self, data):
        """Swap the whole contents for data, keeping this instance live."""
        if data is self._data:
            return self
        new_data = dict(data)
        self._data.clear()
        self._data.update(new_data)
        return self

    def copy(self):
        """Return an independent EventContext with the same contents."""
        return EventContext(self._data)

    def keys(self):
        return self._data.keys()

    def values(self):
        return self._data.values()

    def items(self):
        return self._data.items()

    def to_dict(self):
        """Return a copy of the internal data dictionary."""
        return self._data.copy()

    @staticmethod
    def coerce(value, current):
        """
        Turn a handler's return value into the context that is live afterwards.

        Args:
            value: What the handler returned
            current: The context that was live when the handler was called

        Returns:
            An EventContext returned as-is, current with its contents
            replaced for a mapping, or current for None (mutated in place)

        Raises:
            TypeError: For any other return value
        """
        if value is None:
            return current
        if isinstance(value, EventContext):
            return value
        if isinstance(value, Mapping):
            return current.replace(value)
        raise TypeError(
            f"handler must return a context or mapping, got {type(value).__name__}")

    def __contains__(self, key):
        return key in self._data

    def __len__(self):
        return len(self._data)

    def __eq__(self, other):
        if isinstance(other, EventContext):
            return self._data == other._data
        if isinstance(other, Mapping):
            return self._data == dict(other)
        return NotImplemented

    def __repr__(self):
        return f"EventContext({self._data})"

    def __str__(self):
        return str(self._data)
