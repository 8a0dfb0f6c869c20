from typing import Any, Dict

from ferrocord.configuration.coercion import as_bool, as_float, as_int


class SinkSettings:
    """Helper exposing typed accessors for the ``action_sink`` config section.

    Values are coerced on access and fall back to defaults that match the
    platform's documented limits, so an empty mapping is a valid config.
    """

    def __init__(self, data: Dict[str, Any] | None = None) -> None:
        self.data: Dict[str, Any] = data or {}

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value for `key` or `default` if missing."""
        return self.data.get(key, default)

    @property
    def max_attempts(self) -> int:
        """Attempts per action for transient failures (first try included)."""
        return max(1, as_int(self.data.get("max_attempts"), 3))

    @property
    def base_backoff_seconds(self) -> float:
        return max(0.0, as_float(self.data.get("base_backoff_seconds"), 0.5))

    @property
    def max_backoff_seconds(self) -> float:
        return max(0.0, as_float(self.data.get("max_backoff_seconds"), 8.0))

    @property
    def max_rate_limit_waits(self) -> int:
        """How many rate-limit pauses one action may sit through before it is given up."""
        return max(1, as_int(self.data.get("max_rate_limit_waits"), 10))

    @property
    def bulk_delete_limit(self) -> int:
        """Maximum message ids per bulk delete call (Discord allows 100)."""
        return min(100, max(2, as_int(self.data.get("bulk_delete_limit"), 100)))

    @property
    def jitter(self) -> bool:
        return as_bool(self.data.get("jitter"), True)
