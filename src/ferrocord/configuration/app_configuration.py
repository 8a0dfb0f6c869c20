from __future__ import annotations
from pathlib import Path
import fcntl
from typing import Any, Dict, List
import yaml

from ferrocord.configuration.coercion import as_bool, as_float, as_int
from ferrocord.configuration.sink_settings import SinkSettings
from ferrocord.util.logger import get_logger

logger = get_logger("app_configuration")


CONFIG_PATH = Path("./config/app_config.yml").resolve()
DEFAULT_DATABASE_PATH = Path("./data/ferrocord.db")


class AppConfig:
    """File-lock based accessor around the YAML-based application configuration.

    The class caches contents of ``./config/app_config.yml`` and exposes
    dictionary-like access helpers plus typed shortcuts for every setting the
    dispatch pipeline consumes. Uses fcntl file locks for safe concurrent
    access across processes.

    The rest of the bot never reads the file itself: it receives an
    ``AppConfig`` instance by handle.
    """

    def __init__(self, config_path: Path) -> None:
        self.config_path = config_path
        self._data: Dict[str, Any] = {}
        self.reload()

    # --------------------------
    # Private helpers
    # --------------------------
    def load_from_disk(self) -> Dict[str, Any]:
        try:
            with self.config_path.open("r", encoding="utf-8") as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_SH)
                try:
                    data = yaml.safe_load(f)
                finally:
                    fcntl.flock(f.fileno(), fcntl.LOCK_UN)
        except FileNotFoundError:
            logger.error("[APP CONFIGURATION] Config file %s not found.", self.config_path)
            return {}
        except Exception as exc:
            logger.error("[APP CONFIGURATION] Failed to load config %s: %s", self.config_path, exc)
            return {}

        if not isinstance(data, dict):
            if data is not None:
                logger.error("[APP CONFIGURATION] Config root must be a mapping, got %s", type(data).__name__)
            return {}
        return data

    def _section(self, key: str) -> Dict[str, Any]:
        value = self._data.get(key, {})
        return value if isinstance(value, dict) else {}

    # --------------------------
    # Public API
    # --------------------------
    def reload(self) -> Dict[str, Any]:
        """Reload configuration from disk and return the loaded mapping.

        Returns the raw mapping that was loaded (an empty dict on error).
        """
        self._data = self.load_from_disk()
        return self._data

    @property
    def data(self) -> Dict[str, Any]:
        """Return the current cached configuration mapping.

        The returned dict is the internal cache (shallow reference). Callers
        should not mutate it; use get(...) or the provided convenience
        properties instead.
        """
        return self._data

    def get(self, key: str, default: Any = None) -> Any:
        """Safe lookup for top-level configuration keys."""
        return self._data.get(key, default)

    # --------------------------
    # Identifiers
    # --------------------------
    @property
    def guild_id(self) -> int | None:
        return as_int(self._data.get("guild_id"))

    @property
    def bot_user_id(self) -> int | None:
        return as_int(self._data.get("bot_user_id"))

    @property
    def elevated_role_id(self) -> int | None:
        """Moderator role. Holders pass every role requirement and may mutate restricted tags."""
        return as_int(self._section("roles").get("elevated"))

    @property
    def restricted_role_id(self) -> int | None:
        """Role that unlocks commands marked as restricted (elevated members also qualify)."""
        return as_int(self._section("roles").get("restricted_commands"))

    @property
    def opt_in_role_id(self) -> int | None:
        """The single role members may grant to or revoke from themselves."""
        return as_int(self._section("roles").get("opt_in"))

    @property
    def opt_in_join_delay_seconds(self) -> float | None:
        """Delay before new members get the opt-in role automatically; None turns the grant off."""
        roles = self._section("roles")
        if "grant_on_join_after_minutes" not in roles:
            return 30 * 60.0
        minutes = as_float(roles.get("grant_on_join_after_minutes"), -1.0)
        return minutes * 60.0 if minutes >= 0 else None

    @property
    def modmail_channel_id(self) -> int | None:
        return as_int(self._section("modmail").get("channel_id"))

    # --------------------------
    # Persistence
    # --------------------------
    @property
    def persistence_enabled(self) -> bool:
        """When False the database is never opened and tag commands are denied."""
        return as_bool(self._section("persistence").get("enabled"), True)

    @property
    def database_path(self) -> Path:
        raw = self._section("persistence").get("path")
        return Path(str(raw)).resolve() if raw else DEFAULT_DATABASE_PATH.resolve()

    @property
    def transaction_timeout_seconds(self) -> float:
        """SQLite busy timeout: how long a transaction waits on the database lock."""
        return max(0.0, as_float(self._section("persistence").get("timeout_seconds"), 5.0))

    # --------------------------
    # Dispatch
    # --------------------------
    @property
    def command_prefixes(self) -> List[str]:
        value = self._section("commands").get("prefixes", ["?"])
        if isinstance(value, str):
            value = [value]
        if not isinstance(value, list):
            return ["?"]
        prefixes = [str(p) for p in value if str(p)]
        # Longest first so "??" wins over "?"
        return sorted(prefixes, key=len, reverse=True) or ["?"]

    @property
    def reaction_commands(self) -> Dict[str, str]:
        """Map of emoji to command name triggered by reacting with that emoji."""
        value = self._section("commands").get("reactions", {})
        if not isinstance(value, dict):
            return {}
        return {str(emoji): str(command) for emoji, command in value.items()}

    @property
    def dispatch_timeout_seconds(self) -> float:
        value = as_float(self._section("commands").get("timeout_seconds"), 10.0)
        return value if value > 0 else 10.0

    @property
    def sink_settings(self) -> SinkSettings:
        """Return the outbound action sink settings wrapped in a SinkSettings helper."""
        return SinkSettings(self._section("action_sink"))


def load_app_config(config_path: Path = CONFIG_PATH) -> AppConfig:
    """Build an ``AppConfig`` for ``config_path`` (the default location unless given)."""
    return AppConfig(config_path)
