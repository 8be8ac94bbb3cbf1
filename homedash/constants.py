"""All constants for the Home Dashboard."""

from typing import Any, Final

ROOT_LOGGER_NAME: Final[str] = "homedash"
VERBOSE_LOG_LEVEL: Final[int] = 5

# config keys
CONF_LOG_LEVEL: Final[str] = "log_level"
CONF_API_URL: Final[str] = "sonos_api/url"
CONF_API_TIMEOUT: Final[str] = "sonos_api/timeout"
CONF_POLL_INTERVAL: Final[str] = "topology/poll_interval"
CONF_SETTLE_DELAY: Final[str] = "commands/settle_delay"
CONF_JOIN_DELAY: Final[str] = "commands/join_delay"
CONF_TV_RESTORE_DELAY: Final[str] = "commands/tv_restore_delay"
CONF_COMPANION_PATH: Final[str] = "companion/path"
CONF_COMPANION_AUTOSTART: Final[str] = "companion/autostart"
CONF_HEALTH_INTERVAL: Final[str] = "companion/health_interval"
CONF_HEALTH_ATTEMPTS: Final[str] = "companion/health_attempts"
CONF_RESTART_DELAY: Final[str] = "companion/restart_delay"
CONF_BIND_IP: Final[str] = "webserver/bind_ip"
CONF_BIND_PORT: Final[str] = "webserver/bind_port"

# config default values
DEFAULT_API_URL: Final[str] = "http://localhost:5005"
DEFAULT_API_TIMEOUT: Final[int] = 30
DEFAULT_POLL_INTERVAL: Final[int] = 5
DEFAULT_SETTLE_DELAY: Final[float] = 2
DEFAULT_JOIN_DELAY: Final[float] = 2
DEFAULT_TV_RESTORE_DELAY: Final[float] = 3
DEFAULT_COMPANION_PATH: Final[str] = "node-sonos-http-api"
DEFAULT_COMPANION_AUTOSTART: Final[bool] = False
DEFAULT_HEALTH_INTERVAL: Final[float] = 1
DEFAULT_HEALTH_ATTEMPTS: Final[int] = 30
DEFAULT_RESTART_DELAY: Final[float] = 2
DEFAULT_HOST: Final[str] = "0.0.0.0"
DEFAULT_PORT: Final[int] = 3000

# the options written to a new settings file, with their default value
DEFAULT_SETTINGS: Final[dict[str, Any]] = {
    CONF_API_URL: DEFAULT_API_URL,
    CONF_API_TIMEOUT: DEFAULT_API_TIMEOUT,
    CONF_POLL_INTERVAL: DEFAULT_POLL_INTERVAL,
    CONF_SETTLE_DELAY: DEFAULT_SETTLE_DELAY,
    CONF_JOIN_DELAY: DEFAULT_JOIN_DELAY,
    CONF_TV_RESTORE_DELAY: DEFAULT_TV_RESTORE_DELAY,
    CONF_COMPANION_PATH: DEFAULT_COMPANION_PATH,
    CONF_COMPANION_AUTOSTART: DEFAULT_COMPANION_AUTOSTART,
    CONF_HEALTH_INTERVAL: DEFAULT_HEALTH_INTERVAL,
    CONF_HEALTH_ATTEMPTS: DEFAULT_HEALTH_ATTEMPTS,
    CONF_RESTART_DELAY: DEFAULT_RESTART_DELAY,
    CONF_BIND_IP: DEFAULT_HOST,
    CONF_BIND_PORT: DEFAULT_PORT,
}

# environment variables that override the stored settings
ENV_OVERRIDES: Final[dict[str, str]] = {
    "SONOS_API_URL": CONF_API_URL,
    "SONOS_TIMEOUT": CONF_API_TIMEOUT,
    "SONOS_POLL_INTERVAL": CONF_POLL_INTERVAL,
    "HOMEDASH_BIND_IP": CONF_BIND_IP,
    "HOMEDASH_PORT": CONF_BIND_PORT,
    "JISHI_PATH": CONF_COMPANION_PATH,
    "JISHI_AUTOSTART": CONF_COMPANION_AUTOSTART,
}

# provider reports
DEFAULT_PLAYBACK_STATE: Final[str] = "STOPPED"
TV_AUDIO_URI_MARKERS: Final[tuple[str, ...]] = ("spdif", "htastream")
