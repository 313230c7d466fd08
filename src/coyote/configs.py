from coyote.app_config import Config

COYOTE_LOG_LEVEL = Config(env_name="COYOTE_LOG_LEVEL", is_required=True, default_value="INFO")

# Broker connection
COYOTE_CONNECTION_TIMEOUT = Config(
    env_name="COYOTE_CONNECTION_TIMEOUT", is_required=True, default_value="5"
)
COYOTE_HEARTBEAT = Config(env_name="COYOTE_HEARTBEAT", is_required=True, default_value="10")
COYOTE_RECONNECT_DELAY = Config(
    env_name="COYOTE_RECONNECT_DELAY", is_required=True, default_value="2"
)
COYOTE_MAX_RECONNECT_DELAY = Config(
    env_name="COYOTE_MAX_RECONNECT_DELAY", is_required=True, default_value="60"
)
COYOTE_REINIT_DELAY = Config(env_name="COYOTE_REINIT_DELAY", is_required=True, default_value="2")
COYOTE_MAX_REINIT_DELAY = Config(
    env_name="COYOTE_MAX_REINIT_DELAY", is_required=True, default_value="60"
)
COYOTE_READINESS_POLL_INTERVAL = Config(
    env_name="COYOTE_READINESS_POLL_INTERVAL", is_required=True, default_value="1"
)
COYOTE_QUEUE_PREFIX = Config(
    env_name="COYOTE_QUEUE_PREFIX", is_required=True, default_value="coyote"
)

# OAuth 2.0 discovery and token exchange
COYOTE_HTTP_TIMEOUT = Config(env_name="COYOTE_HTTP_TIMEOUT", is_required=True, default_value="15")

CONFIGS = [
    COYOTE_LOG_LEVEL,
    COYOTE_CONNECTION_TIMEOUT,
    COYOTE_HEARTBEAT,
    COYOTE_RECONNECT_DELAY,
    COYOTE_MAX_RECONNECT_DELAY,
    COYOTE_REINIT_DELAY,
    COYOTE_MAX_REINIT_DELAY,
    COYOTE_READINESS_POLL_INTERVAL,
    COYOTE_QUEUE_PREFIX,
    COYOTE_HTTP_TIMEOUT,
]
