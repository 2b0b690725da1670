"""Shared constants: context keys, messaging names and domain codes."""

from datetime import timedelta

# Messaging
BROADCAST_ROUTING_KEY = "broadcast_msg"
TOPIC_NAME = "meta.topic"

# Service registry group
GROUP = "meta"

# Context keys
BALANCE_TARGET_HOST_NAME = "balance_target_host_name"
BALANCE_TARGET_LABEL = "balance_target_label"
CONTEXT_CACHE_KEY = "context_cache_key"

TRACE_ID_KEY = "_traceId"

PUBLISH_MD_CTX_KEY = "_publish_md_ctx"
CONSUMER_MD_CTX_KEY = "_consumer_md_ctx"
MQ_EXCHANGE_KEY = "_mq_exchange"
ASYNC_METHOD_CTX_KEY = "_async_method_ctx"

UBER_TRACE_ID_KEY = "uber-trace-id"

MONGO_DB_KEY = "_mongo_db"
MONGO_COLLECTION_KEY = "_mongo_collection"
MONGO_OPERATION_KEY = "_mongo_operation"

REDIS_CMD_KEY = "_mongo_cmd"

HTTP_CLIENT_HOST = "_http_client_host"
HTTP_CLIENT_PATH = "_http_client_path"
HTTP_CLIENT_METHOD = "_http_client_method"

GRPC_CLIENT_ADDR = "_grpc_client_addr"

SENTINEL_BREAKER = "_sentinel_breaker_scope"

# Instant messaging
CONV_TYPE_SINGLE = 1
CONV_TYPE_TEAM = 2
CONV_TYPE_CHAT_ROOM = 3

ACTION_JOIN = 1
ACTION_BLACK = 2
ACTION_FORBID = 3

SERVER_SENDER_ID = 1

SERVER_MSG_TYPE_APPLY_FRIEND = 1001
SERVER_MSG_TYPE_SEND_GIFT = 1002

# Connections and sessions (intervals in milliseconds)
PING_PONG_INTERVAL = 30000
DEAD_CONNECTION_INTERVAL = PING_PONG_INTERVAL * 2
LOGOUT_CONNECTION_INTERVAL = PING_PONG_INTERVAL * 3

IM_CONNECTION = 2
SCENE_CONNECTION = 1

LOGIN = 1
LOGOUT = 2
OFFLINE = 3

LOGIN_ACTION = "login"
OFFLINE_ACTION = "offline"
LEAVE_ACTION = "leave"
ENTER_ACTION = "enter"
SIT_DOWN_ACTION = "sitDown"
GET_UP_ACTION = "getUp"

SCENE_ENGINE = 1
PASS_THROUGH = 5

GAME_STAGE_PREPARE = 1
GAME_STAGE_RUN = 2
GAME_STAGE_OVER = 3

GAME_PREPARE_TIME = 15 * 1000

# Stateless events
GIFT_EVENT = 1
MESSAGE_EVENT = 2
QA_EVENT = 3
FOLLOW_EVENT = 4

# Durations
HOUR = timedelta(seconds=3600)
DAY = HOUR * 24
MONTH = DAY * 30