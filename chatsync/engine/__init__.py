"""chatsync engine: resumable conversation sync over an HTTP polling bot API."""
from .models import (
    Activity,
    Author,
    ConversationSnapshot,
    Flag,
    FlowState,
    Message,
    PollResult,
    SendResult,
)
from .config import SyncConfig
from .retry import RetryPolicy
from .errors import (
    AmbiguousDeliveryError,
    ChatSyncError,
    MalformedResponseError,
    ResponseStatusError,
    RetryExhaustedError,
    TransportError,
)
