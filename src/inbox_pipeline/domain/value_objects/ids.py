from __future__ import annotations

import uuid
from typing import NewType

ConversationId = NewType("ConversationId", int)
MessageId = NewType("MessageId", str)
CorrelationId = NewType("CorrelationId", str)


def new_correlation_id() -> CorrelationId:
    """Client-side temp id; also sent to the server as ``clientMessageId``."""
    return CorrelationId(f"tmp-{uuid.uuid4().hex}")
