"""
Pydantic models for AirTrack.

All data shapes defined here. No imports from db, repos, or routes.
"""

from backend.models.chat import (
    ChatMessage,
    CreateRoomRequest,
    RoomResponse,
    RoomSummary,
    SendChatMessageRequest,
)
from backend.models.gateway import (
    FormErrors,
    GatewayFailure,
    GatewayProtocolError,
    GatewaySuccess,
    parse_gateway_result,
)
from backend.models.notification import Actor, Notification, NotificationFeedResponse
from backend.models.records import (
    AccidentIncidentForm,
    CcefodForm,
    GapAnalysisForm,
    GlossaryForm,
    PqForm,
    RecordForm,
)
from backend.models.session import SessionContext

__all__ = [
    # Session
    "SessionContext",
    # Record forms
    "RecordForm",
    "GlossaryForm",
    "CcefodForm",
    "PqForm",
    "GapAnalysisForm",
    "AccidentIncidentForm",
    # Gateway results
    "GatewaySuccess",
    "GatewayFailure",
    "GatewayProtocolError",
    "FormErrors",
    "parse_gateway_result",
    # Chat
    "ChatMessage",
    "CreateRoomRequest",
    "RoomResponse",
    "RoomSummary",
    "SendChatMessageRequest",
    # Notifications
    "Actor",
    "Notification",
    "NotificationFeedResponse",
]
