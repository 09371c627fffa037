from app.models.application import ApplicationRecord
from app.models.chat_message import ChatMessage
from app.models.query_group import QueryGroup, QueryItem
from app.models.sanctioned_application import SanctionedApplication

__all__ = [
    "ApplicationRecord",
    "ChatMessage",
    "QueryGroup",
    "QueryItem",
    "SanctionedApplication",
]
