from tiaen.models.automation_rule import AutomationExecution, AutomationRule
from tiaen.models.contact import Contact
from tiaen.models.conversation import Conversation
from tiaen.models.gateway_instance import GatewayInstance
from tiaen.models.knowledge_entry import KnowledgeEntry
from tiaen.models.message import Message
from tiaen.models.rag_query_log import RagQueryLog

__all__ = [
    "Contact",
    "Conversation",
    "Message",
    "AutomationRule",
    "AutomationExecution",
    "KnowledgeEntry",
    "RagQueryLog",
    "GatewayInstance",
]
