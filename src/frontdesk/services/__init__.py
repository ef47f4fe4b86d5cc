from .knowledge_base import KnowledgeBaseService, extract_keywords
from .help_request import HelpRequestService
from .inference import InferenceProvider, InferenceResult, Message, OpenAIInferenceProvider
from .matcher import KnowledgeMatcher
from .escalation import EscalationPolicy
from .session import SessionManager, SessionStore

__all__ = [
    "KnowledgeBaseService",
    "extract_keywords",
    "HelpRequestService",
    "InferenceProvider",
    "InferenceResult",
    "Message",
    "OpenAIInferenceProvider",
    "KnowledgeMatcher",
    "EscalationPolicy",
    "SessionManager",
    "SessionStore",
]
