from frontdesk.services.knowledge_base import KnowledgeBaseService
from frontdesk.services.help_request import HelpRequestService
from frontdesk.services.inference import InferenceProvider, OpenAIInferenceProvider
from frontdesk.services.matcher import KnowledgeMatcher
from frontdesk.services.escalation import EscalationPolicy
from frontdesk.services.session import SessionManager, SessionStore
from .config import settings, require_openai_key

# Singleton instances (initialized once)
_kb_service = None
_help_request_service = None
_inference = None
_matcher = None
_session_manager = None


def get_knowledge_base_service() -> KnowledgeBaseService:
    """
    Dependency for knowledge base service
    Returns singleton instance
    """
    global _kb_service
    if _kb_service is None:
        _kb_service = KnowledgeBaseService(db_path=settings.database_path)
        if settings.seed_initial_knowledge:
            _kb_service.seed_initial_knowledge()
    return _kb_service


def get_help_request_service() -> HelpRequestService:
    """
    Dependency for help request service
    Shares the knowledge base so resolutions can write back in one transaction
    """
    global _help_request_service
    if _help_request_service is None:
        _help_request_service = HelpRequestService(kb=get_knowledge_base_service())
    return _help_request_service


def get_inference_provider() -> InferenceProvider:
    global _inference
    if _inference is None:
        _inference = OpenAIInferenceProvider(
            api_key=require_openai_key(),
            model=settings.openai_model,
            timeout_seconds=settings.inference_timeout_seconds,
        )
    return _inference


def get_knowledge_matcher() -> KnowledgeMatcher:
    global _matcher
    if _matcher is None:
        _matcher = KnowledgeMatcher(get_knowledge_base_service(), get_inference_provider())
    return _matcher


def get_session_manager() -> SessionManager:
    """
    Dependency for the conversation engine
    Owns the process-wide session store
    """
    global _session_manager
    if _session_manager is None:
        inference = get_inference_provider()
        _session_manager = SessionManager(
            store=SessionStore(),
            matcher=get_knowledge_matcher(),
            policy=EscalationPolicy(inference),
            help_requests=get_help_request_service(),
            inference=inference,
            business_name=settings.business_name,
        )
    return _session_manager
