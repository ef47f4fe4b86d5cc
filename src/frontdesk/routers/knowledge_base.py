from fastapi import APIRouter, HTTPException, Depends
from typing import Optional
import logging

from frontdesk.models.schemas import KBEntry, Provenance, SearchBody
from frontdesk.services import KnowledgeBaseService, KnowledgeMatcher
from frontdesk.core.dependencies import get_knowledge_base_service, get_knowledge_matcher

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/knowledge-base",
    tags=["Knowledge Base"]
)


@router.get("/")
async def get_knowledge_base(
    limit: int = 50,
    category: Optional[str] = None,
    active_only: bool = True,
    service: KnowledgeBaseService = Depends(get_knowledge_base_service)
):
    """Get learned answers, newest first"""
    try:
        answers = service.get_all_learned_answers(limit=limit, category=category, active_only=active_only)
        return {
            "success": True,
            "count": len(answers),
            "answers": answers
        }
    except Exception as e:
        logger.error(f"Error fetching knowledge base: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/stats")
async def get_knowledge_stats(service: KnowledgeBaseService = Depends(get_knowledge_base_service)):
    """Entry and usage counts per category"""
    try:
        return {
            "success": True,
            "categories": service.get_category_stats()
        }
    except Exception as e:
        logger.error(f"Error fetching knowledge stats: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/", status_code=201)
async def add_to_knowledge_base(entry: KBEntry, service: KnowledgeBaseService = Depends(get_knowledge_base_service)):
    """Manually add entry to knowledge base"""
    try:
        created = await service.add_answer(
            question=entry.question,
            answer=entry.answer,
            provenance=Provenance.MANUAL,
            category=entry.category
        )
        return {
            "success": True,
            "message": "Entry added to knowledge base",
            "entry": created
        }
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error adding to knowledge base: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/search")
async def search_knowledge_base(body: SearchBody, matcher: KnowledgeMatcher = Depends(get_knowledge_matcher)):
    """Run the matcher for a question (counts as a usage on a hit)"""
    try:
        entry = await matcher.match(body.question)
        return {
            "success": True,
            "found": entry is not None,
            "answer": entry
        }
    except Exception as e:
        logger.error(f"Error searching knowledge base: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.delete("/{kb_id}")
async def deactivate_knowledge_entry(kb_id: int, service: KnowledgeBaseService = Depends(get_knowledge_base_service)):
    """Deactivate entry; it stays stored but is no longer matched"""
    try:
        changed = service.deactivate_answer(kb_id)
    except Exception as e:
        logger.error(f"Error deactivating KB entry {kb_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    if not changed:
        raise HTTPException(status_code=404, detail="Entry not found")
    return {
        "success": True,
        "message": "Entry deactivated"
    }
