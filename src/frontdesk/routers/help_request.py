"""
Help Request Router
Supervisor-facing endpoints: read pending/all requests and stats, resolve one
"""

from fastapi import APIRouter, HTTPException, Depends
from typing import Optional
import logging

from frontdesk.core.dependencies import get_help_request_service
from frontdesk.core.exceptions import HelpRequestNotFound, InvalidTransition
from frontdesk.models.schemas import RequestStatus, ResolveRequestBody
from frontdesk.services.help_request import HelpRequestService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/help-requests",
    tags=["Help Requests"]
)


@router.get("/", response_model=dict)
async def get_all_requests(
    status: Optional[RequestStatus] = None,
    limit: int = 100,
    service: HelpRequestService = Depends(get_help_request_service)
):
    """Get all help requests, optionally filtered by status"""
    try:
        requests = service.get_all_requests(status, limit=limit)
        return {
            "success": True,
            "count": len(requests),
            "requests": requests
        }
    except Exception as e:
        logger.error(f"Error fetching requests: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/pending", response_model=dict)
async def get_pending_requests(
    service: HelpRequestService = Depends(get_help_request_service)
):
    """Get all pending help requests"""
    try:
        requests = service.get_pending_requests()
        return {
            "success": True,
            "count": len(requests),
            "requests": requests
        }
    except Exception as e:
        logger.error(f"Error fetching pending requests: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/stats", response_model=dict)
async def get_stats(
    service: HelpRequestService = Depends(get_help_request_service)
):
    """Get statistics about help requests"""
    try:
        return {
            "success": True,
            "stats": service.get_stats()
        }
    except Exception as e:
        logger.error(f"Error fetching stats: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/{request_id}", response_model=dict)
async def get_request_details(
    request_id: int,
    service: HelpRequestService = Depends(get_help_request_service)
):
    """Get details of specific help request"""
    try:
        request = service.get_request(request_id)
    except Exception as e:
        logger.error(f"Error fetching request {request_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    if not request:
        raise HTTPException(status_code=404, detail="Request not found")
    return {
        "success": True,
        "request": request
    }


@router.post("/{request_id}/resolve", response_model=dict)
async def resolve_request(
    request_id: int,
    body: ResolveRequestBody,
    service: HelpRequestService = Depends(get_help_request_service)
):
    """
    Supervisor resolves a help request
    This triggers:
    1. Status moves to RESOLVED or UNRESOLVED
    2. If resolved, the answer is added to the knowledge base
    3. If resolved, the customer is followed up with
    """
    try:
        request = await service.resolve_request(
            request_id=request_id,
            supervisor_response=body.supervisor_response,
            supervisor_name=body.supervisor_name,
            resolved=body.resolved
        )
        return {
            "success": True,
            "message": f"Request marked {request.status.value.lower()}",
            "request": request
        }
    except HelpRequestNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error resolving request {request_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))
