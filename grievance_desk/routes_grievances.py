# Grievance CRUD endpoints, mounted under both /grievances and /feedback

import logging
from typing import List

from fastapi import APIRouter, Depends, Request, status

from . import errors
from .models import (Grievance, GrievanceCreate, GrievanceEnvelope, GrievanceStatistics,
                     GrievanceStatus, StatusUpdate)
from .store import Store

logger = logging.getLogger(__name__)

VALID_STATUSES = [s.value for s in GrievanceStatus]

def get_store(request: Request) -> Store:
    return request.app.state.store

def build_router() -> APIRouter:
    router = APIRouter()

    async def submit_grievance(data: GrievanceCreate, store: Store = Depends(get_store)):
        try:
            grievance = await store.create(data)
        except Exception as e:
            logger.error("Error submitting grievance: %s", e)
            raise errors.internal_error(e)
        logger.info("Grievance %s submitted (%s)", grievance.id, grievance.reference_id)
        return GrievanceEnvelope(message="Grievance submitted successfully!", data=grievance)

    # POST / and POST /submit are the same operation
    for path in ("", "/submit"):
        router.add_api_route(path, submit_grievance, methods=["POST"],
                             response_model=GrievanceEnvelope,
                             status_code=status.HTTP_201_CREATED)

    # Query parameters (status, category, ...) are accepted and ignored
    @router.get("", response_model=List[Grievance])
    async def list_grievances(store: Store = Depends(get_store)):
        try:
            return await store.list()
        except Exception as e:
            logger.error("Error fetching grievances: %s", e)
            raise errors.internal_error(e)

    @router.get("/statistics", response_model=GrievanceStatistics)
    async def grievance_statistics(store: Store = Depends(get_store)):
        try:
            return await store.statistics()
        except Exception as e:
            logger.error("Error computing statistics: %s", e)
            raise errors.internal_error(e)

    @router.get("/{grievance_id}", response_model=Grievance)
    async def get_grievance(grievance_id: str, store: Store = Depends(get_store)):
        try:
            grievance = await store.get(grievance_id)
        except Exception as e:
            logger.error("Error fetching grievance: %s", e)
            raise errors.internal_error(e)
        if grievance is None:
            raise errors.grievance_not_found()
        return grievance

    @router.api_route("/{grievance_id}/status", methods=["PUT", "PATCH"],
                      response_model=GrievanceEnvelope)
    async def update_status(grievance_id: str, update: StatusUpdate,
                            store: Store = Depends(get_store)):
        if update.status not in VALID_STATUSES:
            raise errors.ApiError(400, f"Invalid status. Expected one of: {', '.join(VALID_STATUSES)}",
                                  errors.INVALID_STATUS)
        try:
            grievance = await store.update_status(grievance_id, update.status)
        except Exception as e:
            logger.error("Error updating grievance status: %s", e)
            raise errors.internal_error(e)
        if grievance is None:
            raise errors.grievance_not_found()
        logger.info("Grievance %s -> %s", grievance_id, update.status)
        return GrievanceEnvelope(message="Grievance status updated successfully!", data=grievance)

    return router
