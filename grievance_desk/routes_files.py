# Attachment endpoints: upload, list, download, preview, delete

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from fastapi.responses import FileResponse

from . import errors
from .attachments import AttachmentStorage
from .helpers import is_image
from .models import Attachment, AttachmentResponse, FileListResponse, MessageResponse, UploadResponse
from .routes_grievances import get_store
from .store import Store

logger = logging.getLogger(__name__)

def get_storage(request: Request) -> AttachmentStorage:
    return request.app.state.storage

def to_response(attachment: Attachment) -> AttachmentResponse:
    return AttachmentResponse(**attachment.model_dump())

async def _stored_attachment(file_id: str, store: Store, storage: AttachmentStorage) -> Attachment:
    attachment = await store.get_attachment(file_id)
    if attachment is None:
        raise errors.file_not_found()
    if not storage.exists(attachment):
        raise errors.ApiError(404, "File not found on disk", errors.FILE_NOT_ON_DISK)
    return attachment

def build_router() -> APIRouter:
    router = APIRouter()

    @router.post("/upload", response_model=UploadResponse)
    async def upload_files(files: List[UploadFile] = File(default=[]),
                           grievanceId: Optional[str] = Form(None),
                           description: str = Form(""),
                           store: Store = Depends(get_store),
                           storage: AttachmentStorage = Depends(get_storage)):
        try:
            saved = await storage.save(files, grievanceId, description)
        except errors.ApiError as e:
            logger.warning("Upload rejected (%s): %s", e.code, e.detail)
            raise
        except Exception as e:
            logger.error("Upload error: %s", e)
            raise errors.translate_exception(e)
        added: List[Attachment] = []
        try:
            for attachment in saved:
                await store.add_attachment(attachment)
                added.append(attachment)
        except Exception as e:
            logger.error("Upload error: %s", e)
            for attachment in added:
                await store.delete_attachment(attachment.id)
            for attachment in saved:
                storage.remove(attachment)
            raise errors.internal_error(e)
        return UploadResponse(files=[to_response(a) for a in saved])

    @router.get("/files/{grievance_id}", response_model=FileListResponse)
    async def list_files(grievance_id: str, store: Store = Depends(get_store)):
        try:
            attachments = await store.list_attachments(grievance_id)
        except Exception as e:
            logger.error("Get files error: %s", e)
            raise errors.internal_error(e)
        return FileListResponse(files=[to_response(a) for a in attachments])

    @router.get("/download/{file_id}")
    async def download_file(file_id: str, store: Store = Depends(get_store),
                            storage: AttachmentStorage = Depends(get_storage)):
        attachment = await _stored_attachment(file_id, store, storage)
        return FileResponse(attachment.path, media_type=attachment.content_type,
                            filename=attachment.original_name)

    @router.get("/preview/{file_id}")
    async def preview_file(file_id: str, store: Store = Depends(get_store),
                           storage: AttachmentStorage = Depends(get_storage)):
        attachment = await _stored_attachment(file_id, store, storage)
        if not is_image(attachment.content_type):
            raise errors.ApiError(400, "File is not an image", errors.NOT_AN_IMAGE)
        return FileResponse(attachment.path, media_type=attachment.content_type)

    @router.delete("/files/{file_id}", response_model=MessageResponse)
    async def delete_file(file_id: str, store: Store = Depends(get_store),
                          storage: AttachmentStorage = Depends(get_storage)):
        attachment = await store.get_attachment(file_id)
        if attachment is None:
            raise errors.file_not_found()
        try:
            storage.remove(attachment)
            await store.delete_attachment(file_id)
        except Exception as e:
            logger.error("Delete error: %s", e)
            raise errors.internal_error(e)
        logger.info("Deleted file %s (%s)", file_id, attachment.original_name)
        return MessageResponse(message="File deleted successfully")

    return router
