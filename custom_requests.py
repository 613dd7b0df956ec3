"""Custom product requests: a write-once record plus a confirmation email sent by the route."""

import logging
from typing import Optional

from pydantic import ValidationError as SchemaError
from pymongo.database import Database

from database import create_document
from errors import schema_error
from schemas import CustomRequest
from storage import BlobStore, UploadedFile

logger = logging.getLogger(__name__)

REQUEST_FOLDER = "requests"


def submit_request(db: Database, blobs: BlobStore, fields: dict, image: Optional[UploadedFile] = None) -> str:
    try:
        request = CustomRequest(**fields)
    except SchemaError as e:
        raise schema_error(e)
    if image is not None:
        request.image = blobs.upload(image.data, image.filename, REQUEST_FOLDER)
    request_id = create_document("customrequest", request, using=db)
    logger.info("Custom request %s stored for %s", request_id, request.email)
    return request_id
