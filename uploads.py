import base64
import logging
import os
import random
import time
from typing import Optional

from fastapi import APIRouter, File, HTTPException, UploadFile

import config

logger = logging.getLogger(__name__)

router = APIRouter(tags=["uploads"])


def unique_filename(original: str) -> str:
    suffix = f"{int(time.time() * 1000)}-{random.randint(0, 10**9)}"
    return f"{suffix}-{os.path.basename(original).replace(' ', '-')}"


def store_upload(filename: str, content: bytes, content_type: str) -> str:
    """Write to the upload directory, or inline the file when it isn't writable."""
    name = unique_filename(filename)
    try:
        os.makedirs(config.UPLOAD_DIR, exist_ok=True)
        with open(os.path.join(config.UPLOAD_DIR, name), "wb") as fh:
            fh.write(content)
    except OSError as exc:
        logger.warning("Upload dir %s not writable (%s), returning data URI", config.UPLOAD_DIR, exc)
        encoded = base64.b64encode(content).decode("ascii")
        return f"data:{content_type or 'application/octet-stream'};base64,{encoded}"
    return f"/uploads/{name}"


@router.post("/api/upload")
def upload(file: Optional[UploadFile] = File(None)):
    if file is None or not file.filename:
        raise HTTPException(status_code=400, detail="No file uploaded")
    url = store_upload(file.filename, file.file.read(), file.content_type)
    return {"url": url}
