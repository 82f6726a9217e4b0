from __future__ import annotations

import io
import logging
import uuid
from datetime import datetime
from functools import lru_cache
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from guardforce.settings import get_settings

logger = logging.getLogger("guardforce.storage")


class StorageError(Exception):
    pass


@lru_cache
def _s3_client() -> Any:
    settings = get_settings()
    return boto3.client(
        "s3",
        aws_access_key_id=settings.aws_access_key_id,
        aws_secret_access_key=settings.aws_secret_access_key,
        region_name=settings.aws_region,
    )


def attendance_image_key(
    *,
    action: str,
    guard_id: uuid.UUID,
    shift_id: uuid.UUID,
    taken_at_utc: datetime,
) -> str:
    return f"{action}/{guard_id}/{shift_id}/{taken_at_utc.strftime('%Y%m%d%H%M%S')}.jpg"


def upload_image(*, key: str, content: bytes, content_type: str) -> str:
    """Upload ``content`` and return a presigned GET URL for it."""
    settings = get_settings()
    client = _s3_client()
    try:
        client.upload_fileobj(
            io.BytesIO(content),
            settings.s3_bucket,
            key,
            ExtraArgs={"ContentType": content_type},
        )
        url = client.generate_presigned_url(
            "get_object",
            Params={"Bucket": settings.s3_bucket, "Key": key},
            ExpiresIn=settings.s3_presigned_url_minutes * 60,
        )
    except (ClientError, BotoCoreError) as exc:
        logger.warning(
            "image_upload_failed",
            extra={"key": key, "bucket": settings.s3_bucket, "error": str(exc)[:500]},
        )
        raise StorageError(f"Failed to upload {key}") from exc

    logger.info("image_uploaded", extra={"key": key, "bucket": settings.s3_bucket, "size": len(content)})
    return url
