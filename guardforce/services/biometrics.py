from __future__ import annotations

import base64
import json
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any
from urllib import error as urllib_error
from urllib import request as urllib_request

from guardforce.settings import get_face_api_url, get_settings

logger = logging.getLogger("guardforce.biometrics")

VERIFY_PATH = "/api/v1/faces/verify"
REGISTER_PATH = "/api/v1/faces/register"


@dataclass(frozen=True, slots=True)
class FaceVerification:
    is_match: bool
    confidence: float
    face_detected: bool
    face_quality: float
    message: str | None = None


@dataclass(frozen=True, slots=True)
class FaceRegistration:
    success: bool
    template_url: str | None
    average_quality: float
    quality_scores: dict[str, float] = field(default_factory=dict)
    message: str | None = None


def _api_headers() -> dict[str, str]:
    api_key = (get_settings().face_api_key or "").strip()
    if not api_key:
        return {}
    return {"X-API-Key": api_key}


def _post_json(
    *,
    url: str,
    payload: dict[str, Any],
    timeout_seconds: int,
    headers: dict[str, str] | None = None,
) -> dict[str, Any]:
    body = json.dumps(payload).encode("utf-8")
    request = urllib_request.Request(
        url=url,
        data=body,
        method="POST",
        headers={"Content-Type": "application/json", "Accept": "application/json"},
    )
    for key, value in (headers or {}).items():
        normalized_key = str(key or "").strip()
        normalized_value = str(value or "").strip()
        if normalized_key and normalized_value:
            request.add_header(normalized_key, normalized_value)

    try:
        with urllib_request.urlopen(request, timeout=max(1, timeout_seconds)) as response:
            status_code = int(getattr(response, "status", 200) or 200)
            raw_body = response.read().decode("utf-8", errors="ignore")
    except urllib_error.HTTPError as exc:
        error_body = exc.read(512).decode("utf-8", errors="ignore")
        return {"ok": False, "status_code": int(exc.code), "body": None, "error": error_body or str(exc)}
    except Exception as exc:  # network errors and timeouts
        return {"ok": False, "status_code": None, "body": None, "error": str(exc)}

    if not 200 <= status_code < 300:
        return {"ok": False, "status_code": status_code, "body": None, "error": raw_body[:512]}
    try:
        parsed = json.loads(raw_body) if raw_body else {}
    except ValueError:
        return {"ok": False, "status_code": status_code, "body": None, "error": "invalid_json_response"}
    if not isinstance(parsed, dict):
        return {"ok": False, "status_code": status_code, "body": None, "error": "unexpected_response_shape"}
    return {"ok": True, "status_code": status_code, "body": parsed, "error": None}


def _as_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def verify_face(
    *,
    guard_id: uuid.UUID,
    image_bytes: bytes,
    template_url: str,
    event_type: str,
) -> FaceVerification | None:
    """Ask the face-recognition service whether the probe matches the template.

    Returns ``None`` when the service cannot be reached or answers with a
    non-success status; callers treat that as a failed verification.
    """
    settings = get_settings()
    result = _post_json(
        url=get_face_api_url(VERIFY_PATH),
        payload={
            "guard_id": str(guard_id),
            "check_image_base64": base64.b64encode(image_bytes).decode("ascii"),
            "template_url": template_url,
            "event_type": event_type,
        },
        timeout_seconds=settings.face_api_timeout_seconds,
        headers=_api_headers(),
    )
    if not result["ok"]:
        logger.warning(
            "face_verify_request_failed",
            extra={
                "guard_id": str(guard_id),
                "event_type": event_type,
                "status_code": result["status_code"],
                "error": str(result["error"])[:500],
            },
        )
        return None

    body = result["body"]
    return FaceVerification(
        is_match=bool(body.get("is_match")),
        confidence=_as_float(body.get("confidence")),
        face_detected=bool(body.get("face_detected")),
        face_quality=_as_float(body.get("face_quality")),
        message=body.get("message"),
    )


def verification_rejection(verification: FaceVerification) -> str | None:
    settings = get_settings()
    if not verification.face_detected:
        return "No face detected in the image. Please retake the photo."
    if verification.face_quality < settings.min_face_quality:
        return (
            f"Face quality too low ({verification.face_quality:.1f}/100, "
            f"minimum {settings.min_face_quality:.0f}). Please retake the photo with better lighting."
        )
    if not verification.is_match or verification.confidence < settings.min_face_match_confidence:
        return (
            f"Face verification failed. Confidence: {verification.confidence:.1f}% "
            f"(minimum {settings.min_face_match_confidence:.0f}%)."
        )
    return None


def register_face(
    *,
    guard_id: uuid.UUID,
    employee_code: str | None,
    images: list[dict[str, Any]],
) -> FaceRegistration | None:
    settings = get_settings()
    result = _post_json(
        url=get_face_api_url(REGISTER_PATH),
        payload={
            "guard_id": str(guard_id),
            "employee_code": employee_code or "",
            "images": images,
        },
        timeout_seconds=settings.face_api_timeout_seconds,
        headers=_api_headers(),
    )
    if not result["ok"]:
        logger.warning(
            "face_register_request_failed",
            extra={
                "guard_id": str(guard_id),
                "status_code": result["status_code"],
                "error": str(result["error"])[:500],
            },
        )
        return None

    body = result["body"]
    raw_scores = body.get("quality_scores") or {}
    quality_scores = (
        {str(key): _as_float(value) for key, value in raw_scores.items()}
        if isinstance(raw_scores, dict)
        else {}
    )
    return FaceRegistration(
        success=bool(body.get("success")),
        template_url=body.get("template_url"),
        average_quality=_as_float(body.get("average_quality")),
        quality_scores=quality_scores,
        message=body.get("message"),
    )
