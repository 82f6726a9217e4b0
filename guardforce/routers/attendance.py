from typing import Any

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from sqlalchemy.orm import Session

from guardforce.db import get_attendance_db
from guardforce.errors import WorkflowRejected, rejection_response
from guardforce.schemas import FaceRegisterRequest
from guardforce.services.attendance import (
    ImageUpload,
    check_in_guard,
    check_out_guard,
    parse_guid,
    rejection_data,
)
from guardforce.services.face_registration import (
    PoseImage,
    pose_images_from_files,
    register_guard_face,
)
from guardforce.settings import get_settings

router = APIRouter(prefix="/api/attendances", tags=["attendances"])


def _read_upload(upload: UploadFile | None) -> ImageUpload | None:
    if upload is None:
        return None
    # One byte past the limit is enough to reject oversized files.
    content = upload.file.read(get_settings().max_image_size_bytes + 1)
    return ImageUpload(
        content=content,
        content_type=(upload.content_type or "").strip().lower(),
        filename=upload.filename,
    )


def _parse_float(raw: str | None, *, field_name: str, required: bool) -> float | None:
    value = (raw or "").strip()
    if not value:
        if required:
            raise WorkflowRejected(f"{field_name} is required.")
        return None
    try:
        return float(value)
    except ValueError as exc:
        raise WorkflowRejected(f"{field_name} must be a number.") from exc


def _success_payload(data: dict[str, Any], message: str | None) -> dict[str, Any]:
    return {"success": True, "data": data, "message": message}


@router.post("/check-in")
def check_in(
    request: Request,
    guard_id: str = Form("", alias="guardId"),
    shift_assignment_id: str = Form("", alias="shiftAssignmentId"),
    shift_id: str = Form("", alias="shiftId"),
    latitude: str = Form("", alias="checkInLatitude"),
    longitude: str = Form("", alias="checkInLongitude"),
    accuracy: str | None = Form(None, alias="checkInLocationAccuracy"),
    image: UploadFile | None = File(None, alias="checkInImage"),
    db: Session = Depends(get_attendance_db),
) -> Any:
    try:
        parsed_latitude = _parse_float(latitude, field_name="checkInLatitude", required=True)
        parsed_longitude = _parse_float(longitude, field_name="checkInLongitude", required=True)
        parsed_accuracy = _parse_float(accuracy, field_name="checkInLocationAccuracy", required=False)
    except WorkflowRejected as exc:
        return rejection_response(exc.message, data=exc.data)

    result = check_in_guard(
        db,
        guard_id=parse_guid(guard_id),
        shift_assignment_id=parse_guid(shift_assignment_id),
        shift_id=parse_guid(shift_id),
        image=_read_upload(image),
        latitude=parsed_latitude,
        longitude=parsed_longitude,
        accuracy=parsed_accuracy,
    )
    request.state.guard_id = guard_id
    request.state.attendance_record_id = str(result.attendance_record_id) if result.attendance_record_id else None
    if not result.success:
        return rejection_response(
            result.error_message or "Check-in failed.",
            data=rejection_data(result.face_match_score, result.distance_from_site),
        )
    return _success_payload(result.to_dict(), result.message)


@router.post("/check-out")
def check_out(
    request: Request,
    guard_id: str = Form("", alias="guardId"),
    shift_assignment_id: str = Form("", alias="shiftAssignmentId"),
    shift_id: str = Form("", alias="shiftId"),
    latitude: str = Form("", alias="checkOutLatitude"),
    longitude: str = Form("", alias="checkOutLongitude"),
    accuracy: str | None = Form(None, alias="checkOutLocationAccuracy"),
    image: UploadFile | None = File(None, alias="checkOutImage"),
    db: Session = Depends(get_attendance_db),
) -> Any:
    try:
        parsed_latitude = _parse_float(latitude, field_name="checkOutLatitude", required=True)
        parsed_longitude = _parse_float(longitude, field_name="checkOutLongitude", required=True)
        parsed_accuracy = _parse_float(accuracy, field_name="checkOutLocationAccuracy", required=False)
    except WorkflowRejected as exc:
        return rejection_response(exc.message, data=exc.data)

    result = check_out_guard(
        db,
        guard_id=parse_guid(guard_id),
        shift_assignment_id=parse_guid(shift_assignment_id),
        shift_id=parse_guid(shift_id),
        image=_read_upload(image),
        latitude=parsed_latitude,
        longitude=parsed_longitude,
        accuracy=parsed_accuracy,
    )
    request.state.guard_id = guard_id
    request.state.attendance_record_id = str(result.attendance_record_id) if result.attendance_record_id else None
    if not result.success:
        return rejection_response(
            result.error_message or "Check-out failed.",
            data=rejection_data(result.face_match_score, result.distance_from_site),
        )
    return _success_payload(result.to_dict(), result.message)


@router.post("/faces/register")
def register_face_json(
    payload: FaceRegisterRequest,
    db: Session = Depends(get_attendance_db),
) -> Any:
    result = register_guard_face(
        db,
        guard_id=payload.guard_id,
        employee_code=payload.employee_code,
        images=[
            PoseImage(pose_type=item.pose_type, image_base64=item.image_base64, angle=item.angle)
            for item in payload.images
        ],
    )
    if not result.success:
        return rejection_response(result.error_message or "Face registration failed.", data=result.to_dict())
    return _success_payload(result.to_dict(), result.message)


@router.post("/faces/register-with-files")
def register_face_files(
    guard_id: str = Form("", alias="guardId"),
    employee_code: str | None = Form(None, alias="employeeCode"),
    image_front: UploadFile | None = File(None),
    image_left: UploadFile | None = File(None),
    image_right: UploadFile | None = File(None),
    image_up: UploadFile | None = File(None),
    image_down: UploadFile | None = File(None),
    image_smile: UploadFile | None = File(None),
    db: Session = Depends(get_attendance_db),
) -> Any:
    parsed_guard_id = parse_guid(guard_id)
    if parsed_guard_id is None:
        return rejection_response("guardId is required and must be a valid GUID.")

    images, image_error = pose_images_from_files(
        {
            "front": _read_upload(image_front),
            "left": _read_upload(image_left),
            "right": _read_upload(image_right),
            "up": _read_upload(image_up),
            "down": _read_upload(image_down),
            "smile": _read_upload(image_smile),
        }
    )
    if image_error:
        return rejection_response(image_error)

    result = register_guard_face(db, guard_id=parsed_guard_id, employee_code=employee_code, images=images)
    if not result.success:
        return rejection_response(result.error_message or "Face registration failed.", data=result.to_dict())
    return _success_payload(result.to_dict(), result.message)
