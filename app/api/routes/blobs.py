from urllib.parse import quote

from fastapi import APIRouter, Query, Request
from fastapi.responses import Response

from app.api.deps import BlobStoreDep, OwnerDep, SettingsDep
from app.core.exceptions import (
    BlobNotFoundException,
    ConversionFailedException,
    FileTooLargeException,
)
from app.models import BlobStoredResponse, UploadUrlResponse
from app.services.blob_store import LocalBlobStore
from app.utils.file_validator import (
    extension_for,
    sanitize_filename,
    sniff_content_type,
    validate_upload,
)

router = APIRouter()


def _download_filename(blob_id: str, media_type: str, name: str | None) -> str:
    """다운로드 파일명 (요청한 이름 우선, 확장자 보정)"""
    extension = extension_for(media_type)
    if not name:
        return f"{blob_id}{extension}"

    filename = sanitize_filename(name)
    if extension and not filename.lower().endswith(extension):
        filename += extension
    return filename


def _get_content_disposition(filename: str) -> str:
    """Content-Disposition 헤더 생성 (비 ASCII 파일명 지원)"""
    # RFC 5987 인코딩
    encoded_filename = quote(filename)
    return f"attachment; filename*=UTF-8''{encoded_filename}"


@router.post("/blobs/upload-url", response_model=UploadUrlResponse)
async def generate_upload_url(owner: OwnerDep, blob_store: BlobStoreDep):
    """
    업로드 URL 발급

    반환된 `upload_url`로 파일을 PUT 업로드한 뒤 `blob_id`를 작업 생성에 사용합니다.
    """
    blob_id, upload_url = await blob_store.generate_upload_url()
    return UploadUrlResponse(blob_id=blob_id, upload_url=upload_url)


@router.put("/blobs/{blob_id}", response_model=BlobStoredResponse)
async def upload_blob(
    blob_id: str,
    request: Request,
    blob_store: BlobStoreDep,
    settings: SettingsDep,
):
    """
    발급된 URL로 파일 업로드 (로컬 저장소 전용)

    - 본문: 파일 바이트 (PDF 또는 이미지)
    """
    if not isinstance(blob_store, LocalBlobStore) or not blob_store.is_pending_upload(blob_id):
        raise BlobNotFoundException(blob_id)

    content_length = request.headers.get("content-length")
    if content_length and content_length.isdigit():
        if int(content_length) > settings.MAX_FILE_SIZE_BYTES:
            raise FileTooLargeException(settings.MAX_FILE_SIZE_MB)

    data = await request.body()

    is_valid, error_msg = validate_upload(data, settings.MAX_FILE_SIZE_BYTES)
    if not is_valid:
        if len(data) > settings.MAX_FILE_SIZE_BYTES:
            raise FileTooLargeException(settings.MAX_FILE_SIZE_MB)
        raise ConversionFailedException(error_msg)

    try:
        await blob_store.complete_upload(blob_id, data, sniff_content_type(data))
    except KeyError:
        raise BlobNotFoundException(blob_id)

    return BlobStoredResponse(blob_id=blob_id, size_bytes=len(data))


@router.get("/blobs/{blob_id}")
async def download_blob(
    blob_id: str,
    blob_store: BlobStoreDep,
    name: str | None = Query(default=None, max_length=255, description="다운로드 파일명"),
):
    """
    파일 다운로드 (로컬 저장소 전용)

    - **blob_id**: 블롭 ID
    - **name**: 다운로드 파일명 (작업 결과 URL에 포함됨)
    """
    if not isinstance(blob_store, LocalBlobStore):
        raise BlobNotFoundException(blob_id)

    data = await blob_store.read(blob_id)
    if data is None:
        raise BlobNotFoundException(blob_id)

    media_type = await blob_store.content_type(blob_id)
    filename = _download_filename(blob_id, media_type, name)

    return Response(
        content=data,
        media_type=media_type,
        headers={"Content-Disposition": _get_content_disposition(filename)},
    )
