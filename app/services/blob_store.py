"""블롭 저장소 (로컬 디스크 / S3 호환)"""

import asyncio
import logging
import re
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, List, Optional, Tuple
from urllib.parse import quote, urlencode

import aiofiles
import boto3
from botocore.exceptions import ClientError

from app.core.config import Settings, settings
from app.utils.file_validator import sniff_content_type

logger = logging.getLogger(__name__)

# 블롭 ID 형식 (경로 탈출 방지)
BLOB_ID_PATTERN = re.compile(r"^[0-9a-f]{32}$")

DEFAULT_CONTENT_TYPE = "application/octet-stream"


def new_blob_id() -> str:
    return uuid.uuid4().hex


def is_valid_blob_id(blob_id: str) -> bool:
    return bool(blob_id) and bool(BLOB_ID_PATTERN.match(blob_id))


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BlobStore(ABC):
    """블롭 저장소 인터페이스"""

    @abstractmethod
    async def generate_upload_url(self) -> Tuple[str, str]:
        """업로드용 (블롭 ID, URL) 발급"""

    @abstractmethod
    async def get_url(self, blob_id: str, filename: Optional[str] = None) -> Optional[str]:
        """다운로드 URL 반환 (없으면 None, filename은 다운로드 파일명)"""

    @abstractmethod
    async def store(self, data: bytes, content_type: str = DEFAULT_CONTENT_TYPE) -> str:
        """바이트 저장 후 블롭 ID 반환"""

    @abstractmethod
    async def read(self, blob_id: str) -> Optional[bytes]:
        """블롭 내용 반환 (없으면 None)"""

    @abstractmethod
    async def exists(self, blob_id: str) -> bool:
        pass

    @abstractmethod
    async def delete(self, blob_id: str) -> bool:
        """블롭 삭제 (삭제 여부 반환)"""

    @abstractmethod
    async def list_blobs(self) -> List[Tuple[str, datetime]]:
        """저장된 (블롭 ID, 마지막 수정 시각) 목록"""

    async def content_type(self, blob_id: str) -> str:
        return DEFAULT_CONTENT_TYPE

    async def prune_pending_uploads(self, now: Optional[datetime] = None) -> int:
        """만료된 업로드 URL 발급 기록 정리 (정리한 수 반환)"""
        return 0


class LocalBlobStore(BlobStore):
    """
    로컬 디스크 블롭 저장소

    - BLOB_DIR 아래 블롭 ID 이름으로 저장
    - /api/blobs/{blob_id} 경로로 업로드(PUT)/다운로드(GET)
    """

    def __init__(
        self,
        blob_dir: Optional[Path] = None,
        public_base_url: Optional[str] = None,
        upload_url_ttl: Optional[timedelta] = None,
    ):
        self.blob_dir = blob_dir or settings.BLOB_DIR
        self.public_base_url = (public_base_url or settings.PUBLIC_BASE_URL).rstrip("/")
        self.upload_url_ttl = upload_url_ttl or timedelta(
            seconds=settings.BLOB_URL_EXPIRES_SECONDS
        )
        self.blob_dir.mkdir(parents=True, exist_ok=True)

        self._content_types: Dict[str, str] = {}
        # 블롭 ID -> 업로드 URL 발급 시각
        self._pending_uploads: Dict[str, datetime] = {}

    def _path(self, blob_id: str) -> Path:
        if not is_valid_blob_id(blob_id):
            raise ValueError(f"잘못된 블롭 ID입니다: {blob_id}")
        return self.blob_dir / blob_id

    def _url(self, blob_id: str) -> str:
        return f"{self.public_base_url}/api/blobs/{blob_id}"

    async def generate_upload_url(self) -> Tuple[str, str]:
        blob_id = new_blob_id()
        self._pending_uploads[blob_id] = _utcnow()
        return blob_id, self._url(blob_id)

    def is_pending_upload(self, blob_id: str, now: Optional[datetime] = None) -> bool:
        """발급 후 만료되지 않은 업로드 URL인지"""
        issued_at = self._pending_uploads.get(blob_id)
        if issued_at is None:
            return False
        return (now or _utcnow()) - issued_at <= self.upload_url_ttl

    async def prune_pending_uploads(self, now: Optional[datetime] = None) -> int:
        now = now or _utcnow()
        stale = [
            blob_id
            for blob_id in self._pending_uploads
            if not self.is_pending_upload(blob_id, now)
        ]
        for blob_id in stale:
            del self._pending_uploads[blob_id]

        if stale:
            logger.info(f"만료된 업로드 URL {len(stale)}개 정리")
        return len(stale)

    async def complete_upload(
        self, blob_id: str, data: bytes, content_type: str = DEFAULT_CONTENT_TYPE
    ) -> None:
        """
        발급된 업로드 URL로 들어온 파일 저장

        Raises:
            KeyError: 발급되지 않았거나 이미 사용된 블롭 ID
        """
        if not self.is_pending_upload(blob_id):
            raise KeyError(blob_id)

        await self._write(blob_id, data, content_type)
        self._pending_uploads.pop(blob_id, None)

    async def _write(self, blob_id: str, data: bytes, content_type: str) -> None:
        path = self._path(blob_id)
        async with aiofiles.open(path, "wb") as f:
            await f.write(data)
        self._content_types[blob_id] = content_type

    async def get_url(self, blob_id: str, filename: Optional[str] = None) -> Optional[str]:
        if not await self.exists(blob_id):
            return None
        if filename:
            return f"{self._url(blob_id)}?{urlencode({'name': filename})}"
        return self._url(blob_id)

    async def store(self, data: bytes, content_type: str = DEFAULT_CONTENT_TYPE) -> str:
        blob_id = new_blob_id()
        await self._write(blob_id, data, content_type)
        logger.debug(f"블롭 저장: {blob_id} ({len(data)} bytes)")
        return blob_id

    async def read(self, blob_id: str) -> Optional[bytes]:
        if not await self.exists(blob_id):
            return None
        async with aiofiles.open(self._path(blob_id), "rb") as f:
            return await f.read()

    async def exists(self, blob_id: str) -> bool:
        if not is_valid_blob_id(blob_id):
            return False
        return self._path(blob_id).is_file()

    async def delete(self, blob_id: str) -> bool:
        self._pending_uploads.pop(blob_id, None)
        self._content_types.pop(blob_id, None)
        if not await self.exists(blob_id):
            return False
        self._path(blob_id).unlink(missing_ok=True)
        return True

    async def list_blobs(self) -> List[Tuple[str, datetime]]:
        blobs = []
        for path in self.blob_dir.iterdir():
            if path.is_file() and is_valid_blob_id(path.name):
                modified = datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)
                blobs.append((path.name, modified))
        return blobs

    async def content_type(self, blob_id: str) -> str:
        if blob_id in self._content_types:
            return self._content_types[blob_id]
        if not await self.exists(blob_id):
            return DEFAULT_CONTENT_TYPE

        # 재시작 후에는 파일 시그니처로 판별
        async with aiofiles.open(self._path(blob_id), "rb") as f:
            header = await f.read(16)
        content_type = sniff_content_type(header) or DEFAULT_CONTENT_TYPE
        self._content_types[blob_id] = content_type
        return content_type


class S3BlobStore(BlobStore):
    """S3 호환 블롭 저장소 (AWS S3 / Cloudflare R2, presigned URL 사용)"""

    KEY_PREFIX = "blobs/"

    def __init__(self, config: Optional[Settings] = None, client=None):
        self._config = config or settings
        self._client = client

    @property
    def client(self):
        """S3 클라이언트 지연 로딩"""
        if self._client is None:
            if not self._config.is_s3_enabled:
                raise RuntimeError(
                    "S3가 설정되지 않았습니다. S3 환경 변수를 확인하세요."
                )
            self._client = boto3.client(
                "s3",
                aws_access_key_id=self._config.S3_ACCESS_KEY_ID,
                aws_secret_access_key=self._config.S3_SECRET_ACCESS_KEY,
                endpoint_url=self._config.S3_ENDPOINT_URL,
                region_name=self._config.S3_REGION,
            )
        return self._client

    @property
    def bucket(self) -> str:
        return self._config.S3_BUCKET_NAME

    def _key(self, blob_id: str) -> str:
        if not is_valid_blob_id(blob_id):
            raise ValueError(f"잘못된 블롭 ID입니다: {blob_id}")
        return f"{self.KEY_PREFIX}{blob_id}"

    def _presign(self, method: str, blob_id: str, filename: Optional[str] = None) -> str:
        params = {"Bucket": self.bucket, "Key": self._key(blob_id)}
        if filename:
            params["ResponseContentDisposition"] = (
                f"attachment; filename*=UTF-8''{quote(filename)}"
            )
        return self.client.generate_presigned_url(
            method,
            Params=params,
            ExpiresIn=self._config.BLOB_URL_EXPIRES_SECONDS,
        )

    def _head(self, blob_id: str) -> Optional[dict]:
        try:
            return self.client.head_object(Bucket=self.bucket, Key=self._key(blob_id))
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            if code in ("404", "NoSuchKey", "NotFound"):
                return None
            raise

    async def generate_upload_url(self) -> Tuple[str, str]:
        blob_id = new_blob_id()
        url = await asyncio.to_thread(self._presign, "put_object", blob_id)
        return blob_id, url

    async def get_url(self, blob_id: str, filename: Optional[str] = None) -> Optional[str]:
        if not await self.exists(blob_id):
            return None
        return await asyncio.to_thread(self._presign, "get_object", blob_id, filename)

    async def store(self, data: bytes, content_type: str = DEFAULT_CONTENT_TYPE) -> str:
        blob_id = new_blob_id()

        try:
            await asyncio.to_thread(
                self.client.put_object,
                Bucket=self.bucket,
                Key=self._key(blob_id),
                Body=data,
                ContentType=content_type,
            )
        except ClientError as e:
            logger.error(f"S3 업로드 실패: {e}")
            raise

        logger.info(f"S3 업로드 완료: {blob_id} ({len(data)} bytes)")
        return blob_id

    async def read(self, blob_id: str) -> Optional[bytes]:
        if not is_valid_blob_id(blob_id):
            return None

        def _get() -> Optional[bytes]:
            try:
                response = self.client.get_object(Bucket=self.bucket, Key=self._key(blob_id))
            except ClientError as e:
                if e.response.get("Error", {}).get("Code") in ("404", "NoSuchKey"):
                    return None
                raise
            return response["Body"].read()

        return await asyncio.to_thread(_get)

    async def exists(self, blob_id: str) -> bool:
        if not is_valid_blob_id(blob_id):
            return False
        return await asyncio.to_thread(self._head, blob_id) is not None

    async def delete(self, blob_id: str) -> bool:
        if not is_valid_blob_id(blob_id):
            return False

        try:
            await asyncio.to_thread(
                self.client.delete_object, Bucket=self.bucket, Key=self._key(blob_id)
            )
        except ClientError as e:
            logger.error(f"S3 삭제 실패: {blob_id}: {e}")
            raise

        return True

    async def list_blobs(self) -> List[Tuple[str, datetime]]:
        def _list() -> List[Tuple[str, datetime]]:
            blobs = []
            paginator = self.client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket, Prefix=self.KEY_PREFIX):
                for item in page.get("Contents", []):
                    blob_id = item["Key"][len(self.KEY_PREFIX):]
                    if is_valid_blob_id(blob_id):
                        blobs.append((blob_id, item["LastModified"]))
            return blobs

        return await asyncio.to_thread(_list)

    async def content_type(self, blob_id: str) -> str:
        head = await asyncio.to_thread(self._head, blob_id)
        if head is None:
            return DEFAULT_CONTENT_TYPE
        return head.get("ContentType", DEFAULT_CONTENT_TYPE)


# 싱글톤 인스턴스
_blob_store: Optional[BlobStore] = None


def get_blob_store() -> BlobStore:
    """설정된 백엔드의 BlobStore 싱글톤 반환"""
    global _blob_store
    if _blob_store is None:
        if settings.BLOB_BACKEND == "s3":
            _blob_store = S3BlobStore()
        else:
            _blob_store = LocalBlobStore()
    return _blob_store


def set_blob_store(store: Optional[BlobStore]) -> None:
    """BlobStore 교체 (테스트용)"""
    global _blob_store
    _blob_store = store
