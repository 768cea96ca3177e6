import re
from typing import Optional

# 파일 시그니처 (매직 바이트) → MIME 타입
FILE_SIGNATURES = [
    (b"%PDF", "application/pdf"),
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
    (b"BM", "image/bmp"),
    # DOCX (ZIP 컨테이너)
    (b"PK\x03\x04", "application/vnd.openxmlformats-officedocument.wordprocessingml.document"),
]

MAX_FILENAME_LENGTH = 200

# 확장자 매핑 (다운로드 파일명용)
EXTENSIONS = {
    "application/pdf": ".pdf",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": ".docx",
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/gif": ".gif",
    "image/webp": ".webp",
    "image/bmp": ".bmp",
}


def sniff_content_type(data: Optional[bytes]) -> Optional[str]:
    """
    파일 시그니처로 MIME 타입 판별

    Args:
        data: 파일 바이트 (앞 16바이트면 충분)

    Returns:
        MIME 타입 또는 None (알 수 없는 형식)
    """
    if not data:
        return None

    header = data[:16]

    # WEBP: RIFF....WEBP
    if header[:4] == b"RIFF" and header[8:12] == b"WEBP":
        return "image/webp"

    for signature, mime_type in FILE_SIGNATURES:
        if header.startswith(signature):
            return mime_type

    return None


def is_pdf(data: Optional[bytes]) -> bool:
    return sniff_content_type(data) == "application/pdf"


def extension_for(content_type: Optional[str]) -> str:
    """MIME 타입에 해당하는 확장자 (모르면 빈 문자열)"""
    if not content_type:
        return ""
    return EXTENSIONS.get(content_type.split(";")[0].strip().lower(), "")


def validate_upload(data: bytes, max_size: int) -> tuple[bool, str]:
    """
    업로드 파일 검증

    Args:
        data: 파일 바이트
        max_size: 최대 크기 (bytes)

    Returns:
        (유효 여부, 에러 메시지)
    """
    if not data:
        return False, "빈 파일입니다"

    if len(data) > max_size:
        return False, "파일 크기 초과"

    if sniff_content_type(data) is None:
        return False, "지원하지 않는 파일 형식입니다 (PDF, DOCX 또는 이미지만 가능)"

    return True, ""


def sanitize_filename(filename: str) -> str:
    """
    파일명 정제 (Path Traversal 방지)

    - 경로 구분자 및 위험 문자 제거
    - '..' 시퀀스 제거
    - 길이 제한
    """
    if not filename:
        return "unnamed"

    sanitized = re.sub(r'[<>:"/\\|?*\x00-\x1f]', "_", filename)
    sanitized = sanitized.replace("..", "_")
    sanitized = sanitized.strip(". ")

    if not sanitized:
        return "unnamed"

    return sanitized[:MAX_FILENAME_LENGTH]
