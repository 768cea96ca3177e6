from fastapi import HTTPException, status


class AdocsHubException(HTTPException):
    """AdocsHub 기본 예외"""

    def __init__(
        self,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail: str = "서버 오류가 발생했습니다",
    ):
        super().__init__(status_code=status_code, detail=detail)


class OwnerRequiredException(AdocsHubException):
    """소유자 식별자 누락 예외"""

    def __init__(self):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="인증된 소유자 정보가 필요합니다 (X-Owner-Id)",
        )


class FileTooLargeException(AdocsHubException):
    """파일 크기 초과 예외"""

    def __init__(self, max_size_mb: int):
        super().__init__(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"파일 크기가 {max_size_mb}MB를 초과합니다",
        )


class TooManyFilesException(AdocsHubException):
    """소스 파일 수 초과 예외"""

    def __init__(self, max_files: int):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"최대 {max_files}개 파일까지 처리할 수 있습니다",
        )


class UnsupportedJobTypeException(AdocsHubException):
    """지원하지 않는 작업 유형 예외"""

    def __init__(self, job_type: str):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"지원하지 않는 작업 유형입니다: {job_type}",
        )


class InsufficientSourcesException(AdocsHubException):
    """소스 파일 수 부족/불일치 예외"""

    def __init__(self, job_type: str, message: str):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"{message} (작업 유형: {job_type})",
        )


class SourceNotFoundException(AdocsHubException):
    """존재하지 않는 소스 블롭 예외"""

    def __init__(self, blob_id: str):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"소스 파일을 찾을 수 없습니다: {blob_id}",
        )


class JobNotFoundException(AdocsHubException):
    """작업을 찾을 수 없음 예외"""

    def __init__(self, job_id: str):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"작업을 찾을 수 없습니다: {job_id}",
        )


class BlobNotFoundException(AdocsHubException):
    """블롭을 찾을 수 없음 예외"""

    def __init__(self, blob_id: str):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"파일을 찾을 수 없습니다: {blob_id}",
        )


class InvalidJobPatchException(AdocsHubException):
    """작업 갱신 값이 불변 조건을 위반하는 경우"""

    def __init__(self, message: str):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=message,
        )


class JobAlreadyFinalizedException(AdocsHubException):
    """이미 종료된 작업에 대한 상태 변경 예외"""

    def __init__(self, job_id: str, current_status: str):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"이미 종료된 작업입니다: {job_id} (상태: {current_status})",
        )


class ConversionFailedException(AdocsHubException):
    """변환 실패 예외 (전략 단위)"""

    def __init__(self, message: str = "파일 변환에 실패했습니다"):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=message,
        )

    def __str__(self) -> str:
        return self.detail


class MissingConfigurationException(ConversionFailedException):
    """필수 설정 누락 예외"""

    def __init__(self, setting_name: str):
        self.setting_name = setting_name
        super().__init__(
            f"필수 설정이 누락되었습니다 (missing configuration): {setting_name}"
        )


class ConversionApiError(ConversionFailedException):
    """외부 변환 API 오류"""

    def __init__(self, message: str, status_code: int | None = None):
        self.api_status_code = status_code
        super().__init__(message)


class ChainExhaustedException(ConversionFailedException):
    """모든 변환 전략이 실패한 경우 (마지막 전략의 메시지 유지)"""

    def __init__(self, job_type: str, last_error: str):
        self.job_type = job_type
        self.last_error = last_error
        super().__init__(last_error)
