from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import List, Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


@dataclass(frozen=True)
class ConversionApiConfig:
    """외부 변환 API 설정 (시작 시 한 번만 읽음)"""

    base_url: str
    api_key: str | None
    timeout_seconds: float

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)


class Settings(BaseSettings):
    """AdocsHub 애플리케이션 설정"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=True,
    )

    # 서버
    ENV: Literal["development", "production", "testing"] = "development"
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    LOG_LEVEL: str = "INFO"

    # 다운로드/업로드 URL 생성에 사용하는 외부 주소
    PUBLIC_BASE_URL: str = "http://localhost:8000"

    # CORS
    ALLOWED_ORIGINS: List[str] = ["http://localhost:5173"]

    # 파일 제한
    MAX_FILE_SIZE_MB: int = 20
    MAX_SOURCE_FILES: int = 50

    # 블롭 저장소
    BLOB_BACKEND: Literal["local", "s3"] = "local"
    BLOB_DIR: Path = Path("./blobs")
    BLOB_URL_EXPIRES_SECONDS: int = 3600

    # S3 호환 저장소 (AWS S3 / Cloudflare R2)
    S3_ACCESS_KEY_ID: str | None = None
    S3_SECRET_ACCESS_KEY: str | None = None
    S3_BUCKET_NAME: str | None = None
    S3_ENDPOINT_URL: str | None = None  # R2: https://<ACCOUNT_ID>.r2.cloudflarestorage.com
    S3_REGION: str | None = None

    # 외부 변환 API (Cloudmersive 호환)
    CONVERSION_API_KEY: str | None = None
    CONVERSION_API_BASE_URL: str = "https://api.cloudmersive.com"
    CONVERSION_API_TIMEOUT_SECONDS: float = 60.0
    REQUIRE_CONVERSION_API_KEY: bool = False

    # 작업
    JOB_TTL_HOURS: int = 1
    # 작업 레코드 스냅샷 파일 (None이면 메모리에만 보관)
    JOB_STORE_PATH: Path | None = Path("./data/jobs.json")
    MAX_CONCURRENT_JOBS: int = 4
    REAPER_INTERVAL_MINUTES: int = 60

    @field_validator("ALLOWED_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        """문자열 CORS origins을 리스트로 파싱"""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",")]
        return v

    @field_validator("CONVERSION_API_KEY", mode="before")
    @classmethod
    def blank_api_key_is_missing(cls, v):
        """공백뿐인 API 키는 미설정으로 취급"""
        if isinstance(v, str) and not v.strip():
            return None
        return v.strip() if isinstance(v, str) else v

    @property
    def MAX_FILE_SIZE_BYTES(self) -> int:
        """파일당 최대 크기 (bytes)"""
        return self.MAX_FILE_SIZE_MB * 1024 * 1024

    @property
    def is_development(self) -> bool:
        """개발 환경 여부"""
        return self.ENV == "development"

    @property
    def is_production(self) -> bool:
        """프로덕션 환경 여부"""
        return self.ENV == "production"

    @property
    def is_s3_enabled(self) -> bool:
        """S3 활성화 여부 (4개 필수값 모두 필요)"""
        return all([
            self.S3_ACCESS_KEY_ID,
            self.S3_SECRET_ACCESS_KEY,
            self.S3_BUCKET_NAME,
            self.S3_ENDPOINT_URL or self.S3_REGION,
        ])

    def conversion_api_config(self) -> ConversionApiConfig:
        """외부 변환 API 설정 객체 생성"""
        return ConversionApiConfig(
            base_url=self.CONVERSION_API_BASE_URL.rstrip("/"),
            api_key=self.CONVERSION_API_KEY,
            timeout_seconds=self.CONVERSION_API_TIMEOUT_SECONDS,
        )

    def ensure_directories(self) -> None:
        """로컬 블롭 / 작업 스냅샷 디렉토리 생성"""
        self.BLOB_DIR.mkdir(parents=True, exist_ok=True)
        if self.JOB_STORE_PATH is not None:
            self.JOB_STORE_PATH.parent.mkdir(parents=True, exist_ok=True)


@lru_cache
def get_settings() -> Settings:
    """설정 싱글톤 반환 (캐싱)"""
    return Settings()


# 기본 설정 인스턴스 (get_settings()와 동일 인스턴스 사용)
settings = get_settings()
