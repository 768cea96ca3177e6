import logging
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.routes import blobs, jobs
from app.core.config import settings
from app.core.exceptions import AdocsHubException
from app.core.logging import setup_logging
from app.models import HealthResponse
from app.services import dispatcher, get_chain_factory, reaper
from app.services.chain_factory import check_api_config

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """애플리케이션 생명주기 관리"""
    # 시작시 실행
    setup_logging(settings.LOG_LEVEL)
    settings.ensure_directories()

    # 외부 변환 API 설정 검증 (필수 설정이면 누락시 기동 실패)
    check_api_config(
        get_chain_factory().api_config,
        required=settings.REQUIRE_CONVERSION_API_KEY,
    )

    # 워커 풀 시작 후 중단됐던 작업 재개
    await dispatcher.start()
    await dispatcher.resume_processing_jobs()

    # 만료 작업 정리 스케줄러 시작
    await reaper.start(interval_minutes=settings.REAPER_INTERVAL_MINUTES)

    yield

    # 종료시 실행
    reaper.stop()
    await dispatcher.stop()


app = FastAPI(
    title="AdocsHub",
    description="문서 변환 작업 백엔드 (이미지 → PDF, PDF 병합, PDF → DOCX)",
    version="0.1.0",
    lifespan=lifespan,
    # 프로덕션에서는 docs/openapi 비활성화
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None,
    openapi_url="/openapi.json" if settings.is_development else None,
)


# =============================================================================
# 미들웨어 설정
# =============================================================================

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH"],
    allow_headers=["Content-Type", "Authorization", "X-Request-ID", "X-Owner-Id"],
    expose_headers=["X-Request-ID", "Content-Disposition"],
    max_age=600,  # preflight 캐시 10분
)


@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    """보안 헤더 추가 미들웨어"""
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())

    response = await call_next(request)

    response.headers["X-Request-ID"] = request_id
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["X-XSS-Protection"] = "1; mode=block"

    if settings.is_production:
        response.headers["Strict-Transport-Security"] = (
            "max-age=31536000; includeSubDomains"
        )

    return response


# =============================================================================
# 에러 핸들러
# =============================================================================

@app.exception_handler(AdocsHubException)
async def adocshub_exception_handler(request: Request, exc: AdocsHubException):
    """커스텀 예외 핸들러"""
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers={"X-Request-ID": request.headers.get("X-Request-ID", "")},
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """일반 예외 핸들러 (프로덕션에서 상세 에러 숨김)"""
    logger.exception(f"처리되지 않은 예외: {request.method} {request.url.path}")

    if settings.is_development:
        detail = str(exc)
    else:
        detail = "서버 오류가 발생했습니다"

    return JSONResponse(
        status_code=500,
        content={"detail": detail},
        headers={"X-Request-ID": request.headers.get("X-Request-ID", "")},
    )


# =============================================================================
# 엔드포인트
# =============================================================================

@app.get("/health", response_model=HealthResponse)
async def health_check():
    """헬스 체크 엔드포인트"""
    return HealthResponse()


# API 라우터 등록
app.include_router(jobs.router, prefix="/api", tags=["jobs"])
app.include_router(blobs.router, prefix="/api", tags=["blobs"])
