"""외부 변환 API 클라이언트 및 설정 테스트"""

import httpx
import pytest

from app.core.config import ConversionApiConfig, Settings
from app.core.exceptions import ConversionApiError, MissingConfigurationException
from app.services.chain_factory import ChainFactory, check_api_config
from app.services.conversion_api import ConversionApiClient


def make_client(handler, api_key="test-key") -> ConversionApiClient:
    config = ConversionApiConfig(base_url="https://api.test", api_key=api_key, timeout_seconds=5.0)
    return ConversionApiClient(config, transport=httpx.MockTransport(handler))


class TestSettings:
    """설정 로드"""

    def test_blank_api_key_is_missing(self):
        config = Settings(CONVERSION_API_KEY="   ").conversion_api_config()
        assert config.api_key is None
        assert config.is_configured is False

    def test_api_config_from_settings(self):
        config = Settings(
            CONVERSION_API_KEY=" secret ",
            CONVERSION_API_BASE_URL="https://api.example.com/",
        ).conversion_api_config()

        assert config.api_key == "secret"
        assert config.base_url == "https://api.example.com"

    def test_cors_origins_from_string(self):
        settings = Settings(ALLOWED_ORIGINS="http://a.test, http://b.test")
        assert settings.ALLOWED_ORIGINS == ["http://a.test", "http://b.test"]

    def test_check_api_config_optional(self):
        check_api_config(ConversionApiConfig("https://api.test", None, 5.0))

    def test_check_api_config_required(self):
        with pytest.raises(RuntimeError, match="CONVERSION_API_KEY"):
            check_api_config(ConversionApiConfig("https://api.test", None, 5.0), required=True)


class TestChainFactory:
    """작업 유형별 전략 순서"""

    def test_chain_order(self):
        factory = ChainFactory(ConversionApiConfig("https://api.test", None, 5.0))

        assert factory.build("images_to_document").names == ["remote_api", "embedded", "minimal"]
        assert factory.build("merge_documents").names == ["pypdf_merge"]
        assert factory.build("convert_to_editable").names == ["remote_docx"]


@pytest.mark.asyncio
class TestConversionApiClient:
    """HTTP 호출"""

    async def test_sends_api_key_header(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["key"] = request.headers.get("Apikey")
            return httpx.Response(200, content=b"PK\x03\x04docx")

        data = await make_client(handler).convert_pdf_to_docx(b"%PDF-1.4")

        assert data == b"PK\x03\x04docx"
        assert seen == {"url": "https://api.test/convert/pdf/to/docx", "key": "test-key"}

    async def test_missing_key(self):
        def handler(request):
            raise AssertionError("네트워크 호출이 없어야 합니다")

        with pytest.raises(MissingConfigurationException):
            await make_client(handler, api_key=None).merge_two(b"a", b"b")

    async def test_error_status(self):
        client = make_client(lambda request: httpx.Response(401, content=b"bad key"))

        with pytest.raises(ConversionApiError) as exc_info:
            await client.convert_image_to_pdf(b"\x89PNG")

        assert exc_info.value.api_status_code == 401

    async def test_empty_response(self):
        client = make_client(lambda request: httpx.Response(200, content=b""))

        with pytest.raises(ConversionApiError):
            await client.merge_two(b"a", b"b")

    async def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(ConversionApiError):
            await make_client(handler).merge_two(b"a", b"b")

    @pytest.mark.parametrize("count", [1, 11])
    async def test_merge_many_input_limit(self, count):
        client = make_client(lambda request: httpx.Response(200, content=b"%PDF"))

        with pytest.raises(ValueError):
            await client.merge_many([b"%PDF"] * count)
