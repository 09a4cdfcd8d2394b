"""HTTP Request step implementation.

Makes one HTTP request to an external API/service and hands the parsed
response to the following steps as ``{status, headers, data}``.
"""

from typing import Any, Dict, Optional
from urllib.parse import urlparse

import httpx
import structlog

from core.constants import StepType
from steps.base_step import BaseStep, StepResult
from workflow.models import ExecutionContext

logger = structlog.get_logger(__name__)

DEFAULT_TIMEOUT = 30.0

ALLOWED_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS")


def _validate_url(url: str) -> None:
    """Reject anything that is not an absolute http(s) URL.

    Raises:
        ValueError: If URL is unusable
    """
    parsed = urlparse(url)
    if parsed.scheme.lower() not in ("http", "https"):
        raise ValueError(f"Unsupported scheme: {parsed.scheme or '(none)'}. Only HTTP and HTTPS allowed.")
    if not parsed.hostname:
        raise ValueError("URL must have a valid hostname")


def _parse_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


class HttpRequestStep(BaseStep):
    """Execute an HTTP request.

    Config:
        url: Target URL (required)
        method: HTTP method (default: GET)
        headers: Dict of HTTP headers
        body: Request body. Mappings and lists are sent as JSON, anything
            else as text.

    No retries: a network error, a timeout or a non-2xx status fails the
    step. A non-2xx failure still carries the response as output.
    """

    step_type = StepType.HTTP_REQUEST
    display_name = "HTTP Request"
    description = "Make HTTP requests to APIs and web services"

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout = timeout
        self._transport = transport

    async def execute(self, config: Dict[str, Any], context: ExecutionContext) -> StepResult:
        url = config.get("url")
        if not url or not isinstance(url, str):
            return StepResult.failure("Missing required config: url")

        try:
            _validate_url(url)
        except ValueError as e:
            return StepResult.failure(str(e))

        method = str(config.get("method") or "GET").upper()
        if method not in ALLOWED_METHODS:
            return StepResult.failure(f"Unsupported HTTP method: {method}")

        headers = config.get("headers") or {}
        if not isinstance(headers, dict):
            return StepResult.failure("Config 'headers' must be an object")
        headers = {str(k): str(v) for k, v in headers.items()}

        kwargs: Dict[str, Any] = {"method": method, "url": url, "headers": headers}
        body = config.get("body")
        if body is not None:
            if isinstance(body, (dict, list)):
                kwargs["json"] = body
            else:
                kwargs["content"] = str(body)

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.request(**kwargs)
        except httpx.TimeoutException:
            logger.warning("HTTP step timed out", url=url, timeout=self.timeout)
            return StepResult.failure(f"Request timed out after {self.timeout:g}s")
        except httpx.HTTPError as e:
            return StepResult.failure(f"Request failed: {e}")

        output = {
            "status": response.status_code,
            "headers": dict(response.headers),
            "data": _parse_body(response),
        }

        if not response.is_success:
            return StepResult(
                success=False,
                output=output,
                error=f"Request failed with status code {response.status_code}",
            )

        return StepResult(success=True, output=output, metadata={"url": str(response.url)})

    @classmethod
    def get_config_schema(cls) -> Dict[str, Any]:
        return {
            "type": "object",
            "required": ["url"],
            "properties": {
                "url": {"type": "string", "description": "Target URL"},
                "method": {"type": "string", "enum": list(ALLOWED_METHODS)},
                "headers": {"type": "object"},
                "body": {"description": "Request body"},
            },
        }
