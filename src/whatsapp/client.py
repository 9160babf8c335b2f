"""WhatsApp Cloud API client.

Every send returns ``{"success": bool, "data"?: ..., "error"?: str}`` and never
raises; transport errors are retried, then reported in the result.
"""

from typing import Any

import httpx
import structlog

from cli.retry import http_retry

logger = structlog.get_logger()

GRAPH_API_BASE = "https://graph.facebook.com"


class WhatsAppClient:
    def __init__(
        self,
        access_token: str,
        phone_number_id: str,
        api_version: str = "v18.0",
        base_url: str = GRAPH_API_BASE,
        timeout: float = 15.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.access_token = access_token
        self.phone_number_id = phone_number_id
        self.api_version = api_version
        self.client = httpx.Client(
            base_url=base_url,
            timeout=timeout,
            headers={"Authorization": f"Bearer {access_token}"},
            transport=transport,
        )

    @property
    def messages_path(self) -> str:
        return f"/{self.api_version}/{self.phone_number_id}/messages"

    @http_retry(exceptions=(httpx.ConnectError, httpx.ReadTimeout))
    def _post(self, payload: dict) -> httpx.Response:
        return self.client.post(self.messages_path, json=payload)

    def send_message(self, request: dict[str, Any]) -> dict[str, Any]:
        payload = {"messaging_product": "whatsapp", **request}
        try:
            response = self._post(payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.warning(
                "whatsapp.send_failed",
                status=e.response.status_code,
                to=request.get("to"),
            )
            return {"success": False, "error": _error_message(e.response)}
        except httpx.HTTPError as e:
            logger.warning("whatsapp.request_failed", to=request.get("to"), error=str(e))
            return {"success": False, "error": str(e)}

        logger.info("whatsapp.sent", to=request.get("to"), type=request.get("type"))
        try:
            data = response.json()
        except ValueError:
            logger.warning("whatsapp.non_json_response", status=response.status_code)
            data = None
        return {"success": True, "data": data}

    def send_text(self, to: str, body: str, preview_url: bool = False) -> dict[str, Any]:
        return self.send_message(
            {
                "to": to,
                "type": "text",
                "text": {"body": body, "preview_url": preview_url},
            }
        )

    def send_template(
        self,
        to: str,
        name: str,
        language: str = "en",
        components: list[dict] | None = None,
    ) -> dict[str, Any]:
        template: dict[str, Any] = {"name": name, "language": {"code": language}}
        if components:
            template["components"] = components
        return self.send_message({"to": to, "type": "template", "template": template})

    def close(self):
        self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return f"HTTP {response.status_code}"
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return error["message"]
    return f"HTTP {response.status_code}"


class MockWhatsAppClient:
    """Records outgoing messages instead of sending them."""

    def __init__(self, fail_with: str | None = None):
        self.sent: list[dict[str, Any]] = []
        self.fail_with = fail_with

    def send_message(self, request: dict[str, Any]) -> dict[str, Any]:
        if self.fail_with:
            return {"success": False, "error": self.fail_with}
        self.sent.append(request)
        return {"success": True, "data": {"messages": [{"id": f"mock-{len(self.sent)}"}]}}

    def send_text(self, to: str, body: str, preview_url: bool = False) -> dict[str, Any]:
        return self.send_message(
            {"to": to, "type": "text", "text": {"body": body, "preview_url": preview_url}}
        )

    def send_template(
        self, to: str, name: str, language: str = "en", components: list[dict] | None = None
    ) -> dict[str, Any]:
        template: dict[str, Any] = {"name": name, "language": {"code": language}}
        if components:
            template["components"] = components
        return self.send_message({"to": to, "type": "template", "template": template})

    def close(self):
        pass
