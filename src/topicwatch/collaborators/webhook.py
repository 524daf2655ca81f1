"""HTTP webhook action and notifier using httpx."""

from typing import Any

import httpx

from topicwatch.daemon.collaborators import ActionResult, WorkItem

DEFAULT_TIMEOUT = 30.0


class WebhookAction:
    """Delivers each passing item as a JSON POST.

    A 2xx response is success; any other status or a transport error is a
    failure. The cycle advances past the item either way.
    """

    def __init__(
        self,
        url: str,
        timeout: float = DEFAULT_TIMEOUT,
        headers: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self.headers = headers or {}
        self.transport = transport

    async def act(self, item: WorkItem) -> ActionResult:
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, headers=self.headers, transport=self.transport
            ) as client:
                response = await client.post(self.url, json=item.to_dict())
        except httpx.HTTPError as e:
            return ActionResult(success=False, detail=f"request failed: {e}")

        if response.is_success:
            return ActionResult(success=True, detail=f"HTTP {response.status_code}", payload=_json(response))
        return ActionResult(success=False, detail=f"HTTP {response.status_code}")


class WebhookNotifier:
    """Posts a chat-webhook message (``{"content": ...}``) after a successful action.

    Delivery errors are raised to the cycle, which logs them and does not
    count the notification.
    """

    def __init__(
        self,
        url: str,
        timeout: float = DEFAULT_TIMEOUT,
        title: str = "Action Completed",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self.title = title
        self.transport = transport

    async def notify(self, item: WorkItem, result: ActionResult) -> None:
        """Post the message.

        Raises:
            httpx.HTTPError: On a transport error or a non-2xx response
        """
        lines = [f"**{self.title}**", f"Link: {item.link}"]
        if result.detail:
            lines.append(f"Result: {result.detail}")
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            response = await client.post(self.url, json={"content": "\n".join(lines)})
            response.raise_for_status()


def _json(response: httpx.Response) -> dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}
