from __future__ import annotations

from typing import Any, Callable, Iterable

from warden.agent.content import ConversationTurn, FunctionCall, Part
from warden.agent.loop import Observation
from warden.agent.models import GenerateRequest


def model_text(text: str) -> ConversationTurn:
    return ConversationTurn(role="model", parts=(Part.from_text(text),))


def model_calls(*calls: FunctionCall, text: str | None = None) -> ConversationTurn:
    parts = [Part.from_text(text)] if text else []
    parts.extend(Part(function_call=call) for call in calls)
    return ConversationTurn(role="model", parts=tuple(parts))


class ScriptedModelClient:
    """Model client that replays scripted responses and records each request.

    Items may be turns, ``None`` (empty response), exceptions to raise, or a
    callable taking the request. Once the script runs out, ``fallback`` answers.
    """

    def __init__(self, script: Iterable[Any] = (), fallback: Callable[[GenerateRequest], Any] | None = None) -> None:
        self.script = list(script)
        self.fallback = fallback
        self.requests: list[GenerateRequest] = []

    async def generate(self, request: GenerateRequest) -> ConversationTurn | None:
        self.requests.append(request)
        if self.script:
            item = self.script.pop(0)
        elif self.fallback is not None:
            item = self.fallback
        else:
            raise AssertionError("model called more times than scripted")
        if callable(item) and not isinstance(item, ConversationTurn):
            item = item(request)
        if isinstance(item, BaseException):
            raise item
        return item


class FakeEnvironment:
    def __init__(
        self,
        *,
        url: str | None = "https://example.com/",
        unavailable: str | None = None,
        observation: Observation | None = None,
    ) -> None:
        self.url = url
        self.unavailable = unavailable
        self.observation = observation or Observation(screenshot=b"\x89PNG-shot", accessibility_tree="- heading \"Example\"")
        self.observations = 0
        self.overlay_events: list[str] = []

    async def check_available(self) -> str | None:
        return self.unavailable

    async def observe(self) -> Observation | None:
        self.observations += 1
        return self.observation

    async def current_url(self) -> str | None:
        return self.url

    async def activate_overlay(self) -> None:
        self.overlay_events.append("activate")

    async def release_overlay(self) -> None:
        self.overlay_events.append("release")


class _Emitter:
    def __init__(self) -> None:
        self.handlers: dict[str, list[Callable[..., Any]]] = {}

    def on(self, event: str, handler: Callable[..., Any]) -> None:
        self.handlers.setdefault(event, []).append(handler)

    def emit(self, event: str) -> None:
        for handler in self.handlers.get(event, []):
            handler(self)


class FakeMouse:
    def __init__(self) -> None:
        self.calls: list[tuple[Any, ...]] = []

    async def click(self, x: float, y: float) -> None:
        self.calls.append(("click", x, y))

    async def move(self, x: float, y: float, steps: int = 1) -> None:
        self.calls.append(("move", x, y))

    async def down(self) -> None:
        self.calls.append(("down",))

    async def up(self) -> None:
        self.calls.append(("up",))

    async def wheel(self, dx: float, dy: float) -> None:
        self.calls.append(("wheel", dx, dy))


class FakeKeyboard:
    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []

    async def press(self, key: str) -> None:
        self.calls.append(("press", key))

    async def type(self, text: str) -> None:  # noqa: A003 - Playwright API name
        self.calls.append(("type", text))


class FakeAccessibility:
    def __init__(self, snapshot: Any) -> None:
        self._snapshot = snapshot

    async def snapshot(self) -> Any:
        return self._snapshot


class FakePage(_Emitter):
    def __init__(self, url: str = "about:blank") -> None:
        super().__init__()
        self.url = url
        self.viewport_size: dict[str, int] | None = {"width": 1000, "height": 800}
        self.mouse = FakeMouse()
        self.keyboard = FakeKeyboard()
        self.accessibility = FakeAccessibility({"role": "WebArea", "name": "Example"})
        self.evaluated: list[Any] = []
        self.waits: list[int] = []
        self.history: list[str] = []
        self._closed = False

    async def goto(self, url: str) -> None:
        self.history.append(self.url)
        self.url = url

    async def go_back(self) -> None:
        if self.history:
            self.url = self.history.pop()

    async def go_forward(self) -> None:
        return None

    async def wait_for_load_state(self, state: str = "load", timeout: float | None = None) -> None:
        return None

    async def wait_for_timeout(self, timeout: int) -> None:
        self.waits.append(timeout)

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        self.evaluated.append(arg)
        if arg is None:
            return [1000, 800]
        return None

    async def screenshot(self) -> bytes:
        return b"\x89PNG-page"

    def is_closed(self) -> bool:
        return self._closed

    async def close(self) -> None:
        self._closed = True
        self.emit("close")


class FakeContext(_Emitter):
    def __init__(self) -> None:
        super().__init__()
        self.pages: list[FakePage] = []

    async def new_page(self) -> FakePage:
        page = FakePage()
        self.pages.append(page)
        return page

    async def close(self) -> None:
        for page in self.pages:
            if not page.is_closed():
                await page.close()
        self.emit("close")


class FakeBrowser(_Emitter):
    def __init__(self) -> None:
        super().__init__()
        self.contexts: list[FakeContext] = []
        self.connected = True
        self.closed = False

    async def new_context(self, **kwargs: Any) -> FakeContext:
        context = FakeContext()
        self.contexts.append(context)
        return context

    def is_connected(self) -> bool:
        return self.connected

    def disconnect(self) -> None:
        self.connected = False
        self.emit("disconnected")

    async def close(self) -> None:
        self.closed = True
        self.connected = False


class FakeLauncher:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.browsers: list[FakeBrowser] = []
        self.headless: list[bool] = []

    async def __call__(self, headless: bool) -> FakeBrowser:
        self.headless.append(headless)
        if self.error is not None:
            raise self.error
        browser = FakeBrowser()
        self.browsers.append(browser)
        return browser
