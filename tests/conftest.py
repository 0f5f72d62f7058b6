"""In-memory stand-in for the slice of the Playwright page API the runner uses.

Elements are registered per selector string; a selector that was never
registered matches nothing, and waiting on it times out immediately.
"""

from pathlib import Path

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

CLOSED_MESSAGE = "Target page, context or browser has been closed"


class FakeElement:
    def __init__(self, text: str = "", value: str = "", visible: bool = True, enabled: bool = True, attributes: dict | None = None, on_click=None, on_fill=None):
        self.text = text
        self.value = value
        self.visible = visible
        self.enabled = enabled
        self.attributes = attributes or {}
        self.on_click = on_click
        self.on_fill = on_fill
        self.clicks = 0
        self.forced_clicks = 0
        self.typed: list[str] = []
        self.pressed: list[str] = []


class FakeLocator:
    def __init__(self, page: "FakePage", query: str, index=None):
        self.page = page
        self.query = query
        self.index = index

    def _elements(self) -> list[FakeElement]:
        self.page._check_open()
        elements = self.page.elements.get(self.query, [])
        if self.index is None:
            return list(elements)
        try:
            return [elements[self.index]]
        except IndexError:
            return []

    def _one(self, timeout=None) -> FakeElement:
        elements = self._elements()
        if not elements:
            raise PlaywrightTimeoutError(f"Timeout {timeout or 30000}ms exceeded waiting for {self.query}")
        return elements[0]

    @property
    def first(self):
        return FakeLocator(self.page, self.query, 0)

    @property
    def last(self):
        return FakeLocator(self.page, self.query, -1)

    def nth(self, i: int):
        return FakeLocator(self.page, self.query, i)

    async def count(self) -> int:
        return len(self._elements())

    async def all(self) -> list["FakeLocator"]:
        return [FakeLocator(self.page, self.query, i) for i in range(len(self._elements()))]

    async def wait_for(self, state: str = "visible", timeout: float | None = None):
        self.page.probes.append((self.query, timeout))
        elements = self._elements()
        if state == "visible":
            elements = [e for e in elements if e.visible]
        if not elements:
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded waiting for {self.query} to be {state}")

    async def is_visible(self) -> bool:
        elements = self._elements()
        return bool(elements) and elements[0].visible

    async def is_enabled(self) -> bool:
        return self._one().enabled

    async def click(self, force: bool = False, timeout: float | None = None):
        element = self._one(timeout)
        element.clicks += 1
        if force:
            element.forced_clicks += 1
        self.page.clicked.append(self.query)
        if element.on_click:
            element.on_click(self.page)

    async def fill(self, value: str, timeout: float | None = None):
        element = self._one(timeout)
        element.value = element.on_fill(value) if element.on_fill else value

    async def press_sequentially(self, text: str, delay: float | None = None):
        element = self._one()
        element.typed.append(text)
        element.value += text

    async def press(self, key: str):
        self._one().pressed.append(key)

    async def input_value(self, timeout: float | None = None) -> str:
        return self._one(timeout).value

    async def text_content(self, timeout: float | None = None) -> str:
        return self._one(timeout).text

    async def inner_text(self, timeout: float | None = None) -> str:
        return self._one(timeout).text

    async def get_attribute(self, name: str, timeout: float | None = None):
        return self._one(timeout).attributes.get(name)


class FakeKeyboard:
    def __init__(self):
        self.pressed: list[str] = []

    async def press(self, key: str):
        self.pressed.append(key)


class FakeContext:
    def __init__(self):
        self.pages: list[FakePage] = []


class FakePage:
    def __init__(self, url: str = "https://app.test/", body_text: str | None = None, context: FakeContext | None = None):
        self.url = url
        self.elements: dict[str, list[FakeElement]] = {}
        self.closed = False
        self.keyboard = FakeKeyboard()
        self.context = context or FakeContext()
        self.context.pages.append(self)
        self.probes: list[tuple[str, float | None]] = []
        self.clicked: list[str] = []
        self.waits: list[float] = []
        self.reloads = 0
        self.visited: list[str] = []
        self.scripts: list[str] = []
        self.viewport = None
        self.screenshots: list[Path] = []
        self.video = None
        if body_text is not None:
            self.add("body", text=body_text)

    def _check_open(self):
        if self.closed:
            raise PlaywrightError(CLOSED_MESSAGE)

    def add(self, query: str, **kwargs) -> FakeElement:
        element = FakeElement(**kwargs)
        self.elements.setdefault(query, []).append(element)
        return element

    def element(self, query: str, index: int = 0) -> FakeElement:
        return self.elements[query][index]

    def locator(self, query: str) -> FakeLocator:
        return FakeLocator(self, query)

    def is_closed(self) -> bool:
        return self.closed

    async def wait_for_timeout(self, timeout: float):
        self._check_open()
        self.waits.append(timeout)

    async def wait_for_load_state(self, state: str = "load", timeout: float | None = None):
        self._check_open()

    async def goto(self, url: str, **kwargs):
        self._check_open()
        self.visited.append(url)
        self.url = url

    async def reload(self, wait_until: str | None = None, timeout: float | None = None):
        self._check_open()
        self.reloads += 1

    async def evaluate(self, script: str, arg=None):
        self._check_open()
        self.scripts.append(script)

    async def set_viewport_size(self, size: dict):
        self.viewport = size

    async def screenshot(self, path: str | None = None, full_page: bool = False, **kwargs) -> bytes:
        self._check_open()
        data = b"\x89PNG fake"
        if path:
            Path(path).write_bytes(data)
            self.screenshots.append(Path(path))
        return data


@pytest.fixture
def page() -> FakePage:
    return FakePage()
