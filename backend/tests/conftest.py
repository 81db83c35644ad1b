from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest

from backend.app.models.tool import ToolRecord
from backend.app.services.session_store import SessionStore
from backend.app.services.wizard import WizardController


class FakeTransport:
    """Records every outbound call; failures can be queued per method."""

    def __init__(self):
        self.calls: List[tuple] = []
        self.failures: Dict[str, List[Exception]] = {}
        self._next_message_id = 100

    def fail_next(self, method: str, error: Exception):
        self.failures.setdefault(method, []).append(error)

    def _record(self, method: str, **kwargs):
        queued = self.failures.get(method)
        if queued:
            raise queued.pop(0)
        self.calls.append((method, kwargs))

    def of(self, method: str) -> List[Dict[str, Any]]:
        return [kwargs for name, kwargs in self.calls if name == method]

    @property
    def sent_texts(self) -> List[str]:
        return [c["text"] for c in self.of("send_message")]

    async def send_message(self, chat_id, text, keyboard=None):
        self._next_message_id += 1
        self._record("send_message", chat_id=chat_id, text=text, keyboard=keyboard,
                     message_id=self._next_message_id)
        return self._next_message_id

    async def edit_message_text(self, chat_id, message_id, text, keyboard=None):
        self._record("edit_message_text", chat_id=chat_id, message_id=message_id, text=text, keyboard=keyboard)

    async def edit_message_keyboard(self, chat_id, message_id, keyboard):
        self._record("edit_message_keyboard", chat_id=chat_id, message_id=message_id, keyboard=keyboard)

    async def delete_message(self, chat_id, message_id):
        self._record("delete_message", chat_id=chat_id, message_id=message_id)

    async def answer_callback(self, query_id, text=None, show_alert=False):
        self._record("answer_callback", query_id=query_id, text=text, show_alert=show_alert)


class FakeRecordStore:
    def __init__(self):
        self.records: Dict[str, Dict[str, Any]] = {}
        self.created: List[Dict[str, Any]] = []
        self.deleted: List[str] = []
        self.create_error: Optional[Exception] = None
        self._counter = 0

    async def create(self, fields):
        if self.create_error is not None:
            raise self.create_error
        self._counter += 1
        record_id = f"rec{self._counter}"
        self.records[record_id] = dict(fields)
        self.created.append(dict(fields))
        return record_id

    async def delete(self, record_id):
        self.deleted.append(record_id)
        self.records.pop(record_id, None)

    async def list_tools(self, tool_type=None):
        docs = [dict(fields, _key=key) for key, fields in self.records.items()
                if tool_type is None or tool_type in fields.get("Types", [])]
        docs.sort(key=lambda d: d.get("URL", ""))
        return [ToolRecord.from_document(d) for d in docs]

    async def get_tool(self, record_id):
        fields = self.records.get(record_id)
        return ToolRecord.from_document(dict(fields, _key=record_id)) if fields else None


class ManualTimer:
    def __init__(self, due: float, delay: float, callback, name: str):
        self.due = due
        self.delay = delay
        self.callback = callback
        self.name = name
        self.fired = False
        self._cancelled = False

    def cancel(self):
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class ManualScheduler:
    """Virtual-time scheduler; callbacks run only when advance() reaches them."""

    def __init__(self):
        self.now = 0.0
        self.timers: List[ManualTimer] = []

    def call_later(self, delay, callback, name=""):
        timer = ManualTimer(self.now + delay, delay, callback, name)
        self.timers.append(timer)
        return timer

    def pending(self, name_prefix: str = "") -> List[ManualTimer]:
        return [t for t in self.timers
                if not t.cancelled and not t.fired and t.name.startswith(name_prefix)]

    async def advance(self, seconds: float):
        self.now += seconds
        while True:
            due = [t for t in self.pending() if t.due <= self.now]
            if not due:
                return
            timer = min(due, key=lambda t: t.due)
            timer.fired = True
            await timer.callback()


class FakeClock:
    def __init__(self):
        self.now = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float):
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def transport():
    return FakeTransport()

@pytest.fixture
def store():
    return FakeRecordStore()

@pytest.fixture
def scheduler():
    return ManualScheduler()

@pytest.fixture
def clock():
    return FakeClock()

@pytest.fixture
def wizard(transport, store, scheduler, clock):
    return WizardController(
        transport=transport,
        store=store,
        sessions=SessionStore(),
        scheduler=scheduler,
        clock=clock,
    )
