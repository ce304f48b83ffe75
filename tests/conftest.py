from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest

from creative_sync.creative.pipeline import SyncContext
from creative_sync.infrastructure.caching import TTLCache
from creative_sync.integrations.asset_store import AssetStore, StoreEntry
from creative_sync.integrations.meta_client import AccountAuth, ClientConfig, MetaClient

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64
JPEG = b"\xff\xd8\xff\xe0" + b"\x00" * 64
MP4 = b"\x00\x00\x00\x18ftypmp42" + b"\x00" * 64


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeResponse:
    def __init__(
        self,
        status_code: int = 200,
        payload: Optional[Any] = None,
        text: str = "",
        content: bytes = b"",
        reason: str = "OK",
    ) -> None:
        self.status_code = status_code
        self._payload = payload
        self.text = text
        self.content = content
        self.reason = reason

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("No JSON object could be decoded")
        return self._payload


Handler = Callable[[str, str, Dict[str, Any]], FakeResponse]


class FakeSession:
    """Records every call and answers through ``handler(method, url, kwargs)``."""

    def __init__(self, handler: Handler) -> None:
        self.handler = handler
        self.calls: List[Tuple[str, str, Dict[str, Any]]] = []

    def request(self, method: str, url: str, **kwargs) -> FakeResponse:
        self.calls.append((method, url, kwargs))
        return self.handler(method, url, kwargs)

    def get(self, url: str, **kwargs) -> FakeResponse:
        return self.request("GET", url, **kwargs)

    def post(self, url: str, **kwargs) -> FakeResponse:
        return self.request("POST", url, **kwargs)


class FakeStore(AssetStore):
    """In-memory folder tree. ``fail_downloads`` makes the first N downloads of a file fail."""

    def __init__(self) -> None:
        self.children: Dict[str, List[StoreEntry]] = {}
        self.files: Dict[str, bytes] = {}
        self.fail_downloads: Dict[str, int] = {}
        self.list_calls = 0
        self.download_calls: List[str] = []

    def add_folder(self, parent_id: str, name: str) -> str:
        folder_id = f"{parent_id}/{name}"
        self.children.setdefault(parent_id, []).append(StoreEntry(folder_id, name, "folder", is_folder=True))
        self.children.setdefault(folder_id, [])
        return folder_id

    def add_file(self, parent_id: str, name: str, data: bytes, mime_type: str = "") -> str:
        file_id = f"{parent_id}/{name}"
        self.children.setdefault(parent_id, []).append(StoreEntry(file_id, name, mime_type))
        self.files[file_id] = data
        return file_id

    def list_children(self, parent_id, name=None, folders_only=False):
        self.list_calls += 1
        entries = self.children.get(parent_id, [])
        return [
            e for e in entries
            if (name is None or e.name == name) and (not folders_only or e.is_folder)
        ]

    def download(self, file_id):
        self.download_calls.append(file_id)
        remaining = self.fail_downloads.get(file_id, 0)
        if remaining:
            self.fail_downloads[file_id] = remaining - 1
            raise ConnectionError(f"connection reset while downloading {file_id}")
        return self.files[file_id]


def graph_ok(method: str, url: str, kwargs: Dict[str, Any]) -> FakeResponse:
    """Happy-path Graph API: image uploads return a hash derived from the filename."""
    if url.endswith("/adimages") and method == "POST":
        filename = kwargs["json"]["filename"]
        return FakeResponse(payload={"images": {filename: {"hash": f"hash-{filename}"}}})
    if url.endswith("/advideos") and method == "POST":
        filename = kwargs["data"]["title"]
        return FakeResponse(payload={"id": f"vid-{filename}"})
    return FakeResponse(payload={"data": []})


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock) -> TTLCache:
    return TTLCache(clock=clock)


@pytest.fixture
def sleeps() -> List[float]:
    return []


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def make_client(cache):
    def _make(handler: Handler = graph_ok, **kwargs) -> Tuple[MetaClient, FakeSession]:
        session = FakeSession(handler)
        client = MetaClient(
            AccountAuth(account_id="123", access_token="tok", page_id="page-1", api_version="v21.0"),
            ClientConfig(timeout=5.0),
            cache=cache,
            session=session,  # type: ignore[arg-type]
            **kwargs,
        )
        return client, session

    return _make


@pytest.fixture
def ctx(make_client, store, cache, sleeps) -> SyncContext:
    client, _ = make_client()
    return SyncContext(
        gateway=client,
        store=store,
        root_id="root",
        cache=cache,
        sleep=sleeps.append,
        pacing_seconds=1.0,
    )
