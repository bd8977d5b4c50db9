import pytest
import numpy as np
import requests

from smartnote.api_client import ApiClient
from smartnote.audio_utils import WAV
from smartnote.errors import PermissionDenied
from smartnote.models import AudioClip
from smartnote.recorder import AudioBackend


class FakeResponse:
    def __init__(self, payload=None, status_code=200, url="http://api.test/"):
        self.payload = payload
        self.status_code = status_code
        self.url = url

    def json(self):
        if self.payload is None:
            raise ValueError("No JSON object could be decoded")
        return self.payload


class FakeHttpSession:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def post(self, url, json=None, files=None, headers=None, timeout=None):
        self.calls.append(
            {"url": url, "json": json, "files": files, "headers": headers, "timeout": timeout}
        )
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class FakeBackend(AudioBackend):
    def __init__(self, deny=False):
        self.deny = deny
        self.on_chunk = None
        self.open_calls = 0
        self.pause_calls = 0
        self.resume_calls = 0
        self.close_calls = 0

    def open(self, on_chunk):
        if self.deny:
            raise PermissionDenied()
        self.open_calls += 1
        self.on_chunk = on_chunk

    def pause(self):
        self.pause_calls += 1

    def resume(self):
        self.resume_calls += 1

    def close(self):
        self.close_calls += 1

    def emit(self, value=1000, frames=1024):
        self.on_chunk(np.full((frames, 1), value, dtype=np.int16))


class FakeClock:
    def __init__(self, now=100.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def make_api():
    def _make(*responses):
        http = FakeHttpSession(*responses)
        api = ApiClient(
            "http://api.test/api/v1",
            access_token="token-123",
            clinic_id="clinic-1",
            session=http,
        )
        return api, http

    return _make


@pytest.fixture
def ok():
    def _ok(data=None):
        return FakeResponse({"success": True, "statusCode": 200, "message": "ok", "data": data})

    return _ok


@pytest.fixture
def failed():
    def _failed(status_code=400, message="Bad request"):
        return FakeResponse(
            {"success": False, "statusCode": status_code, "message": message},
            status_code=status_code,
        )

    return _failed


@pytest.fixture
def network_error():
    return requests.exceptions.ConnectionError("connection refused")


@pytest.fixture
def clip():
    return AudioClip(
        data=b"RIFF....WAVEfmt ",
        audio_format=WAV,
        sample_rate_hz=16000,
        channels=1,
        duration_seconds=10,
    )


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def denied_backend():
    return FakeBackend(deny=True)


@pytest.fixture
def non_json():
    return FakeResponse(None, status_code=502)
