import pytest
import requests

from leadfinder.vendors.openai_chat import ChatCompletionClient, ChatCompletionError


class DummyResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class DummySession:
    def __init__(self, response):
        self.response = response
        self.calls = []
        self.closed = False

    def post(self, url, headers=None, json=None, timeout=None):
        self.calls.append({"url": url, "headers": headers, "json": json, "timeout": timeout})
        if isinstance(self.response, Exception):
            raise self.response
        return self.response

    def close(self):
        self.closed = True


def _reply(content):
    return DummyResponse(payload={"choices": [{"message": {"content": content}}], "usage": {"total_tokens": 10}})


def test_complete_posts_chat_request():
    session = DummySession(_reply("hello"))
    client = ChatCompletionClient("sk-test", base_url="https://llm.example/v1/", model="m", session=session)

    assert client.complete([{"role": "user", "content": "hi"}], max_tokens=50) == "hello"

    call = session.calls[0]
    assert call["url"] == "https://llm.example/v1/chat/completions"
    assert call["headers"]["Authorization"] == "Bearer sk-test"
    assert call["json"]["model"] == "m"
    assert call["json"]["max_tokens"] == 50
    assert "response_format" not in call["json"]


def test_complete_json_requests_json_object():
    session = DummySession(_reply('{"leadName": "สมชาย"}'))
    client = ChatCompletionClient("sk-test", session=session)

    assert client.complete_json([{"role": "user", "content": "hi"}]) == {"leadName": "สมชาย"}
    assert session.calls[0]["json"]["response_format"] == {"type": "json_object"}


@pytest.mark.parametrize(
    "response",
    [
        requests.ConnectionError("down"),
        DummyResponse(status_code=401, text="unauthorized"),
        DummyResponse(payload={"choices": []}),
        _reply(""),
    ],
)
def test_complete_errors(response):
    client = ChatCompletionClient("sk-test", session=DummySession(response))
    with pytest.raises(ChatCompletionError):
        client.complete([{"role": "user", "content": "hi"}])


def test_complete_json_rejects_non_object():
    client = ChatCompletionClient("sk-test", session=DummySession(_reply("[1, 2]")))
    with pytest.raises(ChatCompletionError):
        client.complete_json([])

    client = ChatCompletionClient("sk-test", session=DummySession(_reply("not json")))
    with pytest.raises(ChatCompletionError):
        client.complete_json([])


def test_client_requires_key_and_closes_session():
    with pytest.raises(ValueError):
        ChatCompletionClient("")

    session = DummySession(_reply("x"))
    client = ChatCompletionClient("sk-test", session=session)
    client.close()
    assert session.closed is True
