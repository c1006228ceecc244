import json
import sys
from pathlib import Path
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from pydantic import TypeAdapter

BASE_DIR = Path(__file__).resolve().parents[1]
if str(BASE_DIR) not in sys.path:
    sys.path.append(str(BASE_DIR))

from clarity import schemas
from clarity.ai.providers.base import CompletionError
from clarity.config.settings import ClaritySettings, ConfigError
from clarity.deps import Collaborators, get_collaborators
from clarity.main import app
from clarity.store.ingredients import IngredientStore, InteractionLog, SearchPage


SETTINGS = ClaritySettings(supabase_url="https://example.supabase.co", supabase_key="anon", ai_provider="stub")


class FakeStore:
    def __init__(self, rows=None):
        self.rows = [schemas.StructuredRecord.model_validate(r) for r in (rows or [])]
        self.calls = []

    def search(self, message, *, page=1, limit=None):
        self.calls.append((message, page, limit))
        size = limit or 5
        return SearchPage(rows=list(self.rows), total=len(self.rows), page=page, page_size=size, column="name")


class ScriptedProvider:
    name = "scripted"

    def __init__(self, reply="", error=None):
        self.reply = reply
        self.error = error
        self.calls = 0

    async def chat(self, messages, *, json_mode=False):
        self.calls += 1
        if self.error:
            raise self.error
        return self.reply


class FakeLog:
    def __init__(self):
        self.entries = []

    def record(self, **entry):
        self.entries.append(entry)


class Harness:
    def __init__(self, *, rows=None, reply="", error=None, settings=SETTINGS, log=None):
        self.store = FakeStore(rows)
        self.provider = ScriptedProvider(reply, error)
        self.log = log or FakeLog()
        self.settings = settings

    def collaborators(self) -> Collaborators:
        return Collaborators(
            settings=lambda: self.settings,
            store=lambda: self.store,
            provider=lambda: self.provider,
            interaction_log=lambda: self.log,
        )


TURMERIC = {
    "name": "Turmeric",
    "verdict": "Generally safe in food amounts",
    "dao_histamine_signal": "Unknown",
    "cycle_flag": "N/A",
    "cycle_notes": "",
    "citations": ["LactMed 2024"],
    "why_brief": "Culinary use is well tolerated.",
    "dao_mechanism": "none known",
}

MODEL_REPLY = json.dumps(
    {
        "mode": "ingredient",
        "title": "Kombucha",
        "verdict": "Caution",
        "friendly": "Small amounts are usually fine.",
        "scientific": "Contains trace alcohol and caffeine.",
        "closing": "Trust your instincts.",
        "followups": ["How much is too much?", "Does caffeine pass to milk?"],
        "cross_reactivity": None,
    }
)


@pytest.fixture
def harness():
    return Harness()


@pytest.fixture
def client(harness):
    app.dependency_overrides[get_collaborators] = harness.collaborators
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def test_options_returns_empty_200(client: TestClient):
    res = client.options("/api/clarity", headers={"Origin": "https://example.com", "Access-Control-Request-Method": "POST"})
    assert res.status_code == 200
    assert res.content == b""
    assert res.headers["access-control-allow-origin"] == "*"
    assert res.headers["access-control-allow-methods"] == "POST, OPTIONS"
    assert "Authorization" in res.headers["access-control-allow-headers"]


def test_other_methods_are_rejected(client: TestClient):
    for method in ("get", "put", "delete"):
        res = getattr(client, method)("/api/clarity")
        assert res.status_code == 405
        assert res.json() == {"error": "Method not allowed"}


@pytest.mark.parametrize("body", [{}, {"message": ""}, {"message": "   "}, {"message": 42}, {"message": None}])
def test_missing_message_is_400(client: TestClient, harness, body):
    res = client.post("/api/clarity", json=body)
    assert res.status_code == 400
    assert res.json() == {"error": "Missing message in body"}
    assert harness.store.calls == []
    assert harness.provider.calls == 0


def test_invalid_json_is_400(client: TestClient):
    res = client.post("/api/clarity", content=b"not json", headers={"Content-Type": "application/json"})
    assert res.status_code == 400


def test_structured_hit_skips_generative_call(client: TestClient, harness):
    harness.store.rows = [schemas.StructuredRecord.model_validate(TURMERIC)]
    res = client.post("/api/clarity", json={"message": "turmeric"})
    assert res.status_code == 200
    data = res.json()
    assert data["kind"] == "db"
    assert data["record"]["name"] == "Turmeric"
    assert "Verdict: Generally safe in food amounts" in data["answer"]
    assert data["ui"]["verdict_normalized"] == "Safe"
    assert data["ui"]["show_chip"] is True
    assert data["ui"]["hide_fields"] == {"dao": True, "cycle": True}
    assert data["ui"]["article_url"] == "/ingredients/turmeric"
    assert data["pagination"]["page"] == 1
    assert harness.provider.calls == 0
    assert harness.log.entries[0]["kind"] == "db"
    assert harness.log.entries[0]["model_response"] is None


def test_structured_miss_calls_generator_once(client: TestClient, harness):
    harness.provider.reply = MODEL_REPLY
    res = client.post(
        "/api/clarity",
        json={"message": "kombucha", "history": [{"role": "user", "content": "hi"}], "page": 2},
    )
    assert res.status_code == 200
    data = res.json()
    assert data["kind"] == "gpt"
    assert data["degraded"] is False
    assert data["answer"]["title"] == "Kombucha"
    assert data["ui"]["verdict_normalized"] == "Caution"
    assert data["ui"]["show_chip"] is True
    assert data["ui"]["followups"] == ["How much is too much?", "Does caffeine pass to milk?"]
    assert harness.provider.calls == 1
    assert harness.store.calls == [("kombucha", 2, None)]
    assert harness.log.entries[0]["history"] == [{"role": "user", "content": "hi"}]
    assert harness.log.entries[0]["model_response"]["title"] == "Kombucha"


def test_malformed_completion_degrades_to_placeholder(client: TestClient, harness):
    harness.provider.reply = "I think kombucha is probably fine!"
    res = client.post("/api/clarity", json={"message": "kombucha"})
    assert res.status_code == 200
    data = res.json()
    assert data["kind"] == "gpt"
    assert data["degraded"] is True
    assert data["answer"]["title"] == "kombucha"
    assert data["answer"]["verdict"] is None
    assert data["ui"]["show_chip"] is False
    assert len(data["ui"]["followups"]) == 2


def test_completion_failure_is_500(client: TestClient, harness):
    harness.provider.error = CompletionError(429, "rate limited")
    res = client.post("/api/clarity", json={"message": "kombucha"})
    assert res.status_code == 500
    body = res.json()
    assert body["error"] == "Completion service error"
    assert "rate limited" in body["details"]


def test_missing_configuration_is_500(client: TestClient, harness):
    harness.settings = ClaritySettings(supabase_url="https://example.supabase.co", ai_provider="openai")
    res = client.post("/api/clarity", json={"message": "kombucha"})
    assert res.status_code == 500
    body = res.json()
    assert body["error"] == "Server misconfigured"
    assert "SUPABASE_ANON_KEY" in body["details"]
    assert "OPENAI_API_KEY" in body["details"]
    assert harness.store.calls == []


class BrokenSupabase:
    def table(self, name):
        raise RuntimeError("insert failed")


def test_interaction_log_failure_does_not_affect_response(client: TestClient, harness):
    harness.log = InteractionLog(BrokenSupabase())
    harness.provider.reply = MODEL_REPLY
    res = client.post("/api/clarity", json={"message": "kombucha"})
    assert res.status_code == 200
    assert res.json()["kind"] == "gpt"


def test_string_body_is_treated_as_message(client: TestClient, harness):
    harness.store.rows = [schemas.StructuredRecord.model_validate(TURMERIC)]
    res = client.post("/api/clarity", content=json.dumps("turmeric"), headers={"Content-Type": "application/json"})
    assert res.status_code == 200
    assert res.json()["kind"] == "db"

    encoded = json.dumps(json.dumps({"message": "turmeric"}))
    res = client.post("/api/clarity", content=encoded, headers={"Content-Type": "application/json"})
    assert res.status_code == 200
    assert harness.store.calls[-1][0] == "turmeric"


def test_exactly_one_kind_per_message(client: TestClient, harness):
    harness.provider.reply = MODEL_REPLY
    for message in ["turmeric", "how do I sleep with a newborn", "x"]:
        harness.store.rows = [schemas.StructuredRecord.model_validate(TURMERIC)] if message == "turmeric" else []
        data = client.post("/api/clarity", json={"message": message}).json()
        assert data["kind"] in {"db", "gpt"}
        assert ("record" in data) != (data["kind"] == "gpt")


def test_check_endpoint(client: TestClient, harness):
    res = client.post("/api/check", json={"q": "  "})
    assert res.status_code == 400
    assert res.json() == {"ok": False, "error": "Missing query"}

    res = client.post("/api/check", json={"q": "turmeric"})
    assert res.status_code == 200
    assert res.json() == {"ok": True, "query": "turmeric", "result": None}

    harness.store.rows = [schemas.StructuredRecord.model_validate(TURMERIC)]
    res = client.post("/api/check", json={"q": "turmeric"})
    result = res.json()["result"]
    assert result["name"] == "Turmeric"
    assert result["why_brief"] == "Culinary use is well tolerated."
    assert result["dao"] == {"signal": "Unknown", "mechanism": "none known"}
    assert result["cycle"] == {"flag": "N/A", "notes": ""}
    assert result["citations"] == ["LactMed 2024"]
    assert harness.store.calls[-1] == ("turmeric", 1, 10)

    res = client.get("/api/check")
    assert res.status_code == 405
    assert res.json() == {"ok": False, "error": "Method not allowed"}


def test_root(client: TestClient):
    res = client.get("/")
    assert res.status_code == 200


def test_response_parses_as_tagged_union(client: TestClient, harness):
    adapter = TypeAdapter(schemas.ClarityOut)
    harness.store.rows = [schemas.StructuredRecord.model_validate(TURMERIC)]
    assert isinstance(adapter.validate_python(client.post("/api/clarity", json={"message": "turmeric"}).json()), schemas.DbResult)

    harness.store.rows = []
    harness.provider.reply = MODEL_REPLY
    assert isinstance(adapter.validate_python(client.post("/api/clarity", json={"message": "kombucha"}).json()), schemas.GptResult)


class RowsSupabase:
    """Minimal PostgREST-style chain over in-memory rows."""

    def __init__(self, rows):
        self.rows = rows
        self.column = self.needle = self.window = None

    def table(self, name):
        return self

    def select(self, *columns, count=None):
        return self

    def ilike(self, column, pattern):
        self.column, self.needle = column, pattern.strip("%").lower()
        return self

    def range(self, start, end):
        self.window = (start, end)
        return self

    def execute(self):
        rows = [r for r in self.rows if self.needle in str(r.get(self.column) or "").lower()]
        start, end = self.window
        return SimpleNamespace(data=rows[start : end + 1], count=len(rows))


def test_store_failure_falls_back_to_generator(client: TestClient, harness):
    harness.store = IngredientStore(BrokenSupabase())
    harness.provider.reply = MODEL_REPLY
    res = client.post("/api/clarity", json={"message": "turmeric"})
    assert res.status_code == 200
    assert res.json()["kind"] == "gpt"
    assert harness.provider.calls == 1


def test_page_past_end_of_matches_stays_structured(client: TestClient, harness):
    harness.store = IngredientStore(
        RowsSupabase([{"name": "Turmeric Latte", "verdict": "Caution", "cycle_flag": True}]),
        page_size=1,
    )
    res = client.post("/api/clarity", json={"message": "turmeric latte", "page": 2})
    assert res.status_code == 200
    data = res.json()
    assert data["kind"] == "db"
    assert data["record"]["name"] == "Turmeric Latte"
    assert data["pagination"] == {"page": 2, "page_size": 1, "total": 1, "has_more": False}
    assert harness.provider.calls == 0


def test_check_does_not_need_completion_key(client: TestClient, harness):
    harness.settings = ClaritySettings(supabase_url="https://example.supabase.co", supabase_key="anon", ai_provider="openai")
    harness.store.rows = [schemas.StructuredRecord.model_validate(TURMERIC)]
    res = client.post("/api/check", json={"q": "turmeric"})
    assert res.status_code == 200
    assert res.json()["result"]["name"] == "Turmeric"


def test_check_reports_missing_store_configuration(client: TestClient, harness):
    def missing_store():
        raise ConfigError(("SUPABASE_URL",))

    app.dependency_overrides[get_collaborators] = lambda: Collaborators(
        settings=lambda: harness.settings,
        store=missing_store,
        provider=lambda: harness.provider,
        interaction_log=lambda: harness.log,
    )
    res = client.post("/api/check", json={"q": "turmeric"})
    assert res.status_code == 500
    assert res.json()["ok"] is False
    assert "SUPABASE_URL" in res.json()["error"]
