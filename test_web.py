import base64
import json
import io

import pytest

import web
from conftest import JPEG_BYTES, FakeGenerator
from sellfast.config import build_config
from sellfast.history import HISTORY_KEY, HistoryStore, MemoryStore


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def make_client(store):
    def _make(generator=None):
        generator = generator or FakeGenerator()
        app = web.init_app(build_config(), generator=generator, history=HistoryStore(store))
        app.config["TESTING"] = True
        return app.test_client(), generator
    return _make


@pytest.fixture
def client(make_client):
    return make_client()[0]


def upload(style="formal", modal_price="", data=JPEG_BYTES, filename="sneakers.jpg"):
    return {
        "image": (io.BytesIO(data), filename),
        "style": style,
        "modal_price": modal_price,
    }


def test_index_renders_each_tab(client):
    for tab, marker in [("magic", b"Magic Listing"), ("negotiate", b"Negotiation Wingman"),
                        ("history", b"No history yet")]:
        resp = client.get(f"/?tab={tab}")
        assert resp.status_code == 200
        assert marker in resp.data


def test_upload_generates_and_records_history(make_client, store):
    client, generator = make_client()
    resp = client.post("/listing", data=upload(style="formal", modal_price="200000"),
                       content_type="multipart/form-data")

    assert resp.status_code == 200
    assert b"Vintage Leather Sneakers" in resp.data
    assert b"Rp 350.000" in resp.data
    assert b"Rp 150.000" in resp.data
    assert generator.listing_calls[0][1] == "formal"
    assert '"style": "formal"' in store.get(HISTORY_KEY)

    history_page = client.get("/?tab=history")
    assert b"Vintage Leather Sneakers" in history_page.data


def test_upload_without_photo_is_rejected(client):
    resp = client.post("/listing", data={"style": "casual"}, content_type="multipart/form-data")
    assert resp.status_code == 400
    assert b"Please choose a photo first." in resp.data


def test_upload_of_non_image_is_rejected(client):
    resp = client.post("/listing", data=upload(data=b"%PDF-1.7", filename="doc.pdf"),
                       content_type="multipart/form-data")
    assert resp.status_code == 400


def test_generation_failure_shows_single_message(make_client, store):
    client, _ = make_client(FakeGenerator(fail=True))
    resp = client.post("/listing", data=upload(), content_type="multipart/form-data")
    assert resp.status_code == 502
    assert b"Could not analyse the photo. Please try again." in resp.data
    assert store.get(HISTORY_KEY) is None


def test_reset_returns_to_upload_screen(client):
    client.post("/listing", data=upload(), content_type="multipart/form-data")
    resp = client.post("/listing/reset", follow_redirects=True)
    assert b"Analyse photo" in resp.data
    assert b"Copy all" not in resp.data


def test_negotiate(make_client):
    client, generator = make_client()
    resp = client.post("/negotiate", data={"message": "Can you do 100k?"})
    assert resp.status_code == 200
    assert b"Polite" in resp.data and b"Firm" in resp.data and b"Playful" in resp.data
    assert generator.reply_calls == ["Can you do 100k?"]

    assert client.post("/negotiate", data={"message": "  "}).status_code == 400


def test_delete_and_clear_history(client, store):
    client.post("/listing", data=upload(), content_type="multipart/form-data")
    client.post("/listing", data=upload(style="casual"), content_type="multipart/form-data")
    items = client.get("/api/history").get_json()
    assert len(items) == 2
    assert items[0]["style"] == "casual"

    client.post(f"/history/{items[0]['id']}/delete")
    remaining = client.get("/api/history").get_json()
    assert [i["id"] for i in remaining] == [items[1]["id"]]

    resp = client.post("/history/clear", follow_redirects=True)
    assert b"No history yet" in resp.data
    assert store.get(HISTORY_KEY) is None


def test_api_listing_json(make_client):
    client, generator = make_client()
    encoded = "data:image/jpeg;base64," + base64.b64encode(JPEG_BYTES).decode()
    resp = client.post("/api/listing", json={"image": encoded, "style": "formal", "modalPrice": 300000})

    assert resp.status_code == 200
    body = resp.get_json()
    assert body["result"]["title"] == "Vintage Leather Sneakers"
    assert body["historyItem"]["style"] == "formal"
    assert body["historyItem"]["modalPrice"] == 300000
    assert body["profit"] == 50000
    assert generator.listing_calls[0][0].data == JPEG_BYTES


def test_api_listing_errors(make_client):
    client, _ = make_client()
    assert client.post("/api/listing", json={}).status_code == 400
    assert client.post("/api/listing", json={"image": "***"}).status_code == 400

    failing, _ = make_client(FakeGenerator(fail=True))
    encoded = base64.b64encode(JPEG_BYTES).decode()
    resp = failing.post("/api/listing", json={"image": encoded})
    assert resp.status_code == 502
    assert resp.get_json() == {"error": "Could not analyse the photo. Please try again."}


def test_api_negotiate(make_client):
    client, _ = make_client()
    resp = client.post("/api/negotiate", json={"message": "lowest price?"})
    assert [r["type"] for r in resp.get_json()["replies"]] == ["Polite", "Firm", "Playful"]
    assert client.post("/api/negotiate", json={}).status_code == 400

    failing, _ = make_client(FakeGenerator(fail=True))
    assert failing.post("/api/negotiate", json={"message": "hi"}).status_code == 502


def test_corrupt_history_renders_empty(make_client, store):
    store.set(HISTORY_KEY, "[{broken")
    client, _ = make_client()
    resp = client.get("/?tab=history")
    assert resp.status_code == 200
    assert b"No history yet" in resp.data


def test_main_reports_missing_key(monkeypatch, capsys):
    monkeypatch.delenv("GOOGLE_API_KEY")
    assert web.main() == 1
    assert "Missing API key" in capsys.readouterr().out


@pytest.mark.parametrize("route", ["/api/listing", "/api/negotiate"])
@pytest.mark.parametrize("body", [[1, 2], "text", 5])
def test_api_rejects_non_object_json(client, route, body):
    resp = client.post(route, json=body)
    assert resp.status_code == 400
    assert resp.get_json() == {"error": "Request body must be a JSON object."}


def test_api_listing_rejects_fractional_modal_price(client):
    encoded = base64.b64encode(JPEG_BYTES).decode()
    resp = client.post("/api/listing", json={"image": encoded, "modalPrice": "1.5"})
    assert resp.status_code == 400


def test_session_registry_is_capped(make_client, monkeypatch):
    monkeypatch.setattr(web, "MAX_SESSIONS", 3)
    first, _ = make_client()
    first.get("/")
    first_sid = next(iter(web._states))

    for _ in range(5):
        web.app.test_client().get("/")
    assert len(web._states) == 3
    assert first_sid not in web._states

    # An evicted browser simply starts over with a fresh state
    assert first.get("/?tab=history").status_code == 200
    assert len(web._states) == 3


def test_recent_session_survives_eviction(make_client, monkeypatch):
    monkeypatch.setattr(web, "MAX_SESSIONS", 2)
    keeper, _ = make_client()
    keeper.get("/")
    keeper_sid = next(iter(web._states))

    for _ in range(4):
        keeper.get("/")
        web.app.test_client().get("/")
    assert keeper_sid in web._states


def test_history_tab_survives_out_of_range_timestamp(make_client, store):
    bad = {"id": "1", "timestamp": 10**20, "thumbnail": "x", "style": "casual",
           "result": {"photo_score": 5, "photo_advice": "a", "title": "t", "description": "d",
                      "suggested_price": 1, "hashtags": "#a"}}
    store.set(HISTORY_KEY, json.dumps([bad]))
    client, _ = make_client()
    resp = client.get("/?tab=history")
    assert resp.status_code == 200
    assert b"No history yet" in resp.data
