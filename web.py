# web.py - SellFast (Flask) front end for the listing generator
# ---------------------------------------------------------------------------------
# Screens:
# - Magic Listing: upload one photo (+ tone and optional purchase price), get title,
#   description, suggested price, hashtags and a photo-quality critique
# - Wingman: paste a buyer's chat message, get three replies (Polite / Firm / Playful)
# - History: past results kept in a local JSON store (delete one / clear all)
#
# Env: see sellfast/config.py (GOOGLE_API_KEY or OPENAI_API_KEY, LLM_PROVIDER, ...)
#
# Run:
#   pip install -e .
#   python web.py
#   Visit http://127.0.0.1:5000/
# ---------------------------------------------------------------------------------

import base64
import binascii
import sys
import uuid
from collections import OrderedDict
from datetime import datetime
from typing import Dict, Optional

from flask import Flask, request, render_template_string, redirect, url_for, session, jsonify

from sellfast.config import Config, build_config
from sellfast.generator import GenerationError, ListingGenerator
from sellfast.history import HistoryStore, JsonFileStore
from sellfast.images import ImageFile, strip_data_uri
from sellfast.models import format_price, hashtag_list, listing_text
from sellfast.state import AppState, parse_modal_price

app = Flask(__name__)

# Live session registry (session id -> AppState), least recently used first
MAX_SESSIONS = 64
_states: "OrderedDict[str, AppState]" = OrderedDict()
_services: Dict[str, object] = {}

# ---------------------------------------------------------------------------------
# HTML (Dark mode)
# ---------------------------------------------------------------------------------

INDEX_HTML = """
<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8"><meta name="viewport" content="width=device-width,initial-scale=1">
  <title>SellFast</title>
  <style>
    :root{
      --bg:#0b1021; --card:#121831; --text:#e5e7eb; --muted:#93a4bf;
      --accent:#00e5ff; --border:#1f2a44; --ok:#22c55e; --warn:#f59e0b;
    }
    *{box-sizing:border-box}
    body{
      font-family:system-ui,-apple-system,Segoe UI,Roboto,Helvetica,Arial,sans-serif;
      background:var(--bg);color:var(--text);max-width:980px;margin:32px auto;padding:0 16px;
    }
    h1{margin:0}
    .subtitle{color:var(--muted);margin:0 0 16px}
    .card{border:1px solid var(--border);border-radius:14px;padding:16px;margin:12px 0;background:var(--card)}
    .grid{display:grid;gap:12px;grid-template-columns:repeat(2,minmax(0,1fr))}
    .muted{color:var(--muted)}
    .warn{color:var(--warn)}
    .ok{color:var(--ok)}
    input, textarea{background:#0b1120;color:var(--text);border:1px solid var(--border);border-radius:10px;padding:10px;width:100%}
    button{padding:10px 16px;border-radius:10px;border:1px solid #0ea5b7;background:#0369a1;color:#fff;cursor:pointer}
    button.secondary{border-color:#334155;background:#0b1120;color:var(--text)}
    nav a{margin-right:14px;color:var(--muted)}
    nav a.active{color:var(--accent);font-weight:600}
    .pill{font-size:12px;border:1px solid var(--border);border-radius:999px;padding:4px 10px;color:var(--muted);display:inline-block;margin:2px}
    .preview{width:100%;max-height:360px;object-fit:cover;border-radius:12px;border:1px solid var(--border)}
    .thumb{width:64px;height:64px;object-fit:cover;border-radius:8px;border:1px solid var(--border)}
    .score{font-size:42px;font-weight:700}
    .row{display:flex;gap:12px;align-items:center;flex-wrap:wrap}
    details{border:1px solid var(--border);border-radius:12px;padding:10px;margin:8px 0}
    summary{cursor:pointer}
  </style>
</head>
<body>
  <h1>SellFast</h1>
  <p class="subtitle">Snap a photo, get a ready-to-post listing.</p>
  <nav>
    <a href="{{ url_for('index', tab='magic') }}" class="{{ 'active' if state.active_tab == 'magic' }}">Magic List</a>
    <a href="{{ url_for('index', tab='negotiate') }}" class="{{ 'active' if state.active_tab == 'negotiate' }}">Wingman</a>
    <a href="{{ url_for('index', tab='history') }}" class="{{ 'active' if state.active_tab == 'history' }}">History ({{ history_items|length }})</a>
  </nav>

  {% if state.error %}
    <div class="card"><p class="warn"><b>Error:</b> {{ state.error }}</p></div>
  {% endif %}

  {% if state.active_tab == 'magic' %}
    {% if not result %}
      <form class="card" method="POST" action="{{ url_for('listing') }}" enctype="multipart/form-data">
        <h2>Magic Listing</h2>
        <p class="muted">Upload a clear, well-lit photo of the item.</p>
        {% if state.image %}
          <img class="preview" src="{{ state.image.base64_data }}" alt="Preview">
          <p class="muted">{{ state.image.filename }} (choose another file to replace it)</p>
        {% endif %}
        <p><input type="file" name="image" accept="image/*"></p>
        <div class="row">
          <label><input type="radio" name="style" value="casual" {{ 'checked' if state.style == 'casual' }} style="width:auto"> Casual</label>
          <label><input type="radio" name="style" value="formal" {{ 'checked' if state.style == 'formal' }} style="width:auto"> Formal</label>
        </div>
        <p><label class="muted">Purchase price (optional)
          <input type="number" min="0" name="modal_price" value="{{ state.modal_price if state.modal_price is not none else '' }}" placeholder="0">
        </label></p>
        <button type="submit" {{ 'disabled' if state.is_listing_loading }}>Analyse photo</button>
      </form>
    {% else %}
      <div class="row" style="justify-content:space-between">
        <h2>Result</h2>
        <form method="POST" action="{{ url_for('reset_listing') }}"><button class="secondary" type="submit">Back</button></form>
      </div>
      <div class="grid">
        <div class="card">
          {% if state.image %}<img class="preview" src="{{ state.image.base64_data }}" alt="Photo">{% endif %}
          <p class="muted">Photo tip</p>
          <p>"{{ result.photo_advice }}"</p>
        </div>
        <div>
          <div class="card">
            <p class="muted">Photo quality</p>
            <span class="score">{{ result.photo_score }}</span><span class="muted">/10</span>
          </div>
          <div class="card">
            <p class="muted">Suggested price: {{ result.suggested_price|price }}</p>
            {% if profit is not none %}
              <p class="{{ 'ok' if profit >= 0 else 'warn' }}"><b>Profit: {{ profit|price }}</b></p>
            {% else %}
              <p class="muted">Set a purchase price to see your profit.</p>
            {% endif %}
          </div>
        </div>
      </div>
      <div class="card">
        <p class="muted">Title</p><h3>{{ result.title }}</h3>
        <p class="muted">Description</p><p style="white-space:pre-wrap">{{ result.description }}</p>
        <p class="muted">Hashtags</p>
        {% for tag in tags %}<span class="pill">{{ tag }}</span>{% endfor %}
        <p><textarea id="fulltext" rows="8" readonly>{{ full_text }}</textarea></p>
        <button type="button" onclick="navigator.clipboard.writeText(document.getElementById('fulltext').value)">Copy all</button>
      </div>
    {% endif %}

  {% elif state.active_tab == 'negotiate' %}
    <form class="card" method="POST" action="{{ url_for('negotiate') }}">
      <h2>Negotiation Wingman</h2>
      <p class="muted">Paste the buyer's message and get three ways to answer.</p>
      <textarea name="message" rows="5" placeholder='e.g. "Too pricey, I can pick it up today for half"'>{{ state.buyer_message }}</textarea>
      <p><button type="submit" {{ 'disabled' if state.is_chat_loading }}>Draft replies</button></p>
    </form>
    {% for reply in state.negotiation_results %}
      <div class="card">
        <span class="pill">{{ reply.type }}</span>
        <p>"{{ reply.text }}"</p>
      </div>
    {% endfor %}

  {% else %}
    <div class="card">
      <div class="row" style="justify-content:space-between">
        <h2>History</h2>
        {% if history_items %}
          <form method="POST" action="{{ url_for('clear_history') }}" onsubmit="return confirm('Delete all history?')">
            <button class="secondary" type="submit">Clear all</button>
          </form>
        {% endif %}
      </div>
      {% if not history_items %}
        <p class="muted">No history yet. Create your first listing!</p>
      {% endif %}
      {% for item in history_items %}
        <details>
          <summary class="row">
            <img class="thumb" src="{{ item.thumbnail }}" alt="">
            <b>{{ item.result.title }}</b>
            <span class="muted">{{ item.timestamp|when }} &middot; {{ item.style }} &middot; {{ item.result.suggested_price|price }}</span>
          </summary>
          <p style="white-space:pre-wrap">{{ item.result.description }}</p>
          <p class="muted">{{ item.result.hashtags }}</p>
          {% if item.modal_price is not none %}
            <p class="muted">Purchase price: {{ item.modal_price|price }}</p>
          {% endif %}
          <form method="POST" action="{{ url_for('delete_history', item_id=item.id) }}">
            <button class="secondary" type="submit">Delete</button>
          </form>
        </details>
      {% endfor %}
    </div>
  {% endif %}
</body>
</html>
"""

# ---------------------------------------------------------------------------------
# Wiring: services + per-session state
# ---------------------------------------------------------------------------------

def init_app(config: Optional[Config] = None, generator=None, history: Optional[HistoryStore] = None) -> Flask:
    """Attach config, generator and history store; resets all session state."""
    config = config or build_config()
    if generator is None:
        generator = ListingGenerator(config)
    if history is None:
        history = HistoryStore(JsonFileStore(config.history_file))
    app.secret_key = config.secret_key
    _services.update(config=config, generator=generator, history=history)
    _states.clear()
    return app


def current_config() -> Config:
    return _services["config"]  # type: ignore[return-value]


def current_state() -> AppState:
    """Return (creating if needed) the state for this browser session."""
    if not _services:
        init_app()
    sid = session.get("sid")
    if sid is not None and sid in _states:
        _states.move_to_end(sid)
        return _states[sid]

    sid = sid or uuid.uuid4().hex
    session["sid"] = sid
    _states[sid] = AppState(generator=_services["generator"], history=_services["history"])
    while len(_states) > MAX_SESSIONS:
        evicted, _ = _states.popitem(last=False)
        print(f"[web] Dropped idle session {evicted[:8]}")
    return _states[sid]


@app.template_filter("price")
def price_filter(amount: int) -> str:
    return format_price(amount, current_config().currency)


@app.template_filter("when")
def when_filter(timestamp: int) -> str:
    return datetime.fromtimestamp(timestamp / 1000).strftime("%d %b %Y %H:%M")


def render_page(state: AppState, status: int = 200):
    result = state.listing_result
    currency = current_config().currency
    html = render_template_string(
        INDEX_HTML,
        state=state,
        result=result,
        profit=state.profit,
        tags=hashtag_list(result) if result else [],
        full_text=listing_text(result, currency) if result else "",
        history_items=state.history.items,
    )
    return html, status

# ---------------------------------------------------------------------------------
# Web routes: magic listing -> wingman -> history
# ---------------------------------------------------------------------------------

@app.route("/", methods=["GET"])
def index():
    state = current_state()
    state.set_tab(request.args.get("tab"))
    state.error = None
    return render_page(state)


@app.route("/listing", methods=["POST"])
def listing():
    state = current_state()
    state.set_tab("magic")
    state.error = None
    try:
        upload = request.files.get("image")
        if upload is not None and upload.filename:
            state.select_image(ImageFile.from_upload(upload))
        if state.image is None:
            raise ValueError("Please choose a photo first.")
        state.set_style(request.form.get("style", state.style))
        state.set_modal_price(request.form.get("modal_price"))
    except ValueError as e:
        state.error = str(e)
        return render_page(state, 400)

    print(f"[web] Generating listing for {state.image.filename} ({state.style})")
    if state.generate_listing() is None:
        return render_page(state, 502 if state.error else 409)
    return render_page(state)


@app.route("/listing/reset", methods=["POST"])
def reset_listing():
    current_state().reset_listing()
    return redirect(url_for("index", tab="magic"))


@app.route("/negotiate", methods=["POST"])
def negotiate():
    state = current_state()
    state.set_tab("negotiate")
    message = (request.form.get("message") or "").strip()
    if not message:
        state.error = "Please paste the buyer's message first."
        return render_page(state, 400)
    state.generate_replies(message)
    return render_page(state, 502 if state.error else 200)


@app.route("/history/<item_id>/delete", methods=["POST"])
def delete_history(item_id: str):
    current_state().delete_history(item_id)
    return redirect(url_for("index", tab="history"))


@app.route("/history/clear", methods=["POST"])
def clear_history():
    current_state().clear_history()
    return redirect(url_for("index", tab="history"))

# ---------------------------------------------------------------------------------
# JSON API (same operations, stateless per request)
# ---------------------------------------------------------------------------------

def _request_payload():
    """JSON object body, or the form fields of a multipart post."""
    payload = request.get_json(silent=True)
    if payload is None:
        return request.form
    if not isinstance(payload, dict):
        raise ValueError("Request body must be a JSON object.")
    return payload


def _image_from_request() -> ImageFile:
    upload = request.files.get("image")
    if upload is not None and upload.filename:
        return ImageFile.from_upload(upload)
    payload = _request_payload()
    encoded = strip_data_uri(str(payload.get("image") or ""))
    if not encoded:
        raise ValueError("Missing image (multipart 'image' file or JSON 'image' base64).")
    try:
        data = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError):
        raise ValueError("Image is not valid base64.") from None
    return ImageFile.from_bytes(data, str(payload.get("filename") or "upload"))


@app.route("/api/listing", methods=["POST"])
def api_listing():
    if not _services:
        init_app()
    state = AppState(generator=_services["generator"], history=_services["history"])
    try:
        payload = _request_payload()
        state.select_image(_image_from_request())
        state.set_style(str(payload.get("style") or "casual"))
        modal = payload.get("modalPrice")
        state.modal_price = parse_modal_price(None if modal is None else str(modal))
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    result = state.generate_listing()
    if result is None:
        return jsonify({"error": state.error}), 502
    item = state.history.items[0]
    return jsonify({"result": result.to_dict(), "historyItem": item.to_dict(), "profit": state.profit})


@app.route("/api/negotiate", methods=["POST"])
def api_negotiate():
    if not _services:
        init_app()
    try:
        payload = _request_payload()
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    message = str(payload.get("message") or "").strip()
    if not message:
        return jsonify({"error": "Missing buyer message."}), 400
    try:
        replies = _services["generator"].generate_replies(message)
    except GenerationError as e:
        return jsonify({"error": str(e)}), 502
    return jsonify({"replies": [r.to_dict() for r in replies]})


@app.route("/api/history", methods=["GET"])
def api_history():
    if not _services:
        init_app()
    return jsonify([item.to_dict() for item in _services["history"].items])

# ---------------------------------------------------------------------------------
# Run
# ---------------------------------------------------------------------------------

def main() -> int:
    """Console entry point: build config, check the API key, serve."""
    print("Starting SellFast...")
    try:
        cfg = build_config()
        cfg.log_config()
        # Validate API key early
        cfg.validate_api_key()
        init_app(cfg)
    except ValueError as e:
        print(f"[config] {e}")
        return 1
    # Set SELLFAST_HOST=0.0.0.0 if running in a container or remote
    app.run(host=cfg.host, port=cfg.port, debug=cfg.debug)
    return 0


if __name__ == "__main__":
    sys.exit(main())
