from urllib.parse import urljoin
from flask import current_app, jsonify, render_template
from app.extensions import limiter, talisman
from app.security import EMBED_CSP
from app.services.embed import resolve_embed, VIEW_PLAYER, VIEW_UNAVAILABLE
from . import bp


def _pricing_url() -> str:
    base = (current_app.config.get("APP_BASE_URL") or "").rstrip("/") + "/"
    return urljoin(base, "pricing")


@bp.get("/<collection_id>")
@talisman(frame_options=None, content_security_policy=EMBED_CSP)
@limiter.limit("120/minute")
def embed_page(collection_id):
    decision = resolve_embed(collection_id)
    # Every outcome is a 200 so status codes don't reveal which collections exist
    return render_template(
        f"embed/{decision.view}.html",
        collection=decision.collection,
        tracks=decision.tracks,
        pricing_url=_pricing_url(),
        site_name=current_app.config.get("SITE_NAME", "ACE Audio"),
    ), 200


@bp.get("/<collection_id>/state.json")
@limiter.limit("120/minute")
def embed_state(collection_id):
    decision = resolve_embed(collection_id)
    payload = {"state": decision.view, "tracks": decision.tracks}
    if decision.view == VIEW_PLAYER:
        payload["title"] = decision.collection.title
    elif decision.view != VIEW_UNAVAILABLE:
        payload["pricing_url"] = _pricing_url()
    resp = jsonify(payload)
    resp.headers["Access-Control-Allow-Origin"] = "*"
    return resp, 200
