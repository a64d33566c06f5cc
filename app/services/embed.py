from dataclasses import dataclass, field
from typing import List, Optional
from flask import current_app
from app.extensions import db
from app.billing.entitlements import AccessState, lookup_access
from app.models import Collection

# Views the public embed can render
VIEW_PLAYER = "player"
VIEW_REACTIVATE = "paywall_reactivate"
VIEW_TRIAL = "paywall_trial"
VIEW_UNAVAILABLE = "unavailable"

_VIEW_FOR_STATE = {
    AccessState.ACTIVE: VIEW_PLAYER,
    AccessState.TRIAL_ENDED: VIEW_REACTIVATE,
    AccessState.NO_TRIAL: VIEW_TRIAL,
    AccessState.ERROR: VIEW_UNAVAILABLE,
}


@dataclass
class EmbedDecision:
    view: str
    collection: Optional[Collection] = None
    tracks: List[dict] = field(default_factory=list)


def _public_collection(collection_id: str) -> Optional[Collection]:
    return (
        db.session.query(Collection)
        .filter(
            Collection.id == collection_id,
            Collection.is_public.is_(True),
            Collection.deleted_at.is_(None),
        )
        .one_or_none()
    )


def _track_list(collection: Collection) -> List[dict]:
    out = []
    for t in collection.tracks:
        af = t.audio_file
        if af is None:
            continue
        out.append({
            "id": af.id,
            "title": af.title,
            "artist": af.artist or "Unknown Artist",
            "duration": af.duration,
            "file_url": af.file_url,
            "position": t.position,
        })
    return out


def resolve_embed(collection_id: str) -> EmbedDecision:
    """
    Decide what a public embed shows. Missing, private and deleted collections
    get the same view as a lookup failure so callers can't probe for existence.
    """
    try:
        collection = _public_collection(collection_id)
    except Exception:
        current_app.logger.exception("embed.collection_lookup_failed", extra={"collection_id": collection_id})
        return EmbedDecision(VIEW_UNAVAILABLE)
    if collection is None:
        return EmbedDecision(VIEW_UNAVAILABLE)

    state = lookup_access(collection.user_id)
    view = _VIEW_FOR_STATE[state]
    if state is AccessState.ERROR:
        current_app.logger.warning(
            "embed.access_error",
            extra={"collection_id": collection_id, "user_id": collection.user_id},
        )
    if view != VIEW_PLAYER:
        return EmbedDecision(view)
    return EmbedDecision(view, collection=collection, tracks=_track_list(collection))
