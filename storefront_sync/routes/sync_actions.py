# storefront_sync/routes/sync_actions.py
from flask import Blueprint

from .. import get_services
from ..errors import ValidationError, SyncError
from ..utils.logger import info, warn, error

bp = Blueprint("sync_actions", __name__)


@bp.post("/<doc_id>")
def sync_to_stripe(doc_id):
    """Studio document action: push one product or price to Stripe on demand."""
    info(f"[Sanity ➝ Stripe] manual sync requested for {doc_id}")
    try:
        doc = get_services()["sanity_sync"].sync_by_id(doc_id)
    except ValidationError as e:
        warn(f"[Sanity ➝ Stripe] manual sync rejected for {doc_id}: {e}")
        return {"success": False, "error": str(e)}, 400
    except SyncError as e:
        # e.g. price whose product has not reached Stripe yet
        warn(f"[Sanity ➝ Stripe] manual sync of {doc_id} cannot proceed: {e}")
        return {"success": False, "error": str(e)}, 409
    except Exception as e:
        error(f"[Sanity ➝ Stripe] manual sync failed for {doc_id}: {e}")
        return {"success": False, "error": str(e)}, 500
    return {"success": True, "documentId": doc_id, "documentType": doc.get("_type")}, 200
