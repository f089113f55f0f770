import requests

from ..errors import ContentStoreError, TransientWriteError
from ..utils.retry import http_retry

TRANSIENT_STATUSES = (409, 429, 502, 503, 504)


def api_base(project_id: str, api_version: str) -> str:
    return f"https://{project_id}.api.sanity.io/v{api_version}"


def auth_headers(token: str | None) -> dict:
    headers = {"Content-Type": "application/json"}
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return headers


def _check(r: requests.Response, what: str) -> dict:
    if r.status_code in TRANSIENT_STATUSES:
        raise TransientWriteError(f"{what} {r.status_code}: {r.text}", r.status_code)
    if r.status_code >= 400:
        raise ContentStoreError(f"{what} failed {r.status_code}: {r.text}", r.status_code)
    return r.json()


class SanityClient:
    """Thin wrapper over the Sanity HTTP query and mutation endpoints."""

    def __init__(self, project_id: str, dataset: str, token: str | None, api_version: str, session=None):
        if not project_id:
            raise ValueError("SANITY_PROJECT_ID is required")
        self.dataset = dataset
        self.token = token
        self.base = api_base(project_id, api_version)
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls, cfg: dict) -> "SanityClient":
        return cls(cfg["project_id"], cfg["dataset"], cfg.get("token"), cfg["api_version"])

    @http_retry()
    def query(self, groq: str, params: dict | None = None):
        # perspective=raw so drafts and published documents are both visible to the sync
        r = self.session.post(
            f"{self.base}/data/query/{self.dataset}",
            params={"perspective": "raw"},
            headers=auth_headers(self.token),
            json={"query": groq, "params": params or {}},
            timeout=25,
        )
        return _check(r, "query").get("result")

    @http_retry(network=False)
    def mutate(self, mutations: list[dict]) -> dict:
        r = self.session.post(
            f"{self.base}/data/mutate/{self.dataset}",
            params={"returnIds": "true", "returnDocuments": "true", "visibility": "sync"},
            headers=auth_headers(self.token),
            json={"mutations": mutations},
            timeout=40,
        )
        return _check(r, "mutate")

    # -----------------------------------------------------
    # Mutation shorthands
    # -----------------------------------------------------

    def create_or_replace(self, doc: dict) -> dict:
        return self.first_document(self.mutate([{"createOrReplace": doc}]))

    def patch(self, doc_id: str, set: dict | None = None, unset: list[str] | None = None,
              inc: dict | None = None, set_if_missing: dict | None = None,
              insert: dict | None = None) -> dict:
        ops = {"id": doc_id}
        if set_if_missing:
            ops["setIfMissing"] = set_if_missing
        if set:
            ops["set"] = set
        if unset:
            ops["unset"] = unset
        if inc:
            ops["inc"] = inc
        if insert:
            ops["insert"] = insert
        return self.first_document(self.mutate([{"patch": ops}]))

    @staticmethod
    def first_document(resp: dict) -> dict:
        results = resp.get("results") or []
        if results and results[0].get("document"):
            return results[0]["document"]
        return {"_id": results[0].get("id") if results else None, "transactionId": resp.get("transactionId")}
