import requests

from .logger import info, warn


class TagCache:
    """Invalidates storefront cache entries by tag.

    Every invalidation is remembered (``invalidated``) and, when a
    revalidation URL is configured, forwarded to the storefront.
    """

    def __init__(self, revalidate_url: str | None = None, secret: str | None = None):
        self.revalidate_url = revalidate_url
        self.secret = secret
        self.invalidated: list[str] = []

    def invalidate(self, *tags: str):
        tags = [t for t in tags if t]
        if not tags:
            return
        self.invalidated.extend(tags)
        info(f"[cache] revalidating tags {', '.join(tags)}")
        if not self.revalidate_url:
            return
        headers = {"Content-Type": "application/json"}
        if self.secret:
            headers["Authorization"] = f"Bearer {self.secret}"
        try:
            r = requests.post(self.revalidate_url, json={"tags": tags}, headers=headers, timeout=10)
            if r.status_code >= 400:
                warn(f"[cache] revalidate failed {r.status_code}: {r.text}")
        except requests.RequestException as e:
            warn(f"[cache] revalidate request error: {e}")
