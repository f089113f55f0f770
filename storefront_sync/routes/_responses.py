import time
import uuid
from datetime import datetime, timezone


def request_id() -> str:
    return uuid.uuid4().hex[:7]


def timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def elapsed_ms(start: float) -> int:
    return int((time.time() - start) * 1000)


def problem(message: str, status: int, rid: str, **extra):
    body = {"error": message, "requestId": rid, "timestamp": timestamp()}
    body.update({k: v for k, v in extra.items() if v is not None})
    return body, status
