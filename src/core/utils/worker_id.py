"""Memorable worker ids for telling pool instances apart in shared logs."""

from coolname import generate_slug

WORKER_ID_PREFIX = "webhook-worker"


def generate_worker_id(prefix: str = WORKER_ID_PREFIX, words: int = 3) -> str:
    """Return ``{prefix}-{slug}``, e.g. ``webhook-worker-brave-golden-tiger``.

    An empty prefix yields the bare slug.
    """
    return "-".join(part for part in (prefix, generate_slug(words)) if part)
