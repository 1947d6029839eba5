from __future__ import annotations

import uuid


def new_id() -> str:
    """Opaque identifier shared by the remote store and the local cache."""
    return str(uuid.uuid4())
