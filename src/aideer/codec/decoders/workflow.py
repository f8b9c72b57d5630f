"""ComfyUI-style workflow graphs stored as plain JSON text."""

from __future__ import annotations

import json
from typing import Any

from aideer.codec.errors import PayloadDecodeError


def decode_workflow(text: str, *, keyword: str = "workflow") -> Any:
    """Parse the workflow JSON and return it verbatim."""

    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise PayloadDecodeError(f"Invalid workflow JSON: {exc}", keyword=keyword) from exc
    except RecursionError as exc:
        raise PayloadDecodeError("Workflow JSON is nested too deeply", keyword=keyword) from exc
