from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any

from fastapi import APIRouter, Body
from fastapi.responses import JSONResponse, Response

from ..audit import log_event
from .config import get_wallet_settings
from .errors import PassGenerationError
from .generator import CONTENT_TYPE, PassGenerator, suggested_filename
from .schemas import parse_pass_request

logger = logging.getLogger(__name__)

# NO "/api" here – prefix is added in main.py
router = APIRouter()


@lru_cache(maxsize=1)
def _get_generator() -> PassGenerator:
    # Template and images are loaded once; credentials are resolved per call.
    return PassGenerator.from_settings(get_wallet_settings())


def _audit(event_type: str, details: dict[str, Any]) -> None:
    try:
        log_event(get_wallet_settings().audit_log, event_type=event_type, details=details)
    except OSError as e:  # pragma: no cover
        logger.warning("audit write failed: %s", e)


@router.post("/wallet/legacy")
def create_legacy_pass(payload: Any = Body(default=None)) -> Response:
    try:
        req = parse_pass_request(payload)
        pkpass = _get_generator().generate(req)
    except PassGenerationError as e:
        state = getattr(e.state, "value", e.state)
        if e.client_error:
            logger.info("wallet pass request rejected: %s", e)
            return JSONResponse({"error": str(e)}, status_code=400)

        logger.error("wallet pass generation failed: kind=%s state=%s detail=%s", e.kind, state, e)
        _audit("pass_failed", {"kind": e.kind, "state": state})
        return JSONResponse({"error": "Failed to generate wallet pass"}, status_code=500)

    _audit("pass_generated", {"serial_number": req.serial_number, "size_bytes": len(pkpass)})
    return Response(
        content=pkpass,
        media_type=CONTENT_TYPE,
        headers={"Content-Disposition": f"attachment; filename={suggested_filename(req.serial_number)}"},
    )
