# app/api/v1/endpoints/tracking.py
"""
Public tracking endpoints hit by mail clients and recipients.

These routes are unauthenticated. Clicks and unsubscribes are rate limited
per client address; the open pixel is not, since mail providers fetch images
for many recipients through a few shared proxies. The pixel always answers
with the image and a click always redirects, so a tracking failure never
reaches the recipient.
"""

import base64
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import HTMLResponse, RedirectResponse, Response
from sqlalchemy.orm import Session

from app.core.limiter import limiter
from app.db.session import get_db
from app.services.campaigns import tracking_service

logger = logging.getLogger(__name__)

router = APIRouter()

TRACKING_PIXEL = base64.b64decode("R0lGODlhAQABAIAAAAAAAP///yH5BAEAAAAALAAAAAABAAEAAAIBRAA7")

_UNSUBSCRIBED_PAGE = """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>Unsubscribed</title></head>
<body style="font-family: sans-serif; text-align: center; padding: 48px;">
<h1>You have been unsubscribed</h1>
<p>You will no longer receive campaign emails from us.</p>
</body>
</html>"""


def _client_ip(request: Request):
    return request.client.host if request.client else None


@router.get("/t/open/{token}", include_in_schema=False)
def track_open(request: Request, token: str, db: Session = Depends(get_db)):
    try:
        tracking_service.record_open(
            db,
            token=token,
            ip_address=_client_ip(request),
            user_agent=request.headers.get("user-agent"),
        )
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to record open for token {token}: {e}", exc_info=True)

    return Response(
        content=TRACKING_PIXEL,
        media_type="image/gif",
        headers={"Cache-Control": "no-store, no-cache, must-revalidate, max-age=0"},
    )


@router.get("/t/click/{link_id}", include_in_schema=False)
@limiter.limit("120/minute")
def track_click(request: Request, link_id: str, db: Session = Depends(get_db)):
    url = tracking_service.record_click(
        db,
        link_id=link_id,
        ip_address=_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    if url is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Link not found")
    return RedirectResponse(url=url, status_code=status.HTTP_302_FOUND)


@router.get("/unsubscribe/{token}", response_class=HTMLResponse, include_in_schema=False)
@limiter.limit("30/minute")
def unsubscribe_page(request: Request, token: str, db: Session = Depends(get_db)):
    if not tracking_service.unsubscribe(db, token=token):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown unsubscribe link")
    return HTMLResponse(content=_UNSUBSCRIBED_PAGE)


@router.post("/unsubscribe/{token}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("30/minute")
def unsubscribe_one_click(request: Request, token: str, db: Session = Depends(get_db)):
    """RFC 8058 one-click unsubscribe, posted by the mail client."""
    if not tracking_service.unsubscribe(db, token=token):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown unsubscribe link")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
