from fastapi import FastAPI, Depends, HTTPException, Header, Request
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel
from typing import Optional
from .config import settings
from .engine import SyncCoordinator, SyncResult, utc_now
from .errors import FetchError, InvalidSourceError, ParseError, WishListError
from .models import LOCAL_FILE_SOURCE, SyncState
from .notifications import LoggingNotifier, Notifier
from .validator import SUGGESTED_SOURCES, content_security_policy

app = FastAPI(title="Wish List Sync")
coordinator: Optional[SyncCoordinator] = None
notifier: Notifier = LoggingNotifier()

NOTIFICATION_TITLE = "Wish List"

class SyncRequest(BaseModel):
    source: str

@app.middleware("http")
async def add_content_security_policy(request: Request, call_next):
    response = await call_next(request)
    response.headers["Content-Security-Policy"] = content_security_policy()
    return response

def get_token(x_token: Optional[str] = Header(None, alias="X-Token")):
    if settings.HTTP_SERVER_TOKEN and x_token != settings.HTTP_SERVER_TOKEN:
        raise HTTPException(status_code=401, detail="Invalid token")

def get_coordinator() -> SyncCoordinator:
    if not coordinator:
        raise HTTPException(status_code=503, detail="Service is starting")
    return coordinator

def report_failure(e: WishListError) -> HTTPException:
    notifier.error(NOTIFICATION_TITLE, str(e))
    if isinstance(e, InvalidSourceError):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, ParseError):
        return HTTPException(status_code=422, detail=str(e))
    if isinstance(e, FetchError):
        return HTTPException(status_code=502, detail=str(e))
    return HTTPException(status_code=500, detail=str(e))

def summarize(state: SyncState) -> dict:
    return {
        "source": state.source,
        "last_updated": state.last_updated.isoformat() if state.last_updated else None,
        "wishlists_enabled": state.wishlists_enabled,
        "num_rolls": len(state.current.rolls),
        "title": state.current.title,
        "description": state.current.description,
    }

def result_body(result: SyncResult) -> dict:
    body = summarize(result.state)
    body["committed"] = result.committed
    return body

@app.get("/healthz")
def healthz():
    if not coordinator:
        return {"status": "starting"}

    state = coordinator.store.snapshot()
    if state.source == LOCAL_FILE_SOURCE or state.last_updated is None:
        return {"status": "ok"}

    age = (utc_now() - state.last_updated).total_seconds()
    # Lenient: one missed refresh is not yet stale
    if age > settings.WISHLIST_REFRESH_INTERVAL_SECONDS * 2:
        return {"status": "stale", "last_update_age": age}

    return {"status": "ok"}

@app.get("/wishlist", dependencies=[Depends(get_token)])
def wishlist_status(sync: SyncCoordinator = Depends(get_coordinator)):
    body = summarize(sync.store.snapshot())
    body["suggested_sources"] = SUGGESTED_SOURCES
    body["recent_errors"] = [
        {"title": title, "body": text} for title, text in getattr(notifier, "messages", [])
    ]
    return body

@app.post("/wishlist/sync", dependencies=[Depends(get_token)])
async def sync_from_url(req: SyncRequest, sync: SyncCoordinator = Depends(get_coordinator)):
    try:
        result = await sync.sync_from_url(req.source)
    except WishListError as e:
        raise report_failure(e)
    return result_body(result)

@app.post("/wishlist/suggested/{name}", dependencies=[Depends(get_token)])
async def reset_to_suggested(name: str, sync: SyncCoordinator = Depends(get_coordinator)):
    try:
        result = await sync.reset_to_suggested(name)
    except WishListError as e:
        raise report_failure(e)
    return result_body(result)

@app.post("/wishlist/import", dependencies=[Depends(get_token)])
async def import_text(request: Request, clear_first: bool = False, sync: SyncCoordinator = Depends(get_coordinator)):
    raw = await request.body()
    if not raw.strip():
        notifier.error(NOTIFICATION_TITLE, "No file was provided")
        raise HTTPException(status_code=400, detail="No file was provided")

    try:
        text = raw.decode("utf-8-sig")
    except UnicodeDecodeError:
        notifier.error(NOTIFICATION_TITLE, "Wish list file is not UTF-8 text")
        raise HTTPException(status_code=400, detail="Wish list file is not UTF-8 text")

    try:
        result = await run_in_threadpool(sync.sync_from_text, text, LOCAL_FILE_SOURCE, clear_first=clear_first)
    except WishListError as e:
        raise report_failure(e)
    return result_body(result)

@app.delete("/wishlist", dependencies=[Depends(get_token)])
def clear_wishlist(sync: SyncCoordinator = Depends(get_coordinator)):
    sync.clear()
    return summarize(sync.store.snapshot())
