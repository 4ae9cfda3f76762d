import hmac
from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException
from fastapi.responses import PlainTextResponse, Response
from .schemas import (
    SyncRun,
    StatusResponse,
    ClientCreate,
    PositionCreate,
    PositionPatch,
    PricesUpdate,
    TextBody,
    SheetRequest,
    ShareResponse,
    ShareDecodeRequest,
)
from ..config import settings
from ..errors import FcnError, ImportParseError, NotFoundError, ShareCodecError, StoreError
from ..models import Position
from ..pipeline.export import export_csv
from ..pipeline.locking import held_lock
from ..pipeline.orchestrator import (
    WRITE_LOCK,
    apply_price_paste,
    get_status,
    get_store,
    import_portfolio_text,
    trigger_import,
    trigger_price_sync,
)
from ..pipeline.risk import classify_all, summarize
from ..share.links import build_share_payload, decode_share, export_json, share_fragment
from ..store import PortfolioStore

def require_secret(x_app_secret: str | None = Header(default=None)):
    expected = settings.app_secret
    if not expected:
        return
    if not x_app_secret or not hmac.compare_digest(x_app_secret.encode(), expected.encode()):
        raise HTTPException(401, 'invalid secret')

router = APIRouter(dependencies=[Depends(require_secret)])

def _http_error(exc: FcnError) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(404, str(exc))
    if isinstance(exc, StoreError) and str(exc) == 'lock_held':
        return HTTPException(409, 'another import or sync is running')
    if isinstance(exc, (ImportParseError, ShareCodecError, StoreError)):
        return HTTPException(400, str(exc))
    return HTTPException(502, str(exc))

def _views_json(views):
    return [v.model_dump(by_alias=True, mode='json') for v in views]

@router.get(
    '/health',
    summary="Health check",
    description="Returns store counts and the last price update label.",
    tags=["Health"],
)
def health(store: PortfolioStore = Depends(get_store)):
    return {
        'ok': True,
        'clients': len(store.clients),
        'positions': len(store.positions),
        'prices': len(store.prices),
        'last_updated': store.last_updated,
    }

@router.get('/clients', tags=["Clients"])
def list_clients(store: PortfolioStore = Depends(get_store)):
    return [c.model_dump(by_alias=True) for c in store.clients]

@router.post('/clients', status_code=201, tags=["Clients"])
def add_client(req: ClientCreate, store: PortfolioStore = Depends(get_store)):
    try:
        return store.add_client(req.name).model_dump(by_alias=True)
    except FcnError as e:
        raise _http_error(e)

@router.delete(
    '/clients/{client_id}',
    summary="Delete client",
    description="Deletes the client and all of its positions. The last client cannot be deleted.",
    tags=["Clients"],
)
def delete_client(client_id: str, store: PortfolioStore = Depends(get_store)):
    try:
        store.delete_client(client_id)
    except FcnError as e:
        raise _http_error(e)
    return {'ok': True}

@router.get(
    '/clients/{client_id}/positions',
    summary="Positions with risk",
    description="Positions of a client with per-underlying performance, laggard, risk status and monthly coupon.",
    tags=["Positions"],
)
def client_positions(client_id: str, store: PortfolioStore = Depends(get_store)):
    try:
        store.get_client(client_id)
    except FcnError as e:
        raise _http_error(e)
    return _views_json(store.risk_views(client_id))

@router.post('/clients/{client_id}/positions', status_code=201, tags=["Positions"])
def add_position(client_id: str, req: PositionCreate, store: PortfolioStore = Depends(get_store)):
    try:
        pos = store.add_position(client_id, req.model_dump(by_alias=True))
    except FcnError as e:
        raise _http_error(e)
    return pos.model_dump(by_alias=True)

@router.patch('/positions/{position_id}', tags=["Positions"])
def update_position(position_id: str, req: PositionPatch, store: PortfolioStore = Depends(get_store)):
    try:
        pos = store.update_position(position_id, req.fields)
    except FcnError as e:
        raise _http_error(e)
    except ValueError as e:
        raise HTTPException(400, str(e))
    return pos.model_dump(by_alias=True)

@router.delete('/positions/{position_id}', tags=["Positions"])
def delete_position(position_id: str, store: PortfolioStore = Depends(get_store)):
    try:
        store.delete_position(position_id)
    except FcnError as e:
        raise _http_error(e)
    return {'ok': True}

@router.get('/summary', tags=["Positions"])
def summary(client_id: str | None = None, store: PortfolioStore = Depends(get_store)):
    return store.summary(client_id)

@router.get('/prices', tags=["Prices"])
def list_prices(store: PortfolioStore = Depends(get_store)):
    return {
        'prices': store.prices,
        'active_tickers': store.active_tickers(),
        'last_updated': store.last_updated,
        'sheet_id': store.sheet_id,
    }

@router.post('/prices', tags=["Prices"])
def set_prices(req: PricesUpdate, store: PortfolioStore = Depends(get_store)):
    count = store.update_prices(req.prices, source="manual")
    return {'ok': True, 'updated': count}

@router.post(
    '/prices/paste',
    summary="Paste prices",
    description="Parses pasted 'TICKER PRICE' lines and overwrites matching prices.",
    tags=["Prices"],
)
def paste_prices(req: TextBody, store: PortfolioStore = Depends(get_store)):
    return {'ok': True, 'updated': apply_price_paste(store, req.text)}

@router.post(
    '/prices/sync',
    response_model=SyncRun,
    status_code=202,
    summary="Sync prices from sheet",
    description="Fetches the configured (or given) sheet in the background and overwrites prices.",
    tags=["Prices"],
)
def sync_prices(req: SheetRequest, background: BackgroundTasks, store: PortfolioStore = Depends(get_store)):
    if not (req.source or store.sheet_id):
        raise HTTPException(400, 'no sheet configured')
    return SyncRun(run_id=trigger_price_sync(background, req.source, store))

@router.post(
    '/import/text',
    summary="Import pasted CSV/HTML",
    description="Replaces all clients and positions with the parsed content.",
    tags=["Import"],
)
def import_text(req: TextBody, store: PortfolioStore = Depends(get_store)):
    try:
        with held_lock(store.conn, WRITE_LOCK, "import_text"):
            result = import_portfolio_text(store, req.text)
    except FcnError as e:
        raise _http_error(e)
    return {
        'ok': True,
        'clients': len(result.clients),
        'positions': len(result.positions),
        'skipped_rows': result.skipped_rows,
    }

@router.post(
    '/import/sheet',
    response_model=SyncRun,
    status_code=202,
    summary="Import from sheet",
    description="Fetches a published sheet (id or URL) in the background and replaces the portfolio.",
    tags=["Import"],
)
def import_sheet(req: SheetRequest, background: BackgroundTasks, store: PortfolioStore = Depends(get_store)):
    if not req.source:
        raise HTTPException(400, 'source is required')
    return SyncRun(run_id=trigger_import(background, req.source, store))

@router.get(
    '/status/{run_id}',
    response_model=StatusResponse,
    summary="Get run status",
    description="Return status for a given import or price-sync run.",
    tags=["Import"],
)
def status(run_id: str, store: PortfolioStore = Depends(get_store)):
    st = get_status(run_id, store)
    if not st:
        raise HTTPException(404, 'run not found')
    return st

@router.get('/export/csv', tags=["Export"])
def export_csv_file(client_id: str | None = None, store: PortfolioStore = Depends(get_store)):
    names = {c.id: c.name for c in store.clients}
    content = export_csv(store.risk_views(client_id), names, bom=True)
    return Response(
        content=content.encode("utf-8"),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": 'attachment; filename="FCN_Portfolio.csv"'},
    )

@router.get('/export/json/{client_id}', tags=["Export"])
def export_json_file(client_id: str, store: PortfolioStore = Depends(get_store)):
    try:
        payload = build_share_payload(store, client_id)
    except FcnError as e:
        raise _http_error(e)
    return PlainTextResponse(export_json(payload), media_type="application/json")

@router.get(
    '/share/{client_id}',
    response_model=ShareResponse,
    summary="Create share link",
    description="Encodes the client's positions and relevant prices into a #share= fragment.",
    tags=["Share"],
)
def create_share(client_id: str, store: PortfolioStore = Depends(get_store)):
    try:
        fragment = share_fragment(build_share_payload(store, client_id))
    except FcnError as e:
        raise _http_error(e)
    url = f"{settings.share_base_url.rstrip('/')}/{fragment}" if settings.share_base_url else None
    return ShareResponse(fragment=fragment, url=url)

@router.post(
    '/share/decode',
    summary="Open share link",
    description="Decodes a share fragment and returns the guest view with risk classification.",
    tags=["Share"],
)
def open_share(req: ShareDecodeRequest):
    try:
        payload = decode_share(req.share)
    except FcnError as e:
        raise _http_error(e)
    positions = [Position.model_validate(p) for p in payload["positions"]]
    views = classify_all(positions, payload["prices"])
    return {
        'client_name': payload["clientName"],
        'last_updated': payload["lastUpdated"],
        'prices': payload["prices"],
        'positions': _views_json(views),
        'summary': summarize(views),
    }
