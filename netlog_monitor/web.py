# web.py
import logging
import threading
from datetime import datetime
from typing import List, Optional

import uvicorn
from fastapi import APIRouter, Depends, FastAPI, Form, HTTPException, Request
from fastapi.responses import HTMLResponse, PlainTextResponse
from pydantic import BaseModel

from .report import VendorLookup, build_digest, env, render_digest
from .store import Store

logger = logging.getLogger(__name__)

router = APIRouter()


# ----------------------------
# Schemas
# ----------------------------

class HostOut(BaseModel):
    host: str
    count: int
    last: Optional[datetime] = None


class DeviceOut(BaseModel):
    name: str
    mac: str
    ip: str
    vendor: Optional[str] = None
    at: Optional[datetime] = None
    hosts: List[HostOut] = []


# --- Dependencies ---
def get_store(request: Request) -> Store:
    return request.app.state.store


def _root(request: Request) -> str:
    return request.app.state.root


def _required(value: str, field: str) -> str:
    value = value.strip()
    if not value:
        raise HTTPException(status_code=400, detail=f"{field} is required")
    return value


def _authorized_page(request: Request, store: Store) -> HTMLResponse:
    tpl = env.get_template("authorized_hosts.html.j2")
    return HTMLResponse(tpl.render(hosts=store.authorized_hosts(), root=_root(request)))


def _ignored_page(request: Request, store: Store) -> HTMLResponse:
    tpl = env.get_template("ignored_devices.html.j2")
    return HTMLResponse(tpl.render(devices=store.ignored_devices(), root=_root(request)))


@router.get("/", response_class=PlainTextResponse)
def root():
    return "Welcome to Network Log Monitor"


# --- Authorized hosts ---
@router.get("/authorized-hosts", response_class=HTMLResponse)
def get_authorized_hosts(request: Request, store: Store = Depends(get_store)):
    return _authorized_page(request, store)


@router.post("/authorized-hosts/add", response_class=HTMLResponse)
def add_authorized_host(request: Request, host: str = Form(""), store: Store = Depends(get_store)):
    store.authorize(_required(host, "host"))
    return _authorized_page(request, store)


@router.post("/authorized-hosts/remove", response_class=HTMLResponse)
def remove_authorized_host(request: Request, host: str = Form(""), store: Store = Depends(get_store)):
    store.deauthorize(_required(host, "host"))
    return _authorized_page(request, store)


# --- Ignored devices ---
@router.get("/ignored-devices", response_class=HTMLResponse)
def get_ignored_devices(request: Request, store: Store = Depends(get_store)):
    return _ignored_page(request, store)


@router.post("/ignored-devices/add", response_class=HTMLResponse)
def add_ignored_device(request: Request, mac: str = Form(""), store: Store = Depends(get_store)):
    store.ignore(_required(mac, "mac"))
    return _ignored_page(request, store)


@router.post("/ignored-devices/remove", response_class=HTMLResponse)
def remove_ignored_device(request: Request, mac: str = Form(""), store: Store = Depends(get_store)):
    store.unignore(_required(mac, "mac"))
    return _ignored_page(request, store)


# --- Latest requests (not consumed) ---
@router.get("/latest", response_class=HTMLResponse)
def latest(request: Request, store: Store = Depends(get_store)):
    rows = build_digest(store.snapshot(reset=False), request.app.state.vendors)
    return HTMLResponse(render_digest(rows, _root(request)))


@router.get("/api/latest", response_model=List[DeviceOut])
def latest_json(request: Request, store: Store = Depends(get_store)):
    return build_digest(store.snapshot(reset=False), request.app.state.vendors)


def create_app(store: Store, root: str = "", vendors: Optional[VendorLookup] = None) -> FastAPI:
    app = FastAPI(title="Network Log Monitor", version="1.0.0")
    app.state.store = store
    app.state.root = root.rstrip("/")
    app.state.vendors = vendors
    app.include_router(router)
    return app


class WebServer:
    """Runs the operator UI with uvicorn on a background thread."""

    def __init__(self, app: FastAPI, host: str = "0.0.0.0", port: int = 8080) -> None:
        config = uvicorn.Config(app, host=host, port=port, log_level="warning")
        self.server: uvicorn.Server = uvicorn.Server(config)
        self.thread: Optional[threading.Thread] = None

    def start(self) -> None:
        logger.info(f"Starting UI on {self.server.config.host}:{self.server.config.port}")
        self.thread = threading.Thread(target=self.server.run, daemon=True)
        self.thread.start()

    def stop(self) -> None:
        self.server.should_exit = True
        if self.thread is not None:
            self.thread.join(timeout=5)
