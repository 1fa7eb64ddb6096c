from __future__ import annotations

import argparse
import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, FastAPI, Query, Request
from fastapi.responses import FileResponse, JSONResponse, PlainTextResponse, Response
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile

from filejail_backend.config import (
    DEFAULT_PORT,
    MAX_UPLOAD_BYTES,
    SESSION_COOKIE,
    SESSION_TTL_SECONDS,
    SHARED_ROOT,
    SWEEP_INTERVAL_SECONDS,
    configure_logging,
)
from filejail_backend.errors import ClientInputError, FileJailError
from filejail_backend.navigation import navigate
from filejail_backend.operations import (
    create_directory,
    delete_path,
    format_listing,
    list_directory,
    open_file,
    save_upload,
)
from filejail_backend.security import virtual_path
from filejail_backend.sessions import Session, SessionStore, run_sweeper


log = logging.getLogger("filejail_backend.server")

router = APIRouter()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Expire idle sessions in the background for as long as the app runs.
    task = asyncio.create_task(run_sweeper(app.state.store, app.state.sweep_interval))
    app.state._sweep_task = task
    try:
        yield
    finally:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass


async def _bind_session(request: Request, call_next):
    client = f"{request.client.host}:{request.client.port}" if request.client else "-"
    log.info("[%s] %s %s", client, request.method, request.url)

    store: SessionStore = request.app.state.store
    session, created = store.resolve(request.cookies.get(SESSION_COOKIE))
    request.state.session = session

    response = await call_next(request)
    # Answers depend on per-session state.
    response.headers["Cache-Control"] = "no-store"
    if created and session.token in store:
        response.set_cookie(SESSION_COOKIE, session.token, httponly=True, path="/")
    return response


async def _filejail_error(request: Request, exc: FileJailError) -> JSONResponse:
    if exc.status_code >= 500:
        log.error("%s %s failed: %s (%s)", request.method, request.url.path, exc.message, exc.__cause__)
    return JSONResponse({"detail": exc.message}, status_code=exc.status_code)


def _session(request: Request) -> Session:
    return request.state.session


def _store(request: Request) -> SessionStore:
    return request.app.state.store


@router.get("/files")
async def files(request: Request, fmt: str = Query("text", alias="format")) -> Response:
    store = _store(request)
    listing = await run_in_threadpool(list_directory, store.root, _session(request).current_dir)
    if fmt == "json":
        return JSONResponse(listing.model_dump())
    return PlainTextResponse(format_listing(listing))


@router.post("/upload")
async def upload(request: Request) -> PlainTextResponse:
    store = _store(request)
    current_dir = _session(request).current_dir
    try:
        form = await request.form()
    except Exception as e:
        raise ClientInputError("Error parsing form") from e
    try:
        file = form.get("file")
        if not isinstance(file, UploadFile):
            raise ClientInputError("Error retrieving file")
        written = await run_in_threadpool(
            save_upload,
            store.root,
            current_dir,
            file.filename,
            file.file,
            request.app.state.max_upload_bytes,
        )
    finally:
        await form.close()
    log.info("Upload of %s bytes into %s", written, virtual_path(current_dir, store.root))
    return PlainTextResponse("File uploaded successfully\n")


@router.get("/download")
async def download(request: Request, file: Optional[str] = None) -> FileResponse:
    store = _store(request)
    path, _size = await run_in_threadpool(open_file, store.root, _session(request).current_dir, file)
    # FileResponse stats the file and sets Content-Length itself.
    return FileResponse(
        path,
        media_type="application/octet-stream",
        filename=path.name,
        headers={"X-Content-Type-Options": "nosniff"},
    )


@router.get("/cat")
async def cat(request: Request, file: Optional[str] = None) -> FileResponse:
    store = _store(request)
    path, _size = await run_in_threadpool(open_file, store.root, _session(request).current_dir, file)
    return FileResponse(
        path,
        media_type="text/plain; charset=utf-8",
        headers={"X-Content-Type-Options": "nosniff"},
    )


@router.api_route("/delete", methods=["GET", "DELETE"])
async def delete(request: Request, file: Optional[str] = None) -> PlainTextResponse:
    store = _store(request)
    await run_in_threadpool(delete_path, store.root, _session(request).current_dir, file)
    return PlainTextResponse("File deleted successfully\n")


@router.get("/cd")
async def change_directory(request: Request, dir_name: Optional[str] = Query(None, alias="dir")) -> PlainTextResponse:
    store = _store(request)
    session = _session(request)
    new_dir = await run_in_threadpool(navigate, store, session.token, session.current_dir, dir_name)
    return PlainTextResponse(f"Directory changed to {virtual_path(new_dir, store.root)}")


@router.api_route("/mkdir", methods=["GET", "POST"])
async def make_directory(request: Request, dir_name: Optional[str] = Query(None, alias="dir")) -> PlainTextResponse:
    store = _store(request)
    await run_in_threadpool(create_directory, store.root, _session(request).current_dir, dir_name)
    return PlainTextResponse("Directory created\n")


@router.api_route("/quit", methods=["GET", "POST"])
async def quit_session(request: Request) -> PlainTextResponse:
    _store(request).remove(_session(request).token)
    return PlainTextResponse("Connection closed\n")


def create_app(
    root: Path | str | None = None,
    store: SessionStore | None = None,
    sweep_interval: float | None = None,
    max_upload_bytes: int | None = None,
) -> FastAPI:
    if store is None:
        root_path = Path(root) if root is not None else SHARED_ROOT
        root_path.mkdir(parents=True, exist_ok=True)
        store = SessionStore(root_path, SESSION_TTL_SECONDS)

    app = FastAPI(lifespan=lifespan)
    app.state.store = store
    app.state.sweep_interval = SWEEP_INTERVAL_SECONDS if sweep_interval is None else sweep_interval
    app.state.max_upload_bytes = MAX_UPLOAD_BYTES if max_upload_bytes is None else max_upload_bytes

    app.add_exception_handler(FileJailError, _filejail_error)
    app.middleware("http")(_bind_session)
    app.include_router(router)
    return app


app = create_app()


def main() -> None:
    parser = argparse.ArgumentParser(description="Serve one directory to session-bound remote clients.")
    parser.add_argument("-f", "--folder", default=str(SHARED_ROOT), help="directory to serve")
    parser.add_argument("-p", "--port", type=int, default=DEFAULT_PORT)
    parser.add_argument("--host", default="127.0.0.1")
    args = parser.parse_args()

    configure_logging()
    root = Path(args.folder)
    if not root.is_dir():
        parser.error(f"not a directory: {root}")

    import uvicorn

    log.info("Server starting on %s:%d with root %s", args.host, args.port, root.resolve())
    uvicorn.run(create_app(root=root), host=args.host, port=args.port)


if __name__ == "__main__":
    main()
