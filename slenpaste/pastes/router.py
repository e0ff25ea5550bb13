from __future__ import annotations

import io
import mimetypes
import tempfile
from typing import BinaryIO, Optional, Tuple

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse, PlainTextResponse, StreamingResponse
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile

from slenpaste.core.deps import SettingsDep, StoreDep, admit
from slenpaste.core.errors import UploadTooLargeError
from slenpaste.pastes.locators import safe_extension
from slenpaste.pastes.policy import parse_selector

router = APIRouter(tags=["pastes"])

# Raw bodies are kept in memory up to this size, then spill to disk.
_SPOOL_MAX_MEMORY = 1 << 20
# Room for boundaries and form fields around a maximum-size file part.
_MULTIPART_OVERHEAD = 64 * 1024

_INDEX_TEMPLATE = """<html><body><pre>Welcome to slenpaste!

Upload a file:
  curl -F 'file=@yourfile.txt' -F 'expiry=1h' {base}/

Upload from stdin (no file param, expire after 5m):
  curl --data-binary @- {base}/?expiry=5m &lt; yourfile.txt

Upload from stdin and expire on first view:
  cat yourfile.txt | curl --data-binary @- "{base}/?expiry=view"

</pre>
<form enctype="multipart/form-data" method="post">
	<input type="file" name="file">

	<fieldset style="margin-top: 1rem">
		<legend>Expiry:</legend>
		<label><input type="radio" name="expiry" value="0" checked> Never</label>
		<label><input type="radio" name="expiry" value="5m"> 5 minutes</label>
		<label><input type="radio" name="expiry" value="1h"> 1 hour</label>
		<label><input type="radio" name="expiry" value="24h"> 1 day</label>
		<label><input type="radio" name="expiry" value="view"> Expire on first view</label>
	</fieldset><br/>

	<input type="submit" value="Upload">
</form>
</body></html>"""


# ---------------------------------------------------------------------
# GET /
# ---------------------------------------------------------------------
@router.get("/", response_class=HTMLResponse)
def index(settings: SettingsDep):
    return HTMLResponse(_INDEX_TEMPLATE.format(base=settings.server.base_url))


# ---------------------------------------------------------------------
# POST /
# ---------------------------------------------------------------------
def _check_declared_length(request: Request, limit: int) -> None:
    allowed = limit
    if request.headers.get("content-type", "").startswith("multipart/form-data"):
        allowed += _MULTIPART_OVERHEAD
    raw = request.headers.get("content-length")
    if raw and raw.isdigit() and int(raw) > allowed:
        raise UploadTooLargeError(limit)


async def _spool_body(request: Request, limit: int) -> BinaryIO:
    spool = tempfile.SpooledTemporaryFile(max_size=_SPOOL_MAX_MEMORY)
    total = 0
    try:
        async for chunk in request.stream():
            total += len(chunk)
            if total > limit:
                raise UploadTooLargeError(limit)
            spool.write(chunk)
    except BaseException:
        spool.close()
        raise
    spool.seek(0)
    return spool


def _capped_multipart(request: Request, limit: int) -> Request:
    """
    A view of `request` whose body raises UploadTooLargeError once it grows
    past `limit` plus the multipart slack. Covers chunked bodies that carry
    no Content-Length.
    """
    allowed = limit + _MULTIPART_OVERHEAD
    receive = request.receive
    total = 0

    async def capped_receive():
        nonlocal total
        message = await receive()
        if message["type"] == "http.request":
            total += len(message.get("body", b""))
            if total > allowed:
                raise UploadTooLargeError(limit)
        return message

    return Request(request.scope, receive=capped_receive)


async def _read_upload(request: Request, limit: int) -> Tuple[BinaryIO, Optional[str], Optional[str]]:
    """
    Returns (stream, filename, form expiry) for either a multipart form
    (field "file", optional field "expiry") or a raw request body.
    """
    content_type = request.headers.get("content-type", "")
    if not content_type.startswith("multipart/form-data"):
        return await _spool_body(request, limit), None, None

    form = await _capped_multipart(request, limit).form()
    expiry = form.get("expiry")
    expiry = expiry if isinstance(expiry, str) else None

    part = form.get("file")
    if isinstance(part, UploadFile):
        return part.file, part.filename, expiry
    if isinstance(part, str):
        return io.BytesIO(part.encode("utf-8")), None, expiry
    return io.BytesIO(b""), None, expiry


@router.post("/", response_class=PlainTextResponse, dependencies=[Depends(admit)])
async def upload(request: Request, store: StoreDep, settings: SettingsDep, expiry: Optional[str] = None):
    """
    Store the request body (raw or multipart "file") and return its URL.

    The expiry selector comes from the query string, then the form, then
    DEFAULT_EXPIRY.
    """
    limit = settings.pastes.max_upload_bytes
    _check_declared_length(request, limit)

    stream, filename, form_expiry = await _read_upload(request, limit)
    try:
        selector = expiry if expiry is not None else form_expiry
        if selector is None:
            selector = settings.pastes.default_expiry
        policy = parse_selector(selector, now=store.now())
        extension = safe_extension(filename, default=settings.pastes.default_extension)

        locator = await run_in_threadpool(store.put, stream, policy, extension)
    finally:
        stream.close()

    return PlainTextResponse(f"{settings.server.base_url}/{locator}\n")


# ---------------------------------------------------------------------
# GET /{locator}
# ---------------------------------------------------------------------
@router.get("/{locator}", dependencies=[Depends(admit)])
def view(locator: str, store: StoreDep):
    paste = store.get(locator)
    media_type = mimetypes.guess_type(locator)[0] or "application/octet-stream"
    return StreamingResponse(
        paste.chunks,
        media_type=media_type,
        headers={
            "Content-Length": str(paste.length),
            "X-Content-Type-Options": "nosniff",
        },
    )
