"""API routes for upload and conversion."""
import logging
import re
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, BackgroundTasks, File, HTTPException, Response, UploadFile
from pydantic import BaseModel, Field

from converter.batch import get_batch
from converter.config import (
    DEFAULT_BACKGROUND,
    DEFAULT_QUALITY,
    DEFAULT_TYPE,
    MAX_IMAGE_SIZE_BYTES,
    MAX_IMAGES_PER_UPLOAD,
)
from converter.conversion.models import (
    ConversionItem,
    ConversionOptions,
    FitMode,
    ResizeQuality,
    SizeMode,
    SmoothingQuality,
)
from converter.conversion.service import format_bytes, get_conversion_service

logger = logging.getLogger("converter.api")
router = APIRouter(prefix="/api", tags=["converter"])
_NON_ASCII = re.compile(r"[^\x20-\x7e]")


class OptionsIn(BaseModel):
    """Conversion options as sent by the client. Clamped on the way in."""

    type: str = DEFAULT_TYPE
    quality: float = DEFAULT_QUALITY
    size_mode: SizeMode = SizeMode.NONE
    width: float = Field(0, ge=0)
    height: float = Field(0, ge=0)
    scale_pct: Optional[float] = 100
    fit: FitMode = FitMode.KEEP
    background: str = DEFAULT_BACKGROUND
    smoothing: bool = True
    smoothing_quality: SmoothingQuality = SmoothingQuality.HIGH
    bmp_resize_quality: ResizeQuality = ResizeQuality.OFF

    def to_options(self) -> ConversionOptions:
        return ConversionOptions(
            type=self.type,
            quality=self.quality,
            size_mode=self.size_mode,
            width=self.width,
            height=self.height,
            scale_pct=self.scale_pct,
            fit=self.fit,
            background=self.background,
            smoothing=self.smoothing,
            smoothing_quality=self.smoothing_quality,
            bmp_resize_quality=self.bmp_resize_quality,
        ).normalized()


def _item_to_dict(item: ConversionItem) -> dict:
    out = item.output
    return {
        "id": item.id,
        "name": item.name,
        "type": item.source.type,
        "size": item.source.size,
        "size_label": format_bytes(item.source.size),
        "width": item.width,
        "height": item.height,
        "status": item.status.value,
        "error": item.error,
        "output": None if out is None else {
            "name": out.name,
            "type": out.type,
            "size": out.size,
            "size_label": format_bytes(out.size),
            "width": out.width,
            "height": out.height,
        },
    }


def _get_item_or_404(item_id: str) -> ConversionItem:
    item = get_conversion_service().get_item(item_id)
    if not item:
        raise HTTPException(404, "Item not found")
    return item


def _content_disposition(filename: str) -> str:
    """Attachment header with an ASCII fallback name and the UTF-8 name per RFC 5987."""
    quoted = quote(filename)
    if quoted == filename:
        return f'attachment; filename="{filename}"'
    fallback = _NON_ASCII.sub("_", filename)
    return f"attachment; filename=\"{fallback}\"; filename*=utf-8''{quoted}"


def _check_supported(options: ConversionOptions) -> None:
    supported = get_conversion_service().supported_types()
    if options.type not in supported:
        raise HTTPException(400, f"Unsupported output type: {options.type}")


@router.get("/health")
def health():
    return {"status": "ok"}


@router.get("/limits")
def get_limits():
    """Return upload limits for the client."""
    return {
        "max_images_per_upload": MAX_IMAGES_PER_UPLOAD,
        "max_image_size_mb": MAX_IMAGE_SIZE_BYTES // (1024 * 1024),
        "max_image_size_bytes": MAX_IMAGE_SIZE_BYTES,
    }


@router.get("/formats")
def get_formats():
    return {
        "output": get_conversion_service().supported_types(),
        "fit": [m.value for m in FitMode],
        "size_mode": [m.value for m in SizeMode],
        "bmp_resize_quality": [q.value for q in ResizeQuality],
    }


@router.post("/items")
async def upload_items(files: list[UploadFile] = File(...)):
    """Upload images; each becomes a ready item."""
    if len(files) > MAX_IMAGES_PER_UPLOAD:
        raise HTTPException(400, f"Too many files (max {MAX_IMAGES_PER_UPLOAD})")
    max_mb = MAX_IMAGE_SIZE_BYTES // (1024 * 1024)
    svc = get_conversion_service()
    added = []
    for file in files:
        content_type = file.content_type or ""
        if not content_type.startswith("image/"):
            raise HTTPException(400, f"Unsupported file type: {content_type or 'unknown'}")
        data = await file.read(MAX_IMAGE_SIZE_BYTES + 1)
        if len(data) > MAX_IMAGE_SIZE_BYTES:
            raise HTTPException(413, f"File too large (max {max_mb} MB)")
        item = await svc.add_item(file.filename or "image", data, content_type)
        added.append(_item_to_dict(item))
    return {"items": added}


@router.get("/items")
def list_items():
    return {"items": [_item_to_dict(i) for i in get_conversion_service().list_items()]}


@router.get("/items/{item_id}")
def get_item(item_id: str):
    return _item_to_dict(_get_item_or_404(item_id))


@router.delete("/items/{item_id}")
def delete_item(item_id: str):
    if not get_conversion_service().remove_item(item_id):
        raise HTTPException(404, "Item not found")
    return {"ok": True}


@router.post("/items/{item_id}/convert")
async def convert_item(item_id: str, options: Optional[OptionsIn] = None):
    """Convert one item and return its terminal state."""
    _get_item_or_404(item_id)
    opts = (options or OptionsIn()).to_options()
    _check_supported(opts)
    item = await get_conversion_service().convert_one(item_id, opts)
    return _item_to_dict(item)


@router.get("/items/{item_id}/output")
def download_output(item_id: str):
    """Download the converted payload of an item."""
    item = _get_item_or_404(item_id)
    if item.output is None:
        raise HTTPException(404, "No output for this item")
    return Response(
        content=item.output.data,
        media_type=item.output.type,
        headers={"Content-Disposition": _content_disposition(item.output.name)},
    )


@router.post("/convert-all")
async def convert_all(background_tasks: BackgroundTasks, options: Optional[OptionsIn] = None):
    """Start converting every item. Poll /api/batch/{batch_id} for progress."""
    svc = get_conversion_service()
    if not svc.list_items():
        raise HTTPException(400, "No items to convert")
    opts = (options or OptionsIn()).to_options()
    _check_supported(opts)
    job = svc.start_batch()

    async def run_batch_async():
        await svc.convert_all(opts, job=job)

    background_tasks.add_task(run_batch_async)
    return {"batch_id": job.batch_id, "status": job.status, "total": job.total}


@router.get("/batch/{batch_id}")
def batch_status(batch_id: str):
    """Get batch progress; done/failed counts present when status=completed."""
    job = get_batch(batch_id)
    if not job:
        raise HTTPException(404, "Batch not found")
    return {
        "batch_id": job.batch_id,
        "status": job.status,
        "item_ids": job.item_ids,
        "completed": job.completed,
        "total": job.total,
        "done": job.done,
        "failed": job.failed,
    }
