# linestamp/services/image_generator.py
"""
Placeholder stamp generator.

Stands in for a real image-generation API: it renders one labelled PNG per
prompt with Pillow, uploads them to the bucket and records them as the
stamp's ``processed`` images (plus one ``main`` image). Completion is only
visible through Firestore; callers poll the stamp status.
"""
from __future__ import annotations

import io
import logging
from typing import List, Optional, Protocol, Sequence

from PIL import Image, ImageDraw, ImageFont

from linestamp.models.stamps import PROCESSED_IMAGE_COUNT, ImageType
from linestamp.services.storage_gcp import StampStore, now_iso, stamp_blob_path

logger = logging.getLogger(__name__)

STAMP_SIZE = (370, 320)
MAIN_SIZE = (96, 74)


class ImageGenerator(Protocol):
    def generate(self, stamp_id: str, user_id: str, original_urls: Sequence[str],
                 preset: Optional[dict] = None) -> None: ...


def _hex_to_rgb(value: str, fallback=(255, 255, 255)):
    v = (value or "").lstrip("#")
    if len(v) != 6:
        return fallback
    try:
        return tuple(int(v[i:i + 2], 16) for i in (0, 2, 4))
    except ValueError:
        return fallback


def render_placeholder(sequence: int, size=STAMP_SIZE, background: str = "#FFFFFF",
                       caption: str = "") -> bytes:
    """PNG bytes: a transparent canvas with a rounded tile and the sequence number."""
    img = Image.new("RGBA", size, (255, 255, 255, 0))
    draw = ImageDraw.Draw(img)
    w, h = size
    pad = max(2, min(w, h) // 16)
    draw.rounded_rectangle(
        (pad, pad, w - pad, h - pad),
        radius=max(2, min(w, h) // 8),
        fill=_hex_to_rgb(background) + (255,),
        outline=(128, 128, 128, 255),
        width=max(1, pad // 3),
    )
    font = ImageFont.load_default()
    label = f"Mock {sequence}"
    if caption and w >= 200:
        label = f"{label}\n{caption[:28]}"
    draw.multiline_text((w // 2, h // 2), label, fill=(96, 96, 96, 255), font=font,
                        anchor="mm", align="center")
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


class MockImageGenerator:
    def __init__(self, store: StampStore):
        self.store = store

    def generate(self, stamp_id: str, user_id: str, original_urls: Sequence[str],
                 preset: Optional[dict] = None) -> None:
        preset = preset or {}
        config = preset.get("config") or preset
        prompts: List[str] = list(config.get("prompts") or [])
        background = config.get("backgroundColor") or "#FFFFFF"
        logger.info("Mock image generation started for stamp %s with %d original image(s)",
                    stamp_id, len(original_urls))

        removed = self.store.delete_generated_images(stamp_id)
        if removed:
            logger.info("Cleaning up %d existing generated images for stamp %s", removed, stamp_id)

        records = []
        for i in range(PROCESSED_IMAGE_COUNT):
            sequence = i + 1
            filename = f"processed_{sequence}.png"
            caption = prompts[i] if i < len(prompts) else ""
            data = render_placeholder(sequence, STAMP_SIZE, background, caption)
            url = self.store.upload_bytes(
                stamp_blob_path(user_id, stamp_id, ImageType.PROCESSED.value, filename),
                data, "image/png",
            )
            records.append(self._record(stamp_id, ImageType.PROCESSED, url, sequence, filename))

        main_png = render_placeholder(1, MAIN_SIZE, background)
        main_url = self.store.upload_bytes(
            stamp_blob_path(user_id, stamp_id, ImageType.MAIN.value, "main.png"),
            main_png, "image/png",
        )
        records.append(self._record(stamp_id, ImageType.MAIN, main_url, 1, "main.png"))

        self.store.add_images(records)
        logger.info("Mock image generation completed for stamp %s: %d processed + 1 main",
                    stamp_id, PROCESSED_IMAGE_COUNT)

    @staticmethod
    def _record(stamp_id, image_type: ImageType, url, sequence, filename) -> dict:
        return {
            "stampId": stamp_id,
            "type": image_type.value,
            "url": url,
            "sequence": sequence,
            "filename": filename,
            "createdAt": now_iso(),
        }
