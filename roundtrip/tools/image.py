"""Image generation observer that keeps previews and decodes results."""

import base64
import binascii
from pathlib import Path

from roundtrip.config import get_config
from roundtrip.logging import get_logger
from roundtrip.tools.registry import ImageGenerationHandler
from roundtrip.types.events import ImagePartial, ResponseEvent
from roundtrip.types.items import ImageGenerationCall, ResponseItem
from roundtrip.types.tools import ImageGenerationTool

log = get_logger(__name__)


def _extension_for(declaration: ImageGenerationTool) -> str:
    fmt = (declaration.output_format or "png").strip().lower()
    return "jpg" if fmt == "jpeg" else fmt


class ImageFileSink(ImageGenerationHandler):
    """Collect partial previews and final images of image_generation calls.

    Finished images are decoded into ``images`` (keyed by call id) and, when
    an output directory is configured, written as ``<call_id>.<ext>``.
    """

    def __init__(
        self,
        declaration: ImageGenerationTool | None = None,
        output_dir: Path | str | None = None,
    ):
        super().__init__(declaration)
        configured = output_dir if output_dir is not None else get_config().tools.images.output_dir
        self.output_dir = Path(configured).expanduser() if configured else None
        self.partials: list[ImagePartial] = []
        self.images: dict[str, bytes] = {}
        self.saved_paths: dict[str, Path] = {}

    async def on_event(self, event: ResponseEvent) -> None:
        if isinstance(event, ImagePartial):
            log.debug(
                "Image preview received",
                item_id=event.item_id,
                partial_image_index=event.partial_image_index,
                size=len(event.partial_image_b64),
            )
            self.partials.append(event)

    async def on_call(self, item: ResponseItem) -> None:
        if not isinstance(item, ImageGenerationCall) or not item.result:
            return

        try:
            data = base64.b64decode(item.result, validate=True)
        except (binascii.Error, ValueError) as e:
            log.warning("Image result is not valid base64", call_id=item.id, error=str(e))
            return

        self.images[item.id] = data
        log.info("Image generated", call_id=item.id, bytes=len(data))

        if self.output_dir is None:
            return
        self.output_dir.mkdir(parents=True, exist_ok=True)
        file_path = self.output_dir / f"{item.id}.{_extension_for(self.declaration)}"
        file_path.write_bytes(data)
        self.saved_paths[item.id] = file_path
        log.info("Image saved", call_id=item.id, path=str(file_path))
