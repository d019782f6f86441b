"""SOP document persistence (JSON plus frame images)."""

import base64
import binascii
import json
import logging
import shutil
from pathlib import Path
from typing import Protocol

from frameops.config import get_settings
from frameops.models.frames import ExtractedFrame
from frameops.models.sop import GenerationResult, SOPDocument

logger = logging.getLogger(__name__)

DOCUMENT_FILE = "sop.json"


class DocumentSink(Protocol):
    """Receives the result of every completed run."""

    def save(self, run_id: str, result: GenerationResult) -> Path | None: ...


class JsonDocumentStore:
    """Stores each completed run under ``<base_dir>/<run_id>/``.

    ``sop.json`` holds the document, the transcript and frame metadata; every
    frame referenced by a step (and the thumbnail) is written as
    ``frame_NNN.jpg``.
    """

    def __init__(self, base_dir: Path | None = None):
        self.base_dir = Path(base_dir or get_settings().document_store_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def _run_dir(self, run_id: str) -> Path:
        d = self.base_dir / run_id
        d.mkdir(parents=True, exist_ok=True)
        return d

    @staticmethod
    def _image_name(index: int) -> str:
        return f"frame_{index:03d}.jpg"

    def save(self, run_id: str, result: GenerationResult) -> Path:
        run_dir = self._run_dir(run_id)

        referenced = {s.source_frame_index for s in result.document.steps}
        if result.frames:
            referenced.add(result.document.thumbnail_frame_index)

        frames_meta = []
        for index in sorted(i for i in referenced if i < len(result.frames)):
            frame = result.frames[index]
            try:
                image = base64.b64decode(frame.image_base64, validate=True)
            except (binascii.Error, ValueError):
                logger.warning(f"Run {run_id}: frame {index} has undecodable image data")
                continue
            (run_dir / self._image_name(index)).write_bytes(image)
            frames_meta.append(frame.model_dump(exclude={"image_base64"}))

        payload = {
            "document": result.document.model_dump(mode="json"),
            "transcript": result.transcript,
            "frames": frames_meta,
        }
        path = run_dir / DOCUMENT_FILE
        path.write_text(json.dumps(payload, indent=2))
        logger.info(f"Saved SOP for run {run_id} ({len(frames_meta)} frame images)")
        return path

    def load(self, run_id: str) -> GenerationResult:
        """Load a stored result with its saved frame images.

        Only referenced frames are stored, so ``frames`` is indexed by the
        original frame index; missing positions are filled with the nearest
        earlier stored frame.
        """
        run_dir = self.base_dir / run_id
        path = run_dir / DOCUMENT_FILE
        if not path.exists():
            raise FileNotFoundError(f"SOP document not found: {path}")

        data = json.loads(path.read_text())
        document = SOPDocument.model_validate(data["document"])
        stored: dict[int, ExtractedFrame] = {}
        for meta in data.get("frames", []):
            image_path = run_dir / self._image_name(meta["index"])
            if not image_path.exists():
                continue
            encoded = base64.b64encode(image_path.read_bytes()).decode("ascii")
            stored[meta["index"]] = ExtractedFrame(**meta, image_base64=encoded)

        frames: list[ExtractedFrame] = []
        if stored:
            current = stored[min(stored)]
            for index in range(max(stored) + 1):
                current = stored.get(index, current)
                frames.append(current)

        return GenerationResult(
            document=document, frames=frames, transcript=data.get("transcript", "")
        )

    def frame_path(self, run_id: str, frame_index: int) -> Path | None:
        path = self.base_dir / run_id / self._image_name(frame_index)
        return path if path.exists() else None

    def delete(self, run_id: str) -> None:
        run_dir = self.base_dir / run_id
        if run_dir.exists():
            shutil.rmtree(run_dir, ignore_errors=True)
            logger.info(f"Deleted stored SOP for run {run_id}")

    def list_runs(self) -> list[str]:
        """List run ids with a stored document."""
        return sorted(
            d.name for d in self.base_dir.iterdir() if d.is_dir() and (d / DOCUMENT_FILE).exists()
        )
