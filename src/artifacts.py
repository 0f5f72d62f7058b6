import logging
import re
from datetime import datetime
from pathlib import Path

logger = logging.getLogger(__name__)


def sanitize_for_filename(text: str) -> str:
    """Sanitize text for use in filenames."""
    text = re.sub(r"[^\w\s-]", "", text)
    text = re.sub(r"[-\s]+", "_", text)
    return text.strip("_").lower()[:100]


class ArtifactStore:
    """Screenshots for one scenario attempt.

    Checkpoint captures are remembered in order and end up in the outcome and
    the email; debug captures are only written to disk.
    """

    def __init__(self, directory: Path, full_page: bool = True):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self.full_page = full_page
        self.checkpoints: list[Path] = []
        self._counter = 0

    def path_for(self, step: str, extension: str = "png") -> Path:
        self._counter += 1
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        return self.directory / f"{self._counter:02d}-{sanitize_for_filename(step)}-{stamp}.{extension}"

    async def capture(self, page, step: str, checkpoint: bool = True) -> Path | None:
        """Screenshot page; returns the path, or None when the capture failed."""
        path = self.path_for(step)
        try:
            await page.screenshot(path=str(path), full_page=self.full_page)
        except Exception as e:
            logger.warning(f"⚠️ Could not save screenshot {path.name}: {e}")
            return None
        if checkpoint:
            self.checkpoints.append(path)
        logger.info(f"📸 Screenshot saved: {path.name}")
        return path
