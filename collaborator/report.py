"""
FileReportStore: 리포트를 로컬 디렉토리에 저장
"""

import asyncio
import logging
from pathlib import Path

from collaborator.base import ReportStore

logger = logging.getLogger(__name__)


class FileReportStore(ReportStore):

    def __init__(self, directory: str = "./data/reports"):
        self._directory = Path(directory)

    async def save(self, name: str, content: str, format: str) -> str:
        path = self._directory / f"{name}.{format}"
        await asyncio.to_thread(self._write, path, content)
        logger.info(f"Report saved: {path}")
        return str(path)

    @staticmethod
    def _write(path: Path, content: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
