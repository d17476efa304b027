"""
Durable object storage for materialized images.

LocalObjectStorage writes under a directory that a web server exposes at
public_base_url. A sidecar <path>.meta.json records content type, the public
flag and caller metadata (tenant, usage context).
"""
import asyncio
import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional

import structlog

logger = structlog.get_logger()


class ObjectStorage(ABC):
    """Write-once blob store with public URLs."""

    @abstractmethod
    async def save(
        self,
        path: str,
        data: bytes,
        content_type: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> None:
        ...

    @abstractmethod
    async def make_public(self, path: str) -> str:
        """Mark the object publicly readable and return its permanent URL."""
        ...


class LocalObjectStorage(ObjectStorage):

    def __init__(self, root, public_base_url: str):
        self.root = Path(root)
        self.public_base_url = public_base_url.rstrip("/")

    def _resolve(self, path: str) -> Path:
        target = (self.root / path).resolve()
        if self.root.resolve() not in target.parents:
            raise ValueError(f"Storage path escapes root: {path}")
        return target

    def _meta_path(self, target: Path) -> Path:
        return target.with_name(target.name + ".meta.json")

    def _write(self, target: Path, data: bytes, meta: dict) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        self._meta_path(target).write_text(json.dumps(meta, ensure_ascii=False), encoding="utf-8")

    async def save(self, path, data, content_type, metadata=None):
        target = self._resolve(path)
        meta = {
            "content_type": content_type,
            "size": len(data),
            "public": False,
            "metadata": metadata or {},
        }
        await asyncio.to_thread(self._write, target, data, meta)
        logger.info("object_saved", path=path, size=len(data), content_type=content_type)

    def _publish(self, target: Path) -> None:
        meta_path = self._meta_path(target)
        meta = json.loads(meta_path.read_text(encoding="utf-8"))
        meta["public"] = True
        meta_path.write_text(json.dumps(meta, ensure_ascii=False), encoding="utf-8")

    async def make_public(self, path):
        target = self._resolve(path)
        if not target.exists():
            raise FileNotFoundError(path)
        await asyncio.to_thread(self._publish, target)
        return f"{self.public_base_url}/{path}"
