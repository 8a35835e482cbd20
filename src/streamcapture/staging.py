"""
Staged segment artifacts.
Fetchers write one file per segment index; the reassembler reads and deletes it.
"""

from pathlib import Path
from typing import List

import aiofiles
import aiofiles.os


class StagingArea:
    """
    Session-scoped artifact store keyed by segment index.

    Layout: {channel_dir}/{session_id}~{index}.ts. Each artifact is written
    to a .part file first and renamed into place, so an artifact that exists
    is always complete.
    """

    def __init__(self, channel_dir: Path, session_id: str):
        self.channel_dir = Path(channel_dir)
        self.session_id = session_id

    def path_for(self, index: int) -> Path:
        return self.channel_dir / f"{self.session_id}~{index}.ts"

    async def put(self, index: int, data: bytes) -> Path:
        """Persist one segment's bytes."""
        path = self.path_for(index)
        partial = path.with_name(path.name + '.part')
        try:
            async with aiofiles.open(partial, 'wb') as f:
                await f.write(data)
            partial.replace(path)
        finally:
            # Gone after a successful replace; left over on error or cancel
            partial.unlink(missing_ok=True)
        return path

    async def exists(self, index: int) -> bool:
        return await aiofiles.os.path.exists(self.path_for(index))

    async def take(self, index: int) -> bytes:
        """Read an artifact and delete it."""
        path = self.path_for(index)
        async with aiofiles.open(path, 'rb') as f:
            data = await f.read()
        await aiofiles.os.remove(path)
        return data

    async def discard(self, index: int) -> bool:
        """Delete an artifact nobody will read. Returns True if one existed."""
        try:
            await aiofiles.os.remove(self.path_for(index))
        except FileNotFoundError:
            return False
        return True

    async def purge(self) -> List[Path]:
        """
        Delete every artifact and partial write left by this session.

        Returns:
            Paths that were removed.
        """
        removed = []
        for path in sorted(self.channel_dir.glob(f"{self.session_id}~*")):
            try:
                await aiofiles.os.remove(path)
            except FileNotFoundError:
                continue
            removed.append(path)
        return removed
