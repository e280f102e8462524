from __future__ import annotations

import asyncio
import base64
from typing import Iterable, Protocol

from loguru import logger

from .errors import EncodingError
from .models import DEFAULT_AUDIO_MIME_TYPE, EncodedPart


class BinarySource(Protocol):
    mime_type: str

    def read_bytes(self) -> bytes: ...


def encode_part(source: BinarySource) -> EncodedPart:
    try:
        raw = source.read_bytes()
    except Exception as exc:
        raise EncodingError(f"Failed to read binary content: {exc}") from exc
    return EncodedPart(
        base64_data=base64.b64encode(raw).decode("ascii"),
        mime_type=(source.mime_type or "").strip() or DEFAULT_AUDIO_MIME_TYPE,
    )


async def encode_parts(sources: Iterable[BinarySource]) -> list[EncodedPart]:
    """Encode every source concurrently, preserving input order.

    The first failing read aborts the whole batch with EncodingError.
    """
    pending = [asyncio.to_thread(encode_part, source) for source in sources]
    if not pending:
        return []
    try:
        return list(await asyncio.gather(*pending))
    except EncodingError:
        logger.exception("attachment encoding failed")
        raise
