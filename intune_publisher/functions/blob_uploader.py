"""
Chunked upload of the encrypted payload to Azure Blob Storage.

Intune hands out a pre-signed (SAS) block-blob URI.  The file is sent as
fixed-size blocks (``comp=block``) and then assembled by committing the
ordered block list (``comp=blocklist``).  Uses raw HTTP through ``requests``;
no Azure SDK dependency.
"""

from __future__ import annotations

import base64
import logging
import math
import os
from pathlib import Path
from typing import Callable, List, Optional, Tuple

import requests

from ..cancellation import CancellationToken
from ..errors import BlobUploadError

logger = logging.getLogger(__name__)

BLOCK_SIZE = 6 * 1024 * 1024  # 6 MiB
AZURE_BLOCK_BLOB_HEADERS = {"x-ms-blob-type": "BlockBlob"}
AZURE_COMMIT_BLOCK_LIST_HEADERS = {"Content-Type": "application/xml"}

ProgressCallback = Callable[[int, str], None]


def block_id(index: int) -> str:
    """Base64 of the zero-padded 4 digit block index (``0`` -> ``MDAwMA==``)."""
    return base64.b64encode(f"{index:04d}".encode("ascii")).decode("ascii")


def block_count(total_size: int, block_size: int = BLOCK_SIZE) -> int:
    return math.ceil(total_size / block_size)


def block_list_xml(block_ids: List[str]) -> str:
    return (
        '<?xml version="1.0" encoding="utf-8"?><BlockList>'
        + "".join(f"<Latest>{bid}</Latest>" for bid in block_ids)
        + "</BlockList>"
    )


def scale_progress(done: int, total: int, progress_range: Tuple[int, int]) -> int:
    """Map ``done/total`` linearly onto ``progress_range``."""
    start, end = progress_range
    if total <= 0:
        return end
    return start + done * (end - start) // total


def _put_block(session: requests.Session, storage_uri: str, index: int, bid: str, chunk: bytes, timeout: float) -> None:
    response = session.put(
        storage_uri,
        params={"comp": "block", "blockid": bid},
        data=chunk,
        headers=AZURE_BLOCK_BLOB_HEADERS,
        timeout=timeout,
    )
    if not response.ok:
        logger.error("Failed to upload block %d: %s - %s", index, response.status_code, response.text)
        raise BlobUploadError(
            f"Failed to upload chunk {index}. Status: {response.status_code}, Response: {response.text}",
            status_code=response.status_code,
            body=response.text,
        )


def commit_block_list(session: requests.Session, storage_uri: str, block_ids: List[str], timeout: float = 300) -> None:
    """Commits the block list to Azure Blob Storage."""
    logger.info("Committing block list with %d blocks...", len(block_ids))
    response = session.put(
        storage_uri,
        params={"comp": "blocklist"},
        data=block_list_xml(block_ids).encode("utf-8"),
        headers=AZURE_COMMIT_BLOCK_LIST_HEADERS,
        timeout=timeout,
    )
    if not response.ok:
        logger.error("Failed to commit block list: %s - %s", response.status_code, response.text)
        raise BlobUploadError(
            f"Failed to finalize upload. Status: {response.status_code}, Response: {response.text}",
            status_code=response.status_code,
            body=response.text,
        )
    logger.info("Azure block list committed successfully.")


def upload_file(
    session: requests.Session,
    storage_uri: str,
    file_path: str | Path,
    on_progress: Optional[ProgressCallback] = None,
    progress_range: Tuple[int, int] = (0, 100),
    block_size: int = BLOCK_SIZE,
    cancel_token: Optional[CancellationToken] = None,
    timeout: float = 300,
) -> List[str]:
    """
    Upload *file_path* to *storage_uri* block by block, then commit.

    Blocks are sent in ascending index order; *on_progress* is called after
    each one with a percentage inside *progress_range*.

    Returns
    -------
    list[str]
        The committed block IDs, in order.
    """
    total_size = os.path.getsize(file_path)
    total_blocks = block_count(total_size, block_size)
    logger.info("Uploading %s (%d bytes) in %d block(s) of %d bytes", file_path, total_size, total_blocks, block_size)

    block_ids: List[str] = []
    with open(file_path, "rb") as fh:
        for index in range(total_blocks):
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()
            chunk = fh.read(block_size)
            bid = block_id(index)
            _put_block(session, storage_uri, index, bid, chunk, timeout)
            block_ids.append(bid)
            logger.debug("Uploaded block %d/%d (%d bytes)", index + 1, total_blocks, len(chunk))

            if on_progress is not None:
                on_progress(
                    scale_progress(index + 1, total_blocks, progress_range),
                    f"Uploading chunk {index + 1} of {total_blocks}...",
                )

    commit_block_list(session, storage_uri, block_ids, timeout)
    return block_ids
