"""
Tests for the chunked Azure blob upload.
"""

import base64
from unittest.mock import MagicMock

import pytest

from intune_publisher.cancellation import CancellationToken
from intune_publisher.errors import BlobUploadError, PublishCancelledError
from intune_publisher.functions.blob_uploader import (
    BLOCK_SIZE,
    block_count,
    block_id,
    block_list_xml,
    scale_progress,
    upload_file,
)

SAS_URI = "https://account.blob.core.windows.net/container/blob?sv=2020&sig=abc"
MIB = 1024 * 1024


def _response(status=201, text=""):
    response = MagicMock()
    response.ok = 200 <= status < 300
    response.status_code = status
    response.text = text
    return response


def _sparse_file(path, size):
    with open(path, "wb") as fh:
        fh.truncate(size)
    return path


@pytest.fixture
def session():
    mock = MagicMock()
    mock.put.return_value = _response()
    return mock


def _block_puts(session):
    return [c for c in session.put.call_args_list if c.kwargs["params"].get("comp") == "block"]


def _commit_puts(session):
    return [c for c in session.put.call_args_list if c.kwargs["params"].get("comp") == "blocklist"]


def test_block_ids():
    assert block_id(0) == "MDAwMA=="
    assert base64.b64decode(block_id(12)) == b"0012"
    assert len({len(block_id(i)) for i in range(100)}) == 1


def test_block_count():
    assert BLOCK_SIZE == 6 * MIB
    assert block_count(0) == 0
    assert block_count(1) == 1
    assert block_count(BLOCK_SIZE) == 1
    assert block_count(BLOCK_SIZE + 1) == 2


def test_block_list_xml():
    assert block_list_xml(["MDAwMA==", "MDAwMQ=="]) == (
        '<?xml version="1.0" encoding="utf-8"?>'
        "<BlockList><Latest>MDAwMA==</Latest><Latest>MDAwMQ==</Latest></BlockList>"
    )


def test_scale_progress():
    assert scale_progress(0, 4, (65, 80)) == 65
    assert scale_progress(2, 4, (65, 80)) == 72
    assert scale_progress(4, 4, (65, 80)) == 80
    assert scale_progress(0, 0, (65, 80)) == 80


def test_exactly_one_block(tmp_path, session):
    path = _sparse_file(tmp_path / "payload.dat", 6 * MIB)

    ids = upload_file(session, SAS_URI, path)

    assert ids == ["MDAwMA=="]
    puts = _block_puts(session)
    assert len(puts) == 1
    assert puts[0].kwargs["params"] == {"comp": "block", "blockid": "MDAwMA=="}
    assert puts[0].kwargs["headers"] == {"x-ms-blob-type": "BlockBlob"}
    assert len(puts[0].kwargs["data"]) == 6 * MIB

    commit = _commit_puts(session)
    assert len(commit) == 1
    assert commit[0].kwargs["data"] == block_list_xml(["MDAwMA=="]).encode("utf-8")
    assert commit[0].kwargs["headers"] == {"Content-Type": "application/xml"}
    assert session.put.call_args_list[-1] == commit[0]


def test_partial_tail_block(tmp_path, session):
    path = _sparse_file(tmp_path / "payload.dat", 14 * MIB)
    progress = []

    ids = upload_file(
        session, SAS_URI, path,
        on_progress=lambda pct, msg: progress.append((pct, msg)),
        progress_range=(65, 80),
    )

    assert ids == [block_id(0), block_id(1), block_id(2)]
    sizes = [len(c.kwargs["data"]) for c in _block_puts(session)]
    assert sizes == [6 * MIB, 6 * MIB, 2 * MIB]
    assert [pct for pct, _ in progress] == [70, 75, 80]
    assert progress[-1][1] == "Uploading chunk 3 of 3..."


def test_empty_file_commits_empty_list(tmp_path, session):
    path = _sparse_file(tmp_path / "empty.dat", 0)

    ids = upload_file(session, SAS_URI, path)

    assert ids == []
    assert _block_puts(session) == []
    assert _commit_puts(session)[0].kwargs["data"] == block_list_xml([]).encode("utf-8")


def test_block_failure_stops_upload(tmp_path, session):
    path = _sparse_file(tmp_path / "payload.dat", 14 * MIB)
    session.put.side_effect = [_response(), _response(403, "AuthenticationFailed")]

    with pytest.raises(BlobUploadError) as excinfo:
        upload_file(session, SAS_URI, path)

    assert "chunk 1" in str(excinfo.value)
    assert excinfo.value.status_code == 403
    assert "AuthenticationFailed" in str(excinfo.value)
    assert session.put.call_count == 2
    assert _commit_puts(session) == []


def test_commit_failure(tmp_path, session):
    path = _sparse_file(tmp_path / "payload.dat", 10)
    session.put.side_effect = [_response(), _response(400, "InvalidBlockList")]

    with pytest.raises(BlobUploadError, match="InvalidBlockList"):
        upload_file(session, SAS_URI, path)


def test_cancellation_between_blocks(tmp_path, session):
    path = _sparse_file(tmp_path / "payload.dat", 14 * MIB)
    token = CancellationToken()

    def cancel_after_first(pct, msg):
        token.cancel()

    with pytest.raises(PublishCancelledError):
        upload_file(session, SAS_URI, path, on_progress=cancel_after_first, cancel_token=token)

    assert len(_block_puts(session)) == 1
    assert _commit_puts(session) == []
