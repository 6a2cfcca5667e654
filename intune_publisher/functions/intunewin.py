"""
Read the metadata inside a .intunewin container.

A .intunewin file is a zip holding ``IntuneWinPackage/Metadata/Detection.xml``
and the already-encrypted payload ``IntuneWinPackage/Contents/*.dat``.  The
XML comes out of different IntuneWinAppUtil versions with different
namespace declarations, so every lookup here goes by local element name,
case-insensitively.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
import xml.etree.ElementTree as ET
import zipfile
from pathlib import Path, PurePosixPath
from typing import Iterable, List, Optional

from ..errors import ContainerFormatError, PreconditionError
from ..models import DEFAULT_DIGEST_ALGORITHM, PROFILE_IDENTIFIER, ContainerMetadata, EncryptionInfo

logger = logging.getLogger(__name__)

DETECTION_XML_NAME = "detection.xml"
PREFERRED_PAYLOAD_NAMES = ("contents.dat", "intunepackage.dat")
PAYLOAD_SUFFIX = ".dat"
COPY_BUFFER_SIZE = 2 << 20


# --------------------------------------------------------------------------------------
# 1.  ── namespace-agnostic XML access
# --------------------------------------------------------------------------------------
def local_name(tag: str) -> str:
    """``{urn:whatever}FileName`` -> ``FileName``."""
    if not isinstance(tag, str):
        return ""
    return tag.rsplit("}", 1)[-1].split(":")[-1]


def child_names(parent: ET.Element) -> List[str]:
    return [local_name(child.tag) for child in parent]


def find_child(parent: ET.Element, *names: str) -> Optional[ET.Element]:
    """First direct child whose local name matches any of *names*, ignoring case."""
    wanted = [name.lower() for name in names]
    for candidate in wanted:
        for child in parent:
            if local_name(child.tag).lower() == candidate:
                return child
    return None


def child_text(parent: ET.Element, *names: str) -> str:
    """Stripped text of the first matching child, or ``""`` when absent/empty."""
    element = find_child(parent, *names)
    value = (element.text or "").strip() if element is not None else ""
    if not value:
        logger.warning("Element '%s' is empty or missing in %s", names[0], DETECTION_XML_NAME)
    return value


# --------------------------------------------------------------------------------------
# 2.  ── archive helpers
# --------------------------------------------------------------------------------------
def _entry_name(info: zipfile.ZipInfo) -> str:
    return PurePosixPath(info.filename.replace("\\", "/")).name


def _files(archive: zipfile.ZipFile) -> List[zipfile.ZipInfo]:
    return [info for info in archive.infolist() if not info.is_dir()]


def _find_detection_entry(entries: Iterable[zipfile.ZipInfo]) -> Optional[zipfile.ZipInfo]:
    return next((e for e in entries if _entry_name(e).lower() == DETECTION_XML_NAME), None)


def _find_payload_entry(entries: List[zipfile.ZipInfo]) -> Optional[zipfile.ZipInfo]:
    preferred = next((e for e in entries if _entry_name(e).lower() in PREFERRED_PAYLOAD_NAMES), None)
    if preferred is not None:
        return preferred
    return next((e for e in entries if _entry_name(e).lower().endswith(PAYLOAD_SUFFIX)), None)


def _extract_entry(archive: zipfile.ZipFile, entry: zipfile.ZipInfo, target_dir: Path) -> Path:
    """Copy *entry* into *target_dir* under its base name only."""
    target = target_dir / _entry_name(entry)
    with archive.open(entry) as source, open(target, "wb") as sink:
        shutil.copyfileobj(source, sink, COPY_BUFFER_SIZE)
    return target


def _parse_size(raw: str, fallback_file: Path) -> int:
    try:
        return int(raw)
    except ValueError:
        size = fallback_file.stat().st_size
        logger.warning(
            "Could not parse UnencryptedContentSize '%s'; using extracted payload size %d instead", raw, size
        )
        return size


def _read_encryption_info(element: ET.Element) -> EncryptionInfo:
    return EncryptionInfo(
        encryption_key=child_text(element, "EncryptionKey", "encryptionKey"),
        mac_key=child_text(element, "MacKey", "macKey"),
        initialization_vector=child_text(element, "InitializationVector", "initializationVector"),
        mac=child_text(element, "Mac", "mac"),
        file_digest=child_text(element, "FileDigest", "fileDigest"),
        file_digest_algorithm=(
            child_text(element, "FileDigestAlgorithm", "fileDigestAlgorithm") or DEFAULT_DIGEST_ALGORITHM
        ),
        profile_identifier=PROFILE_IDENTIFIER,
    )


# --------------------------------------------------------------------------------------
# 3.  ── public API
# --------------------------------------------------------------------------------------
def extract_intunewin(container_path: str | Path, temp_root: Optional[str | Path] = None) -> ContainerMetadata:
    """
    Extract the manifest metadata and encrypted payload of *container_path*.

    The payload is copied into a fresh temporary directory that the caller
    owns from here on (see :func:`remove_extraction_dir`).  If anything goes
    wrong the directory is removed before the error propagates.

    Raises
    ------
    PreconditionError
        The container does not exist.
    ContainerFormatError
        The archive, manifest or payload is missing or malformed.
    """
    container = Path(container_path)
    if not container.is_file():
        raise PreconditionError(f".intunewin file not found: {container}", str(container))

    temp_dir = Path(tempfile.mkdtemp(prefix="intunewin-", dir=str(temp_root) if temp_root else None))
    logger.info("Extracting %s into %s", container.name, temp_dir)
    try:
        return _extract_into(container, temp_dir)
    except BaseException:
        shutil.rmtree(temp_dir, ignore_errors=True)
        raise


def _extract_into(container: Path, temp_dir: Path) -> ContainerMetadata:
    try:
        archive = zipfile.ZipFile(container)
    except zipfile.BadZipFile as exc:
        raise ContainerFormatError(f"Invalid or corrupted .intunewin file {container}: {exc}") from exc

    with archive:
        entries = _files(archive)

        detection_entry = _find_detection_entry(entries)
        if detection_entry is None:
            raise ContainerFormatError(
                f"{DETECTION_XML_NAME} not found in .intunewin file", [_entry_name(e) for e in entries]
            )

        try:
            with archive.open(detection_entry) as xml_file:
                root = ET.parse(xml_file).getroot()
        except ET.ParseError as exc:
            raise ContainerFormatError(f"Failed to parse {DETECTION_XML_NAME}: {exc}") from exc

        if local_name(root.tag).lower() != "applicationinfo":
            raise ContainerFormatError(f"Root element is not ApplicationInfo. Found: {local_name(root.tag)}")

        encryption_element = find_child(root, "EncryptionInfo")
        if encryption_element is None:
            raise ContainerFormatError("EncryptionInfo not found in ApplicationInfo", child_names(root))

        payload_entry = _find_payload_entry(entries)
        if payload_entry is None:
            raise ContainerFormatError(
                "No encrypted content file (.dat) found in .intunewin archive", [_entry_name(e) for e in entries]
            )
        encrypted_file = _extract_entry(archive, payload_entry, temp_dir)
        logger.info("Extracted encrypted content: %s", encrypted_file.name)

    file_name = child_text(root, "FileName")
    if not file_name:
        file_name = container.name
        logger.warning("Using fallback file name: %s", file_name)

    unencrypted_size = _parse_size(child_text(root, "UnencryptedContentSize"), encrypted_file)
    encryption_info = _read_encryption_info(encryption_element)

    if not encryption_info.encryption_key:
        raise ContainerFormatError(
            f"EncryptionKey is missing from {DETECTION_XML_NAME}", child_names(encryption_element)
        )

    logger.info(
        "Read %s metadata: file=%s unencrypted=%d bytes key=%s...",
        DETECTION_XML_NAME, file_name, unencrypted_size, encryption_info.encryption_key[:6],
    )
    return ContainerMetadata(
        file_name=file_name,
        unencrypted_content_size=unencrypted_size,
        encrypted_file_path=encrypted_file,
        temp_directory=temp_dir,
        encryption_info=encryption_info,
    )


def remove_extraction_dir(metadata: ContainerMetadata) -> None:
    """Delete the temp directory created by :func:`extract_intunewin`.

    Raises ``OSError`` if the directory cannot be removed (including when it
    is already gone); callers decide whether that matters.
    """
    shutil.rmtree(metadata.temp_directory)
    logger.info("Cleaned up temp files: %s", metadata.temp_directory)
