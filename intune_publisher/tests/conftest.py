import zipfile
from pathlib import Path
from typing import Dict, Optional

import pytest

DETECTION_XML = """<?xml version="1.0" encoding="utf-8"?>
<ApplicationInfo xmlns:xsd="http://www.w3.org/2001/XMLSchema" xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance" ToolVersion="1.8.6.0">
  <Name>Deploy-Application.exe</Name>
  <UnencryptedContentSize>{size}</UnencryptedContentSize>
  <FileName>{file_name}</FileName>
  <SetupFile>Deploy-Application.exe</SetupFile>
  <EncryptionInfo>
    <EncryptionKey>{key}</EncryptionKey>
    <MacKey>bWFjLWtleQ==</MacKey>
    <InitializationVector>aXYtdmFsdWU=</InitializationVector>
    <Mac>bWFjLXZhbHVl</Mac>
    <ProfileIdentifier>ProfileVersion1</ProfileIdentifier>
    <FileDigest>ZGlnZXN0</FileDigest>
    <FileDigestAlgorithm>SHA256</FileDigestAlgorithm>
  </EncryptionInfo>
</ApplicationInfo>
"""


def detection_xml(size="1024", file_name="IntunePackage.intunewin", key="ZW5jLWtleQ=="):
    return DETECTION_XML.format(size=size, file_name=file_name, key=key)


@pytest.fixture
def make_intunewin(tmp_path):
    """Build a .intunewin-shaped zip in tmp_path from a name -> content mapping."""

    def _build(entries: Optional[Dict[str, object]] = None, name: str = "Setup.intunewin") -> Path:
        if entries is None:
            entries = {
                "IntuneWinPackage/Metadata/Detection.xml": detection_xml(),
                "IntuneWinPackage/Contents/IntunePackage.dat": b"\x01" * 2048,
            }
        path = tmp_path / name
        with zipfile.ZipFile(path, "w") as archive:
            for entry_name, content in entries.items():
                archive.writestr(entry_name, content)
        return path

    return _build
