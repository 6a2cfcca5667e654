"""
Detection rule encoding for Win32 LOB apps.

Converts the caller's :mod:`intune_publisher.models` detection rules into the
``detectionRules`` entries the Graph beta ``win32LobApp`` resource expects.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from ..models import (
    ApplicationInfo,
    DetectionRule,
    FileDetectionRule,
    RegistryDetectionRule,
    ScriptDetectionRule,
)
from .graph_payloads import DetectionPayload, FileSystemDetection, RegistryDetection

logger = logging.getLogger(__name__)

DEFAULT_DETECTION_PATH = "%ProgramFiles%"
REGISTRY_HIVE_PREFIXES = ("HKEY_", "HKLM", "HKCU", "HKCR", "HKU")


class Win32AppDetectionType:
    """Enum-like class for detection types"""
    EXISTS = "exists"
    STRING = "string"
    VERSION = "version"


class Win32AppRuleOperator:
    """Enum-like class for rule operators"""
    EQUAL = "equal"
    NOT_EQUAL = "notEqual"
    GREATER_THAN = "greaterThan"
    GREATER_EQUAL = "greaterThanOrEqual"
    LESS_THAN = "lessThan"
    LESS_EQUAL = "lessThanOrEqual"


def _clean(value: Optional[str]) -> str:
    return (value or "").strip()


def encode_file_rule(rule: FileDetectionRule) -> FileSystemDetection:
    """File or folder presence, optionally with a version comparison."""
    detection_value = _clean(rule.detection_value)
    if rule.check_version and detection_value:
        return FileSystemDetection(
            path=_clean(rule.path),
            file_or_folder_name=_clean(rule.file_or_folder_name),
            check_32bit_on_64bit=rule.check_32bit_on_64bit,
            detection_type=Win32AppDetectionType.VERSION,
            operator=_clean(rule.operator) or Win32AppRuleOperator.GREATER_EQUAL,
            detection_value=detection_value,
        )
    return FileSystemDetection(
        path=_clean(rule.path),
        file_or_folder_name=_clean(rule.file_or_folder_name),
        check_32bit_on_64bit=rule.check_32bit_on_64bit,
        detection_type=Win32AppDetectionType.EXISTS,
    )


def registry_key_path(rule: RegistryDetectionRule) -> str:
    """Full key path, prefixed with the hive unless the key already names one."""
    key_path = _clean(rule.key_path).strip("\\")
    hive = _clean(rule.hive)
    if not hive or key_path.upper().startswith(REGISTRY_HIVE_PREFIXES):
        return key_path
    return f"{hive}\\{key_path}"


def encode_registry_rule(rule: RegistryDetectionRule) -> RegistryDetection:
    """Key or value presence, or a string comparison against a value."""
    value_name = _clean(rule.value_name)
    expected_value = _clean(rule.expected_value)

    if not value_name:
        return RegistryDetection(
            key_path=registry_key_path(rule),
            check_32bit_on_64bit=rule.check_32bit_on_64bit,
            detection_type=Win32AppDetectionType.EXISTS,
        )
    if not expected_value:
        return RegistryDetection(
            key_path=registry_key_path(rule),
            check_32bit_on_64bit=rule.check_32bit_on_64bit,
            value_name=value_name,
            detection_type=Win32AppDetectionType.EXISTS,
        )
    return RegistryDetection(
        key_path=registry_key_path(rule),
        check_32bit_on_64bit=rule.check_32bit_on_64bit,
        value_name=value_name,
        detection_type=Win32AppDetectionType.STRING,
        operator=_clean(rule.operator) or Win32AppRuleOperator.EQUAL,
        detection_value=expected_value,
    )


def encode_detection_rule(rule: DetectionRule) -> Optional[DetectionPayload]:
    """Encode a single rule, or return ``None`` when it cannot be sent."""
    if isinstance(rule, FileDetectionRule):
        return encode_file_rule(rule)
    if isinstance(rule, RegistryDetectionRule):
        return encode_registry_rule(rule)
    if isinstance(rule, ScriptDetectionRule):
        logger.warning("Script detection rules are not supported for Win32 upload yet; skipping rule")
        return None
    raise TypeError(f"Unknown detection rule type: {type(rule).__name__}")


def default_detection_rule(app_info: ApplicationInfo) -> FileSystemDetection:
    """``%ProgramFiles%\\<name>.exe`` exists."""
    return encode_file_rule(
        FileDetectionRule(path=DEFAULT_DETECTION_PATH, file_or_folder_name=f"{_clean(app_info.name)}.exe")
    )


def encode_detection_rules(rules: Iterable[DetectionRule], app_info: ApplicationInfo) -> List[DetectionPayload]:
    """
    Encode every convertible rule; Intune rejects apps without detection
    rules, so an empty result is replaced by :func:`default_detection_rule`.
    """
    encoded = [payload for payload in (encode_detection_rule(rule) for rule in rules) if payload is not None]
    if not encoded:
        fallback = default_detection_rule(app_info)
        logger.info(
            "No usable detection rules supplied; falling back to %s\\%s",
            fallback.path, fallback.file_or_folder_name,
        )
        encoded.append(fallback)
    return encoded
