"""
Intune Win32 app publisher package
"""
from .errors import PublishError  # re-export
from .models import ApplicationInfo, PublishRequest, PublishResult
