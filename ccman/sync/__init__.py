"""WebDAV 同步：加密、合并与编排"""

from .crypto import decrypt, decrypt_providers, encrypt, encrypt_providers
from .merge import MergeResult, merge_providers
from .orchestrator import SyncOrchestrator, SyncResult
from .remote import RemoteStore, WebDAVClient

__all__ = [
    "encrypt",
    "decrypt",
    "encrypt_providers",
    "decrypt_providers",
    "MergeResult",
    "merge_providers",
    "SyncOrchestrator",
    "SyncResult",
    "RemoteStore",
    "WebDAVClient",
]
