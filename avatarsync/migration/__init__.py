from .orchestrator import BulkFetchOrchestrator, MigrationOrchestrator
from .pointer import PointerSynchronizer
from .transfer import TransferEngine
from .walker import OwnerDirectoryWalker

__all__ = [
    "BulkFetchOrchestrator",
    "MigrationOrchestrator",
    "OwnerDirectoryWalker",
    "PointerSynchronizer",
    "TransferEngine",
]
