"""Adapters — bindings for the package manager and the operator.

Public re-exports for convenient access.
"""

from macsetup.adapters.base import ConfirmationPort, Disposition, PackageManager
from macsetup.adapters.mock import MockPackageManager, ScriptedConfirmation

__all__ = [
    "ConfirmationPort",
    "Disposition",
    "MockPackageManager",
    "PackageManager",
    "ScriptedConfirmation",
]
