"""Package catalog: identities, versions and declared dependencies."""

from .models import LATEST, NotNeededPackage, PackageId, PackageRecord
from .packages import PackageCatalog

__all__ = [
    "LATEST",
    "NotNeededPackage",
    "PackageCatalog",
    "PackageId",
    "PackageRecord",
]
