from __future__ import annotations


class ResourceFetchError(Exception):
    """
    A single HTTP resource could not be retrieved or decoded.
    """

    def __init__(self, path: str, reason: str, *, status_code: int | None = None):
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason
        self.status_code = status_code


class ResourceLoadError(Exception):
    """
    Base class for loader-level failures.

    Loaders raise these internally and convert them into "resource stays empty"
    at their own boundary; they never escape to callers.
    """

    resource: str = "resource"

    def __init__(self, name: str, cause: BaseException | str | None = None):
        detail = f": {cause}" if cause else ""
        super().__init__(f"Failed to load {self.resource} '{name}'{detail}")
        self.name = name
        self.cause = cause


class IndexLoadError(ResourceLoadError):
    resource = "VNB index"


class GeometryLoadError(ResourceLoadError):
    resource = "VNB geometry"


class BoundaryLoadError(ResourceLoadError):
    resource = "boundary layer"


class AssetLoadError(ResourceLoadError):
    resource = "asset layer"
