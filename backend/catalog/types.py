from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, model_validator

AdminLayerId = Literal["bundeslaender", "kreise", "gemeinden"]
AssetCategory = Literal["solar", "bess"]


class DatasetCenter(BaseModel):
    lat: float
    lon: float


class DatasetDefaultView(BaseModel):
    center: DatasetCenter
    zoom: int = Field(ge=0, le=24)


class DatasetZoomRange(BaseModel):
    min: int = Field(default=5, ge=0, le=24)
    max: int = Field(default=18, ge=0, le=24)

    @model_validator(mode="after")
    def _ordered(self) -> "DatasetZoomRange":
        if self.min > self.max:
            raise ValueError("zoomRange.min must be <= zoomRange.max")
        return self


class DatasetIndex(BaseModel):
    path: str
    # Directory holding one GeoJSON file per VNB (IndexRecord.file_name).
    geometryDir: str


class DatasetAdminLayer(BaseModel):
    """
    An administrative boundary layer fetched under viewport gating.

    Fetch and display thresholds are checked independently: a layer may become
    renderable one zoom level before it is allowed to trigger a network load.
    """

    id: AdminLayerId
    title: str
    path: str
    loadMinZoom: int = Field(default=0, ge=0, le=24)
    displayMinZoom: int = Field(default=0, ge=0, le=24)
    defaultVisible: bool = False


class DatasetAssetLayer(BaseModel):
    id: AssetCategory
    title: str
    path: str
    defaultVisible: bool = True


class DatasetGeometryCache(BaseModel):
    maxEntries: int = Field(default=100, ge=1)
    batchSize: int = Field(default=20, ge=1)


class DatasetSearch(BaseModel):
    # Fuse-style threshold: 0 = exact only, 1 = anything goes.
    threshold: float = Field(default=0.3, ge=0.0, le=1.0)
    minQueryLength: int = Field(default=2, ge=1)
    maxResults: int = Field(default=20, ge=1)


class DatasetConfig(BaseModel):
    id: str
    title: str
    baseUrl: str = "http://localhost:5173/"
    defaultView: DatasetDefaultView
    zoomRange: DatasetZoomRange = Field(default_factory=DatasetZoomRange)
    defaultVnbVisible: bool = True
    tags: list[str] = Field(
        default_factory=lambda: ["Mittelspannung", "Niederspannung"]
    )

    index: DatasetIndex
    geometryCache: DatasetGeometryCache = Field(default_factory=DatasetGeometryCache)
    search: DatasetSearch = Field(default_factory=DatasetSearch)

    adminLayers: list[DatasetAdminLayer]
    assetLayers: list[DatasetAssetLayer]

    @model_validator(mode="after")
    def _unique_layers(self) -> "DatasetConfig":
        admin_ids = [layer.id for layer in self.adminLayers]
        if len(set(admin_ids)) != len(admin_ids):
            raise ValueError("duplicate admin layer id")
        asset_ids = [layer.id for layer in self.assetLayers]
        if len(set(asset_ids)) != len(asset_ids):
            raise ValueError("duplicate asset layer id")
        return self

    def admin_layer(self, layer_id: str) -> DatasetAdminLayer | None:
        for layer in self.adminLayers:
            if layer.id == layer_id:
                return layer
        return None

    def asset_layer(self, category: str) -> DatasetAssetLayer | None:
        for layer in self.assetLayers:
            if layer.id == category:
                return layer
        return None
