from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Callable, Iterable, Mapping

from assets.types import AssetRecord, FilterRule
from catalog.types import DatasetConfig
from geo.aoi import BBox
from layers.types import FeatureCollection
from state.types import (
    AppState,
    Filters,
    LayerVisibility,
    LoadStatus,
    Viewport,
    VnbDisplay,
)
from vnb.types import GeometryRecord, IndexRecord

logger = logging.getLogger(__name__)

Listener = Callable[[AppState, AppState], None]

UNSET: Any = object()


def initial_state(config: DatasetConfig) -> AppState:
    visibility = LayerVisibility(vnb=config.defaultVnbVisible)
    for layer in config.adminLayers:
        visibility = visibility.with_visible(layer.id, layer.defaultVisible)
    for asset in config.assetLayers:
        visibility = visibility.with_visible(f"anlagen_{asset.id}", asset.defaultVisible)

    view = config.defaultView
    return AppState(
        viewport=Viewport(center=(view.center.lat, view.center.lon), zoom=view.zoom),
        visibility=visibility,
        admin_status={layer.id: LoadStatus.not_requested for layer in config.adminLayers},
        asset_status={asset.id: LoadStatus.not_requested for asset in config.assetLayers},
    )


class StateStore:
    """
    Observable container for `AppState`.

    All writes go through the setters below; each builds a new state and
    notifies subscribers with `(new, old)`. There is no locking: the store is
    only touched from the event loop thread.
    """

    def __init__(self, initial: AppState, *, zoom_range: tuple[int, int] = (5, 18)):
        self._state = initial
        self._listeners: list[Listener] = []
        self.zoom_range = zoom_range

    @classmethod
    def from_config(cls, config: DatasetConfig) -> "StateStore":
        return cls(
            initial_state(config),
            zoom_range=(config.zoomRange.min, config.zoomRange.max),
        )

    @property
    def state(self) -> AppState:
        return self._state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def update(self, fn: Callable[[AppState], AppState]) -> AppState:
        old = self._state
        new = fn(old)
        if new is old:
            return old
        self._state = new
        for listener in list(self._listeners):
            try:
                listener(new, old)
            except Exception:
                logger.exception("State listener %r failed", listener)
        return new

    # Viewport

    def set_viewport(
        self,
        *,
        center: tuple[float, float] | None = None,
        zoom: float | None = None,
        bounds: BBox | None = UNSET,
    ) -> AppState:
        def apply(s: AppState) -> AppState:
            vp = s.viewport
            return replace(
                s,
                viewport=Viewport(
                    center=(float(center[0]), float(center[1]))
                    if center is not None
                    else vp.center,
                    zoom=self._clamp_zoom(zoom) if zoom is not None else vp.zoom,
                    bounds=vp.bounds if bounds is UNSET else bounds,
                ),
            )

        return self.update(apply)

    def _clamp_zoom(self, zoom: float) -> int:
        lo, hi = self.zoom_range
        return max(lo, min(hi, int(round(float(zoom)))))

    # Layers

    def toggle_layer(self, layer_id: str) -> AppState:
        return self.update(
            lambda s: replace(s, visibility=s.visibility.toggled(layer_id))
        )

    def set_layer_visible(self, layer_id: str, visible: bool) -> AppState:
        def apply(s: AppState) -> AppState:
            if s.visibility.is_visible(layer_id) == bool(visible):
                return s
            return replace(s, visibility=s.visibility.with_visible(layer_id, visible))

        return self.update(apply)

    # Filters

    def set_filters(
        self,
        *,
        voltage_types: Iterable[str] | None = None,
        search_query: str | None = None,
    ) -> AppState:
        def apply(s: AppState) -> AppState:
            f = s.filters
            return replace(
                s,
                filters=Filters(
                    voltage_types=tuple(voltage_types)
                    if voltage_types is not None
                    else f.voltage_types,
                    search_query=search_query if search_query is not None else f.search_query,
                    rules=f.rules,
                ),
            )

        return self.update(apply)

    def set_filter_rules(self, rules: Iterable[FilterRule]) -> AppState:
        new_rules = tuple(rules)
        return self.update(
            lambda s: replace(s, filters=replace(s.filters, rules=new_rules))
        )

    def add_filter_rule(self, rule: FilterRule) -> AppState:
        return self.set_filter_rules([*self._state.filters.rules, rule])

    def update_filter_rule(self, rule_id: str, **changes: Any) -> AppState:
        return self.set_filter_rules(
            replace(r, **changes) if r.id == rule_id else r
            for r in self._state.filters.rules
        )

    def remove_filter_rule(self, rule_id: str) -> AppState:
        return self.set_filter_rules(
            r for r in self._state.filters.rules if r.id != rule_id
        )

    def clear_filter_rules(self) -> AppState:
        return self.set_filter_rules(())

    # Selection

    def select_record(self, record_id: str | None) -> AppState:
        return self.update(lambda s: replace(s, selected_id=record_id))

    # Data caches

    def set_index(self, records: Iterable[IndexRecord]) -> AppState:
        recs = tuple(records)
        return self.update(lambda s: replace(s, vnb_index=recs))

    def set_admin_data(self, layer_id: str, data: FeatureCollection) -> AppState:
        return self.update(
            lambda s: replace(s, admin_data=_with(s.admin_data, layer_id, data))
        )

    def set_admin_status(self, layer_id: str, status: LoadStatus) -> AppState:
        return self.update(
            lambda s: replace(s, admin_status=_with(s.admin_status, layer_id, status))
        )

    def set_asset_data(self, category: str, records: Iterable[AssetRecord]) -> AppState:
        recs = tuple(records)
        return self.update(
            lambda s: replace(s, asset_data=_with(s.asset_data, category, recs))
        )

    def set_asset_status(self, category: str, status: LoadStatus) -> AppState:
        return self.update(
            lambda s: replace(s, asset_status=_with(s.asset_status, category, status))
        )

    def set_geometries(self, geometries: Mapping[str, GeometryRecord]) -> AppState:
        snapshot = dict(geometries)
        return self.update(lambda s: replace(s, geometries=snapshot))

    def set_display(self, display: VnbDisplay) -> AppState:
        return self.update(lambda s: replace(s, display=display))

    def set_loading(self, key: str, value: bool) -> AppState:
        # Only in-flight resources are kept; clearing a flag drops the key.
        def apply(s: AppState) -> AppState:
            if bool(s.loading.get(key, False)) == bool(value):
                return s
            if value:
                return replace(s, loading=_with(s.loading, key, True))
            return replace(
                s, loading={k: v for k, v in s.loading.items() if k != key}
            )

        return self.update(apply)


def _with(mapping: Mapping[str, Any], key: str, value: Any) -> dict[str, Any]:
    out = dict(mapping)
    out[key] = value
    return out
