import logging
import os
import uuid
from functools import lru_cache
from typing import Optional, Union

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, field_validator

from api.load_stream import stream_vnb_load
from assets.filters import FIELDS, operators_for
from assets.types import FilterRule
from browser.session import BrowserSession, create_session
from geo.aoi import BBox
from render.style import admin_style, asset_style
from state.store import UNSET
from state.types import AppState, layer_ids

logging.basicConfig(
    level=(os.getenv("VNB_LOG_LEVEL") or "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
app = FastAPI()

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class ApiCenter(BaseModel):
    lat: float
    lon: float


class ApiBbox(BaseModel):
    minLon: float
    minLat: float
    maxLon: float
    maxLat: float


class ApiViewport(BaseModel):
    center: Optional[ApiCenter] = None
    zoom: Optional[float] = None
    bounds: Optional[ApiBbox] = None


class ApiVnbFilters(BaseModel):
    voltageTypes: Optional[list[str]] = None
    searchQuery: Optional[str] = None


RuleValue = Union[str, int, float, None]


class ApiFilterRule(BaseModel):
    id: Optional[str] = None
    field: str
    # Unknown operators are accepted and evaluated permissively.
    operator: str
    value: RuleValue = ""
    value2: RuleValue = None

    @field_validator("field")
    @classmethod
    def _known_field(cls, v: str) -> str:
        if v not in FIELDS:
            raise ValueError(f"Unknown filter field: {v}")
        return v

    def to_rule(self) -> FilterRule:
        return FilterRule(
            id=self.id or uuid.uuid4().hex[:12],
            field=self.field,
            operator=self.operator,
            value=self.value,
            value2=self.value2,
        )


class ApiFilterRulePatch(BaseModel):
    field: Optional[str] = None
    operator: Optional[str] = None
    value: RuleValue = None
    value2: RuleValue = None

    @field_validator("field")
    @classmethod
    def _known_field(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v not in FIELDS:
            raise ValueError(f"Unknown filter field: {v}")
        return v


@lru_cache(maxsize=1)
def _session() -> BrowserSession:
    return create_session()


async def get_session() -> BrowserSession:
    session = _session()
    await session.start()
    return session


def _rule_dict(rule: FilterRule) -> dict:
    return {
        "id": rule.id,
        "field": rule.field,
        "operator": rule.operator,
        "value": rule.value,
        "value2": rule.value2,
    }


def _viewport_dict(state: AppState) -> dict:
    vp = state.viewport
    return {
        "center": {"lat": vp.center[0], "lon": vp.center[1]},
        "zoom": vp.zoom,
        "bounds": vp.bounds.as_list() if vp.bounds is not None else None,
    }


def _layers_dict(state: AppState) -> dict:
    return {
        "visibility": state.visibility.to_dict(),
        "adminStatus": {k: v.value for k, v in state.admin_status.items()},
        "assetStatus": {k: v.value for k, v in state.asset_status.items()},
        "loading": sorted(state.loading.keys()),
    }


@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/dataset")
async def dataset(session: BrowserSession = Depends(get_session)):
    return session.config.model_dump()


@app.get("/vnbs")
async def list_vnbs(
    tags: list[str] = Query(default=[]),
    q: str = "",
    inView: bool = False,
    session: BrowserSession = Depends(get_session),
):
    records = session.index.filter(voltage_types=tags, search_query=q)
    bounds = session.store.state.viewport.bounds
    if inView and bounds is not None:
        visible = {r.id for r in session.index.query_by_bounds(bounds)}
        records = [r for r in records if r.id in visible]
    return {
        "totalCount": session.index.total_count,
        "count": len(records),
        "vnbs": [r.to_dict() for r in records],
    }


@app.get("/vnbs/search")
async def search_vnbs(
    q: str = "",
    limit: Optional[int] = Query(default=None, ge=0),
    session: BrowserSession = Depends(get_session),
):
    return [hit.to_dict() for hit in session.search_index.search(q, limit=limit)]


@app.get("/vnbs/stats")
async def vnb_stats(session: BrowserSession = Depends(get_session)):
    return session.stats().to_dict()


@app.put("/vnbs/filters")
async def set_vnb_filters(
    body: ApiVnbFilters, session: BrowserSession = Depends(get_session)
):
    state = session.store.set_filters(
        voltage_types=body.voltageTypes, search_query=body.searchQuery
    )
    return {
        "voltageTypes": list(state.filters.voltage_types),
        "searchQuery": state.filters.search_query,
    }


@app.post("/vnbs/load")
async def load_vnbs(session: BrowserSession = Depends(get_session)):
    return StreamingResponse(stream_vnb_load(session), media_type="text/event-stream")


@app.post("/vnbs/{vnb_id}/select")
async def select_vnb(vnb_id: str, session: BrowserSession = Depends(get_session)):
    try:
        intents = await session.select(vnb_id)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Unknown VNB: {vnb_id}")
    return {"selectedId": vnb_id, "intents": [i.to_dict() for i in intents]}


@app.delete("/vnbs/selection")
async def clear_selection(session: BrowserSession = Depends(get_session)):
    await session.select(None)
    return {"selectedId": None}


@app.post("/viewport")
async def set_viewport(body: ApiViewport, session: BrowserSession = Depends(get_session)):
    bounds = UNSET
    if body.bounds is not None:
        bounds = BBox(
            min_lon=body.bounds.minLon,
            min_lat=body.bounds.minLat,
            max_lon=body.bounds.maxLon,
            max_lat=body.bounds.maxLat,
        ).normalized()
    state = await session.set_viewport(
        center=(body.center.lat, body.center.lon) if body.center is not None else None,
        zoom=body.zoom,
        bounds=bounds,
    )
    return {"viewport": _viewport_dict(state), "layers": _layers_dict(session.store.state)}


@app.get("/layers")
async def get_layers(session: BrowserSession = Depends(get_session)):
    return _layers_dict(session.store.state)


@app.post("/layers/{layer_id}/toggle")
async def toggle_layer(layer_id: str, session: BrowserSession = Depends(get_session)):
    if layer_id not in layer_ids():
        raise HTTPException(status_code=404, detail=f"Unknown layer: {layer_id}")
    await session.toggle_layer(layer_id)
    return _layers_dict(session.store.state)


@app.get("/admin/{layer_id}")
async def admin_layer(layer_id: str, session: BrowserSession = Depends(get_session)):
    if session.admin.layer(layer_id) is None:
        raise HTTPException(status_code=404, detail=f"Unknown boundary layer: {layer_id}")
    fc = session.admin.displayed(layer_id).to_geojson()
    fc["style"] = admin_style(layer_id)
    return fc


@app.get("/assets/{category}")
async def assets(category: str, session: BrowserSession = Depends(get_session)):
    if category not in session.assets.categories:
        raise HTTPException(status_code=404, detail=f"Unknown asset category: {category}")
    await session.assets.ensure_loaded(category)
    records = session.assets.filtered(category)
    features = []
    for rec in records:
        feature = rec.to_feature()
        feature["style"] = asset_style(category, rec.gross_power)
        features.append(feature)
    return {
        "type": "FeatureCollection",
        "features": features,
        "total": len(session.assets.records(category)),
        "status": session.assets.status(category).value,
    }


@app.get("/filters/fields")
def filter_fields():
    return [
        {**spec.to_dict(), "operators": operators_for(key)} for key, spec in FIELDS.items()
    ]


@app.get("/filters/rules")
async def list_rules(session: BrowserSession = Depends(get_session)):
    return [_rule_dict(r) for r in session.store.state.filters.rules]


@app.put("/filters/rules")
async def replace_rules(
    body: list[ApiFilterRule], session: BrowserSession = Depends(get_session)
):
    state = session.store.set_filter_rules(r.to_rule() for r in body)
    return [_rule_dict(r) for r in state.filters.rules]


@app.post("/filters/rules")
async def add_rule(body: ApiFilterRule, session: BrowserSession = Depends(get_session)):
    rule = body.to_rule()
    if any(r.id == rule.id for r in session.store.state.filters.rules):
        raise HTTPException(status_code=409, detail=f"Rule already exists: {rule.id}")
    session.store.add_filter_rule(rule)
    return _rule_dict(rule)


@app.patch("/filters/rules/{rule_id}")
async def update_rule(
    rule_id: str, body: ApiFilterRulePatch, session: BrowserSession = Depends(get_session)
):
    if not any(r.id == rule_id for r in session.store.state.filters.rules):
        raise HTTPException(status_code=404, detail=f"Unknown rule: {rule_id}")
    changes = body.model_dump(exclude_unset=True)
    state = session.store.update_filter_rule(rule_id, **changes)
    return next(_rule_dict(r) for r in state.filters.rules if r.id == rule_id)


@app.delete("/filters/rules/{rule_id}")
async def remove_rule(rule_id: str, session: BrowserSession = Depends(get_session)):
    if not any(r.id == rule_id for r in session.store.state.filters.rules):
        raise HTTPException(status_code=404, detail=f"Unknown rule: {rule_id}")
    session.store.remove_filter_rule(rule_id)
    return {"removed": rule_id}


@app.delete("/filters/rules")
async def clear_rules(session: BrowserSession = Depends(get_session)):
    session.store.clear_filter_rules()
    return []
