from __future__ import annotations

import logging
import math
from contextlib import asynccontextmanager
from typing import Literal, Optional

import numpy as np
import pandas as pd
from fastapi import FastAPI, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from api.schemas import ChartRequest, DashboardRequest, FiltersModel, SerializeRequest
from core.charts import breakdown_spec
from core.config import Settings, settings as default_settings
from core.engine import EngineInitError, QueryResult, SurveyEngine
from core.filters import ComparisonState, build_filter_summary, count_active_filters, normalize_filters
from core.ordering import ORDINAL_QUESTIONS, sort_by_ordinal_order
from core.registry import SEGMENT_PRESETS
from core.urlstate import next_serialized_url, parse_filters_from_url

logger = logging.getLogger(__name__)

QUESTION_KINDS = ("quantitative", "qualitative", "matrix")


def _json(data: object, status_code: int = 200) -> JSONResponse:
    """Return JSON with safe encoding for pandas/numpy objects."""

    def _safe_float(value: object) -> float | None:
        try:
            out = float(value)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return None
        if math.isnan(out) or math.isinf(out):
            return None
        return out

    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(
            data,
            custom_encoder={
                type(pd.NA): lambda _: None,
                np.integer: int,
                float: _safe_float,
                np.floating: _safe_float,
                np.bool_: bool,
                np.ndarray: lambda arr: arr.tolist(),
                pd.Timestamp: lambda ts: ts.isoformat(),
            },
        ),
    )


def _error(exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=500, content={"error": str(exc), "type": type(exc).__name__})


def _engine(request: Request) -> SurveyEngine:
    return request.app.state.engine


async def _question_result(engine: SurveyEngine, kind: str, question_id: str, filters) -> QueryResult:
    if kind == "quantitative":
        result = await engine.get_quantitative_data(question_id, filters)
        if result.ok and question_id in ORDINAL_QUESTIONS:
            result.data = sort_by_ordinal_order(result.data, question_id, key="answer_text")
        return result
    if kind == "qualitative":
        return await engine.get_qualitative_data(question_id, filters)
    return await engine.get_matrix_data(question_id, filters)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or default_settings
    if settings.debug:
        logging.getLogger("core").setLevel(logging.DEBUG)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        engine = SurveyEngine(settings)
        app.state.engine = engine
        try:
            await engine.initialize()
        except EngineInitError:
            logger.error("Survey engine unavailable; data endpoints will fail until restart")
        yield
        await engine.close()

    app = FastAPI(title="Survey Insights API", version="0.1.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health(request: Request):
        engine = _engine(request)
        return _json({"state": engine.state.value, "error": str(engine.init_error) if engine.init_error else None})

    @app.get("/meta/filters")
    async def meta_filters(request: Request):
        try:
            return _json({"filters": _engine(request).get_filter_options()})
        except Exception as exc:
            logger.exception("meta_filters failed")
            return _error(exc)

    @app.get("/meta/presets")
    async def meta_presets():
        presets = [
            {"key": p.key, "name": p.name, "description": p.description, "filters": p.filters}
            for p in SEGMENT_PRESETS.values()
        ]
        return _json({"presets": presets})

    @app.get("/meta/segments")
    async def meta_segments(request: Request):
        try:
            return _json({"segments": _engine(request).get_segments()})
        except Exception as exc:
            logger.exception("meta_segments failed")
            return _error(exc)

    @app.post("/count")
    async def count(body: FiltersModel, request: Request):
        try:
            filters = normalize_filters(body.filters)
            total = await _engine(request).get_filtered_count(filters)
            return _json(
                {
                    "count": total,
                    "active_filters": count_active_filters(filters),
                    "summary": build_filter_summary(filters),
                }
            )
        except Exception as exc:
            logger.exception("count failed")
            return _error(exc)

    @app.post("/dashboard")
    async def dashboard(body: DashboardRequest, request: Request):
        try:
            result = await _engine(request).get_dashboard_data(normalize_filters(body.filters), body.segment)
            return _json(result.to_dict())
        except Exception as exc:
            logger.exception("dashboard failed")
            return _error(exc)

    @app.post("/section-counts")
    async def section_counts(body: FiltersModel, request: Request):
        try:
            return _json(await _engine(request).get_section_counts(normalize_filters(body.filters)))
        except Exception as exc:
            logger.exception("section_counts failed")
            return _error(exc)

    @app.post("/questions/{question_id}/{kind}")
    async def question_data(question_id: str, kind: str, body: FiltersModel, request: Request):
        if kind not in QUESTION_KINDS:
            return JSONResponse(status_code=404, content={"error": f"Unknown data kind: {kind}", "type": "NotFound"})
        try:
            result = await _question_result(_engine(request), kind, question_id, normalize_filters(body.filters))
            return _json(result.to_dict())
        except Exception as exc:
            logger.exception("%s data failed for %s", kind, question_id)
            return _error(exc)

    @app.post("/charts/{question_id}")
    async def chart(question_id: str, body: ChartRequest, request: Request):
        try:
            filters = normalize_filters(body.filters)
            result = await _question_result(_engine(request), body.kind, question_id, filters)
            if not result.ok:
                return _json({"spec": None, "error": result.error})
            label_key = "theme_name" if body.kind == "qualitative" else "answer_text"
            spec = breakdown_spec(result.data, title=body.title, label_key=label_key)
            return _json({"spec": spec, "error": None, "meta": result.meta})
        except Exception as exc:
            logger.exception("chart failed for %s", question_id)
            return _error(exc)

    @app.post("/export/{question_id}")
    async def export_question(
        question_id: str,
        body: FiltersModel,
        request: Request,
        kind: Literal["quantitative", "qualitative"] = Query(default="quantitative"),
    ):
        result = await _question_result(_engine(request), kind, question_id, normalize_filters(body.filters))
        export_df = pd.DataFrame(result.data)
        csv_bytes = export_df.to_csv(index=False).encode("utf-8")
        filename = f"{question_id}-{kind}.csv"
        return Response(
            content=csv_bytes,
            media_type="text/csv",
            headers={"Content-Disposition": f"attachment; filename={filename}"},
        )

    @app.post("/url/serialize")
    async def url_serialize(body: SerializeRequest):
        comparison = None
        if body.comparison is not None:
            comparison = ComparisonState(
                comparison_mode=body.comparison.comparison_mode,
                filters_a=normalize_filters(body.comparison.filters_a),
                filters_b=normalize_filters(body.comparison.filters_b),
                active_column=body.comparison.active_column,
            )
        filters = normalize_filters(body.filters)
        fragment = next_serialized_url(body.previous or "", filters, body.section_id, comparison)
        if fragment is None:
            return _json({"fragment": body.previous or "", "changed": False})
        return _json({"fragment": fragment, "changed": True})

    @app.get("/url/parse")
    async def url_parse(request: Request, fragment: str = Query(default="")):
        engine = _engine(request)
        options = engine.get_filter_options() if engine.ready else None
        parsed = parse_filters_from_url(fragment, options)
        return _json(
            {
                "section_id": parsed.section_id,
                "filters": parsed.filters,
                "comparison_mode": parsed.comparison_mode,
                "filters_a": parsed.filters_a,
                "filters_b": parsed.filters_b,
            }
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=default_settings.debug,
    )
