"""FastAPI ingestion service for local development and tests.

This stands in for the remote telemetry backend:
- accepts trace batches and transcripts on the real ingestion paths
- validates payloads with the SDK's wire schemas (Pydantic)
- answers with schema-stable ``TelemetryResponse`` bodies

It stores what it receives in memory; nothing is persisted.
"""

from __future__ import annotations

import time
import uuid
from typing import Any

from fastapi import FastAPI, Header, HTTPException
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError

from amp_sdk.constants import HEALTH_ENDPOINT, INGEST_ENDPOINT, SDK_VERSION
from amp_sdk.core.ids import now_iso
from amp_sdk.schemas import RecordCounts, StoredCounts, TelemetryPayload, TelemetryResponse


def create_app(api_key: str | None = None) -> FastAPI:
    """Build the ingestion app.

    Args:
        api_key: When set, requests must carry it in ``X-API-Key``.
    """
    app = FastAPI(title='AMP Ingestion (development)', version=SDK_VERSION)
    app.state.received = []

    @app.exception_handler(HTTPException)
    async def _http_error(request, exc: HTTPException) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={'status': 'failed', 'message': exc.detail})

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(status_code=422, content={'status': 'failed', 'message': 'Invalid telemetry payload'})

    @app.post(INGEST_ENDPOINT, response_model=TelemetryResponse, response_model_exclude_none=True)
    async def ingest(
        payload: TelemetryPayload,
        format: str | None = None,
        x_api_key: str | None = Header(default=None),
    ) -> TelemetryResponse:
        if api_key is not None and x_api_key != api_key:
            raise HTTPException(status_code=401, detail='Invalid API key')

        started = time.perf_counter()
        app.state.received.append(payload.model_dump(mode='json', exclude_none=True))

        traces = len(payload.traces or [])
        transcripts = len(payload.transcripts or [])
        return TelemetryResponse(
            status='accepted',
            timestamp=now_iso(),
            accepted=RecordCounts(traces=traces, transcripts=transcripts),
            rejected=RecordCounts(),
            stored=StoredCounts(records=traces + transcripts, queued=0),
            duration=(time.perf_counter() - started) * 1000,
            batchId=f'batch_{uuid.uuid4().hex[:12]}',
        )

    @app.get(HEALTH_ENDPOINT)
    async def health() -> dict[str, Any]:
        return {'status': 'ok', 'timestamp': now_iso(), 'version': SDK_VERSION}

    return app
