from __future__ import annotations

import logging

from fastapi import FastAPI, HTTPException
from fastapi.responses import PlainTextResponse

from .queries import QueryError
from .report import TemperatureReporter

logger = logging.getLogger(__name__)


def create_app(reporter: TemperatureReporter) -> FastAPI:
    app = FastAPI(title="AcuRite Temperature Display", version="0.1.0")

    @app.get("/health")
    def health():
        """Liveness probe: ok mientras el proceso esté vivo."""
        return {"status": "ok", "scale": reporter.scale.value}

    @app.get("/v1/temperatures", response_class=PlainTextResponse)
    def temperatures():
        try:
            return reporter.report()
        except QueryError as e:
            logger.error("[DISPLAY] %s", e)
            raise HTTPException(status_code=502, detail="unexpected query result")

    return app
