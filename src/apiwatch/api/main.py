from dotenv import load_dotenv
load_dotenv()

from contextlib import asynccontextmanager

from fastapi import FastAPI
from prometheus_fastapi_instrumentator import Instrumentator
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from apiwatch.api.routes.monitoring import router as monitoring_router
from apiwatch.api.routes.alerts import router as alerts_router
from apiwatch.logging_config import configure_logging
from apiwatch.tracing import configure_tracing
from apiwatch.services.monitoring_engine import MonitoringEngine

# ------------------------------------------------------------------
# Configure Observability
# ------------------------------------------------------------------
configure_logging()
configure_tracing()


@asynccontextmanager
async def lifespan(app: FastAPI):
    if getattr(app.state, "engine", None) is None:
        app.state.engine = MonitoringEngine()
    yield
    await app.state.engine.aclose()


app = FastAPI(title="apiwatch", lifespan=lifespan)

app.include_router(monitoring_router)
app.include_router(alerts_router)

# ------------------------------------------------------------------
# Observability
# ------------------------------------------------------------------
FastAPIInstrumentor.instrument_app(app)
Instrumentator().instrument(app).expose(app)

# ------------------------------------------------------------------
# Health Check
# ------------------------------------------------------------------
@app.get("/health")
def health_check():
    return {"status": "ok"}
