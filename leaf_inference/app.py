"""
FastAPI Application
===================
Entry point for the leaf inference server.

Start with::

    uvicorn leaf_inference.app:app --host 0.0.0.0 --port 5001

or the ``leaf-inference`` console script.
"""
from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from starlette.concurrency import run_in_threadpool

from leaf_inference import __version__, config
from leaf_inference.engine.service import LeafInferenceService, build_service
from leaf_inference.knowledge import DiseaseKnowledgeBase, validate_class_sync
from leaf_inference.routes.detection import router as detection_router
from leaf_inference.routes.health import router as health_router


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger("leaf_inference")


def create_app(
    service: LeafInferenceService | None = None,
    knowledge: DiseaseKnowledgeBase | None = None,
    load_on_startup: bool = True,
) -> FastAPI:
    """
    Build the application.

    ``service`` and ``knowledge`` default to instances wired from
    ``config`` when the lifespan starts.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Load the model once at startup; release it on shutdown."""
        logger.info("Starting leaf inference server v%s …", __version__)
        svc = service or build_service()
        kb = knowledge or DiseaseKnowledgeBase.from_file(
            config.KNOWLEDGE_PATH, svc.class_names, config.HEALTHY_CLASS
        )

        report = validate_class_sync(svc.class_names, config.get_class_names(), kb)
        for difference in report.differences:
            logger.warning("Class sync: %s", difference)

        app.state.service = svc
        app.state.knowledge = kb

        if load_on_startup:
            # ClassCountMismatch propagates and aborts startup
            if await run_in_threadpool(svc.lifecycle.load):
                logger.info("Model loaded.")
            else:
                logger.warning("Server started without ML model; predictions use the fallback.")
        yield
        logger.info("Shutting down leaf inference server.")
        svc.shutdown()

    application = FastAPI(
        title="Tomato Leaf Disease Classifier",
        description=(
            "Inference API for tomato leaf disease classification. Provides "
            "health probes, image analysis with a brightness-based fallback, "
            "model status and disease information."
        ),
        version=__version__,
        lifespan=lifespan,
    )

    application.include_router(health_router)
    application.include_router(detection_router)

    @application.get("/", include_in_schema=False)
    async def root() -> dict[str, str]:
        """Redirect-free landing that confirms the server is alive."""
        return {"message": "Tomato Leaf Disease Classifier API", "version": __version__}

    return application


app = create_app()


def main() -> None:
    import uvicorn

    uvicorn.run("leaf_inference.app:app", host=config.HOST, port=config.PORT)


if __name__ == "__main__":
    main()
