# medscan/main.py
from typing import Optional

from fastapi import FastAPI

from medscan.config import DATA_FILE, LOG_FILE, LOG_JSON, LOG_LEVEL, create_app
from medscan.logging_utils import setup_logging
from medscan.profiles import ProfileService, get_supabase_client
from medscan.routers import chat, family, places, profile, report
from medscan.storage import JsonFileStore


def build_app(
    store: Optional[JsonFileStore] = None,
    profiles: Optional[ProfileService] = None,
) -> FastAPI:
    app = create_app()

    app.state.store = store or JsonFileStore(DATA_FILE)
    app.state.profiles = profiles or ProfileService(app.state.store, get_supabase_client())

    app.include_router(report.router)
    app.include_router(chat.router)
    app.include_router(places.router)
    app.include_router(family.router)
    app.include_router(profile.router)

    @app.get("/health")
    def health():
        return {"status": "ok", "service": "medscan"}

    return app


setup_logging(LOG_LEVEL, LOG_FILE, json_format=LOG_JSON)
app = build_app()

# uvicorn medscan.main:app --reload
