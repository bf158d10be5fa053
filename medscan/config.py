# medscan/config.py
import os
from functools import lru_cache

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from openai import AsyncOpenAI

load_dotenv()

OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
MODEL_NAME = os.getenv("MEDSCAN_MODEL", "gpt-4o")

DATA_FILE = os.getenv("MEDSCAN_DATA_FILE", "data.json")
LOG_LEVEL = os.getenv("MEDSCAN_LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("MEDSCAN_LOG_FILE")
LOG_JSON = os.getenv("MEDSCAN_LOG_JSON", "").lower() in ("1", "true", "yes")

SUPABASE_URL = os.getenv("SUPABASE_URL", "")
SUPABASE_ANON_KEY = os.getenv("SUPABASE_ANON_KEY", "")


@lru_cache(maxsize=1)
def get_async_client() -> AsyncOpenAI:
    # created on first use so the app can start without a key
    return AsyncOpenAI(api_key=OPENAI_API_KEY)


def create_app() -> FastAPI:
    app = FastAPI(title="MedScan API")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    return app
