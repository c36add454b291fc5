import os
import logging

from dotenv import load_dotenv
from fastapi import FastAPI

from birdwatch import __version__
from birdwatch.api.routes import router

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

app = FastAPI(
    title="Birdwatch",
    version=__version__,
    root_path=os.getenv("FASTAPI_ROOT_PATH", "")
)

app.include_router(router)
