"""Run with: python -m src.api"""
import uvicorn

from src.api.main import app
from src.config import settings

if __name__ == "__main__":
    uvicorn.run(app, host=settings.api_host, port=settings.api_port, log_level=settings.log_level.lower())
