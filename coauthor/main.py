import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from coauthor.core.logging import setup_logging
from coauthor.api.http.chat import router as chat_router
from coauthor.api.http.completion import router as completion_router
from coauthor.api.http.documents import router as documents_router
from coauthor.api.ws.sync import router as websocket_router

setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Coauthor",
    description="Совместное редактирование документов человеком и ИИ с версиями и предложениями правок",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Подключаем роутеры
app.include_router(documents_router)
app.include_router(chat_router)
app.include_router(completion_router)
app.include_router(websocket_router)


@app.get("/health")
async def health():
    """Проверка доступности сервиса"""
    return {"status": "ok"}


@app.get("/")
async def root():
    return {
        "message": "Coauthor API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health"
    }
