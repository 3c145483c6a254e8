"""
HTTP Server

Exposes the agent as a single POST /agent route.
"""

import logging
from typing import Any, List, Optional

import uvicorn
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..errors import ValidationError
from ..main_pipeline import NewsAgent
from ..models import Article

logger = logging.getLogger(__name__)


class AgentRequest(BaseModel):
    query: Any = None


class AgentResponse(BaseModel):
    answer: str
    sources: List[Article]


def create_app(agent: Optional[NewsAgent] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        agent: Pipeline to serve (default: NewsAgent() from the global config)
    """
    app = FastAPI(title="News Article Agent")
    app.state.agent = agent or NewsAgent()

    @app.exception_handler(RequestValidationError)
    async def invalid_body(request, exc):
        return JSONResponse(
            status_code=400,
            content={'error': 'Query is required and must be a string'}
        )

    @app.get("/health")
    def health():
        return {"status": "ok"}

    @app.post("/agent", response_model=AgentResponse)
    def agent_endpoint(body: AgentRequest):
        try:
            result = app.state.agent.handle_query(body.query)
        except ValidationError as e:
            return JSONResponse(status_code=400, content={'error': str(e)})
        except Exception as e:
            logger.error(f"API Error: {e}", exc_info=True)
            return JSONResponse(
                status_code=500,
                content={'error': 'Processing failed', 'details': str(e)}
            )
        return result

    return app


def run_server(agent: Optional[NewsAgent] = None, host: Optional[str] = None, port: Optional[int] = None):
    """Start the HTTP server with uvicorn."""
    app = create_app(agent)
    config = app.state.agent.config
    host = host or config.host
    port = port or config.port
    logger.info(f"Server running on {host}:{port}")
    uvicorn.run(app, host=host, port=port)
