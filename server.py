#!/usr/bin/env python3
"""
server.py - Template preview server

FastAPI-based server that renders templates with the data interchange
function table, either inline or from the configuration directory.
"""

from typing import Any, Dict, Optional

import structlog
from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from chartfuncs import __version__
from chartfuncs.config import ConfigLoader
from chartfuncs.rendering import TemplateRenderer
from chartfuncs.template import LATE_BOUND, RenderError

logger = structlog.get_logger(__name__)


class RenderRequest(BaseModel):
    template: str
    values: Dict[str, Any] = {}


def create_app(config_loader: Optional[ConfigLoader] = None) -> FastAPI:
    """Build the application around a configuration directory."""
    config_loader = config_loader or ConfigLoader()
    renderer = TemplateRenderer(config_loader)
    app = FastAPI(title="Template Function API", version=__version__)

    def render_or_raise(render, *args: Any) -> Dict[str, str]:
        try:
            return {"output": render(*args)}
        except FileNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))
        except RenderError as e:
            logger.info("server.render_failed", error=str(e))
            raise HTTPException(status_code=422, detail=str(e))
        except Exception as e:
            logger.exception("server.render_crashed")
            raise HTTPException(status_code=500, detail=f"Error rendering template: {str(e)}")

    @app.post("/render")
    async def render_inline(request: RenderRequest):
        """Render a template given in the request body."""
        return render_or_raise(renderer.render_string, request.template, request.values)

    @app.get("/render/{template_name}")
    async def render_configured(template_name: str, values: Optional[str] = None):
        """
        Render a configured template.

        Args:
            template_name: Template file name under templates/
            values: Optional values file name under values/; defaults to empty values
        """
        if values is None:
            return render_or_raise(renderer.render, template_name, {})
        return render_or_raise(renderer.render_with_values, template_name, values)

    @app.get("/functions")
    async def list_functions():
        """List the functions templates can call."""
        return {
            "functions": [
                {"name": name, "late_bound": name in LATE_BOUND}
                for name in sorted(renderer.functions)
            ]
        }

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "version": __version__}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
