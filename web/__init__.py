"""
Bedrock Team - web server.
FastAPI + Server-Sent Events bridge to the TeamOrchestrator.

Run:  bedrock-team-web [--port 8765] [--output ./output]
POST /api/agents  {"task": "..."}  -> text/event-stream
"""

import logging

from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI

from web import api_agents

logger = logging.getLogger(__name__)

# ============================================================
# FastAPI application
# ============================================================

app = FastAPI(title="Bedrock Team")

app.include_router(api_agents.router)
