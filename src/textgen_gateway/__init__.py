"""
Text generation gateway package.

Provides:
- POST /generate proxy to the Gemini generative-AI API
- GET /health liveness probe with memory and configuration checks
- GET /metrics runtime counters snapshot
"""

__version__ = "1.0.0"
