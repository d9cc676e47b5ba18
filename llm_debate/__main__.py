"""
Entry point for running the debate server as a module:
    python -m llm_debate
"""

import asyncio
from .main import main

if __name__ == "__main__":
    asyncio.run(main())
