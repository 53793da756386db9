#!/usr/bin/env python3
"""Run script for dailytasks."""

import os

import uvicorn

if __name__ == "__main__":
    uvicorn.run(
        "dailytasks.api.app:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "3000")),
        reload=os.getenv("RELOAD", "False").lower() == "true",
    )
