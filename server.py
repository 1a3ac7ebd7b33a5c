#!/usr/bin/env python3
"""
Local entrypoint for the engine's HTTP surface.

The engine lives under `tokenomics_engine/`.
Use `python3 server.py` to serve it on 127.0.0.1:8000.
"""

from tokenomics_engine.main import app, run


if __name__ == "__main__":
    run()
