"""
CLI entry point for the Bedrock Team web server.

Run:  bedrock-team-web [--port 8765] [--output ./output]
"""

import argparse
import logging
import os

import web.state as _state


def main():
    import uvicorn

    parser = argparse.ArgumentParser(description="Bedrock Team - Web server")
    parser.add_argument("--port", type=int, default=8765, help="Server port (default: 8765)")
    parser.add_argument("--host", default="127.0.0.1", help="Server host (default: 127.0.0.1)")
    parser.add_argument("--output", default=None, help="Root directory for per-run staging directories")
    args = parser.parse_args()

    if args.output:
        _state._output_root = os.path.abspath(os.path.expanduser(args.output))
    os.makedirs(_state._output_root, exist_ok=True)

    print(f"\n  Bedrock Team - Web server")
    print(f"  http://{args.host}:{args.port}")
    print(f"  Staging root: {_state._output_root}\n")

    # uvicorn's log_level only affects its own loggers
    web_log = logging.getLogger("web")
    web_log.setLevel(logging.INFO)
    if not web_log.handlers:
        h = logging.StreamHandler()
        h.setLevel(logging.INFO)
        h.setFormatter(logging.Formatter("%(asctime)s %(levelname)s [web] %(message)s"))
        web_log.addHandler(h)

    from web import app
    uvicorn.run(app, host=args.host, port=args.port, log_level="warning")
