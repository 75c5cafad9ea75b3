#!/usr/bin/env python3
"""
Health check script for container health probes.

Usage:
    python scripts/healthcheck.py [host] [port]

Exits 0 when the DuckDB connection reports ready, 1 otherwise.
"""

import json
import sys
import urllib.error
import urllib.request


def check_geoservices(host="localhost", port=8001):
    """Check /rest/health reports a ready engine."""
    try:
        url = f"http://{host}:{port}/rest/health"
        req = urllib.request.urlopen(url, timeout=5)
        body = json.loads(req.read())
        return req.status == 200 and body.get("status") == "ready"
    except (urllib.error.URLError, OSError, ValueError):
        return False


def main():
    host = sys.argv[1] if len(sys.argv) > 1 else "localhost"
    port = int(sys.argv[2]) if len(sys.argv) > 2 else 8001

    if check_geoservices(host, port):
        print("geoservices: healthy")
        sys.exit(0)
    else:
        print("geoservices: unhealthy", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
