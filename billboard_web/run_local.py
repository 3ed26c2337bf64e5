#!/usr/bin/env python3
"""
Local development server runner
Run this script to start the Flask development server

Set AUTHORITY_BACKEND=memory to run against the in-memory auction instead of
a deployed contract.
"""

import os

from billboard_web.wsgi import app

if __name__ == '__main__':
    port = int(os.getenv("PORT", "5000"))
    print("=" * 60)
    print("Starting Billboard API Server")
    print("=" * 60)
    print(f"Access the API at: http://localhost:{port}/api/bid")
    print("Press CTRL+C to stop the server")
    print("=" * 60)
    app.run(debug=True, host='127.0.0.1', port=port)
