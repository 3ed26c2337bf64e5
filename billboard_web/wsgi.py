"""
WSGI entry point

Serverless platforms and WSGI servers import `app` from here, e.g.
`gunicorn billboard_web.wsgi:app`.
"""

from billboard_web.index import build_default_app

app = build_default_app()
