"""Keep-alive HTTP endpoint, optionally serving the pairing QR."""

import html
import logging
from typing import Optional

from aiohttp import web

from .config import BotConfig, get_config
from .qr import render_data_uri
from .session import SessionManager

logger = logging.getLogger(__name__)

SESSION_KEY = web.AppKey("session", SessionManager)
CONFIG_KEY = web.AppKey("config", BotConfig)

QR_PAGE = """<!doctype html>
<html>
<head><meta charset="utf-8"><meta http-equiv="refresh" content="10"><title>Pair WhatsApp</title></head>
<body style="font-family: sans-serif; text-align: center">
<h1>📱 Scan with WhatsApp</h1>
<p>WhatsApp &gt; Linked devices &gt; Link a device</p>
<img src="{data_uri}" alt="{alt}" width="300" height="300">
</body>
</html>
"""

WAITING_PAGE = """<!doctype html>
<html>
<head><meta charset="utf-8"><meta http-equiv="refresh" content="5"><title>Waiting</title></head>
<body style="font-family: sans-serif; text-align: center">
<h1>⏳ Waiting for WhatsApp</h1>
<p>Session state: {state}</p>
</body>
</html>
"""


async def index(request: web.Request) -> web.Response:
    """
    Liveness text, or the pairing page.

    With QR serving off the body is always the liveness string. With it on,
    a pending pairing token is rendered as an image, an open session gets
    the liveness string and anything else a waiting page.
    """
    session = request.app[SESSION_KEY]
    config = request.app[CONFIG_KEY]

    if not config.serve_qr or session.is_open:
        return web.Response(text=config.liveness_message)

    qr = session.current_qr
    if qr:
        page = QR_PAGE.format(data_uri=render_data_uri(qr), alt="WhatsApp pairing QR code")
    else:
        page = WAITING_PAGE.format(state=html.escape(session.state.value))
    return web.Response(text=page, content_type="text/html")


def create_app(session: SessionManager, config: Optional[BotConfig] = None) -> web.Application:
    """Build the single-route application."""
    app = web.Application()
    app[SESSION_KEY] = session
    app[CONFIG_KEY] = config or get_config()
    app.router.add_get("/", index)
    return app


async def start_server(app: web.Application, host: str, port: int) -> web.AppRunner:
    """
    Start serving ``app`` without blocking.

    Returns:
        The runner; call ``runner.cleanup()`` to stop
    """
    runner = web.AppRunner(app, access_log=None)
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    logger.info(f"🌐 HTTP server listening on port {port}")
    return runner
