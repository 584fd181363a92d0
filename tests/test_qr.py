"""Tests for QR rendering."""

import base64

from autoreply_bot.qr import render_data_uri, render_svg, render_terminal


def test_render_svg():
    svg = render_svg("2@pairing-token")
    assert b"<svg" in svg


def test_render_data_uri():
    uri = render_data_uri("2@pairing-token")
    prefix = "data:image/svg+xml;base64,"
    assert uri.startswith(prefix)
    assert b"<svg" in base64.b64decode(uri[len(prefix):])


def test_render_terminal():
    art = render_terminal("2@pairing-token")
    lines = art.splitlines()
    assert len(lines) > 10
    assert "2@pairing-token" not in art
