from __future__ import annotations

from urllib.parse import urlencode


def build_install_url(shop: str, redirect_uri: str, state: str, *, client_id: str, scopes: str) -> str:
    """Shopify authorize URL; grant_options[]=offline asks for a permanent token."""
    params = {
        "client_id": client_id,
        "scope": scopes,
        "redirect_uri": redirect_uri,
        "state": state,
        "grant_options[]": "offline",
    }
    return f"https://{shop}/admin/oauth/authorize?{urlencode(params)}"
