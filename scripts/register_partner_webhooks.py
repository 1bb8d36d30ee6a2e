#!/usr/bin/env python3
from __future__ import annotations
import os, sys, json, argparse

from app.core.config import settings
from app.core.logging import configure_logging
from app.db.session import session_scope
from app.integrations.shopify.partner_client import PartnerGraphQLClient
from app.repository.partner_repo import find_partner_by_shop, get_usable_partners


'''
运维小脚本：给 partner 店铺补订 app/uninstalled、app/scopes_update webhook
    - 回调根地址取 --base-url，否则 SHOPIFY_APP_URL
    - 不带 --shop 时对所有可用 partner 执行
    PYTHONPATH=backend python scripts/register_partner_webhooks.py --shop partner-store.myshopify.com
（compliance 三个 topic 在 app 配置里声明，不走 API 订阅）
'''
TOPICS = {
    "APP_UNINSTALLED": "/webhooks/shopify/app/uninstalled",
    "APP_SCOPES_UPDATE": "/webhooks/shopify/app/scopes_update",
}


def main() -> int:
    configure_logging()
    ap = argparse.ArgumentParser(description="Ensure app lifecycle webhook subscriptions on partner stores.")
    ap.add_argument("--shop", help="Only this partner shop (default: every usable partner)")
    ap.add_argument("--base-url", help="Public HTTPS base URL of this app (default: SHOPIFY_APP_URL)")
    args = ap.parse_args()

    base_url = (args.base_url or settings.SHOPIFY_APP_URL or os.getenv("SHOPIFY_APP_URL") or "").rstrip("/")
    if not base_url:
        print("ERROR: provide --base-url or set SHOPIFY_APP_URL", file=sys.stderr)
        return 2

    with session_scope() as db:
        if args.shop:
            partner = find_partner_by_shop(db, args.shop)
            partners = [partner] if partner is not None else []
        else:
            partners = get_usable_partners(db)

    if not partners:
        print("ERROR: no matching partner", file=sys.stderr)
        return 2

    results = {}
    for partner in partners:
        client = PartnerGraphQLClient.for_partner(partner)
        results[partner.shop] = [client.ensure_webhook(topic, base_url + path) for topic, path in TOPICS.items()]

    print(json.dumps(results, ensure_ascii=False, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
