#!/usr/bin/env python3
from __future__ import annotations
import json, sys, argparse

from app.core.logging import configure_logging
from app.db.session import session_scope
from app.integrations.shopify.partner_client import PartnerGraphQLClient
from app.repository.partner_repo import find_partner_by_shop


'''
基础连通性探测：用库里存的 token 调一次 partner 店铺的 shop 查询
    PYTHONPATH=backend python scripts/ping_partner.py --shop partner-store.myshopify.com
看到返回 shop.name / myshopifyDomain / plan.displayName 说明域名、版本、token 都 OK
'''
def main() -> int:
    configure_logging()
    ap = argparse.ArgumentParser(description="Ping a connected partner store with its stored access token.")
    ap.add_argument("--shop", required=True, help="Partner shop domain, e.g. partner-store.myshopify.com")
    args = ap.parse_args()

    with session_scope() as db:
        partner = find_partner_by_shop(db, args.shop)
    if partner is None:
        print(f"ERROR: partner {args.shop} not found", file=sys.stderr)
        return 2

    data = PartnerGraphQLClient.for_partner(partner).ping()
    print(json.dumps(data.get("data"), ensure_ascii=False, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
