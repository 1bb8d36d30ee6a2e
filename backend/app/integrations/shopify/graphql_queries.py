import json

# Partner 商品目录：products connection（cursor 分页），每个商品带前 100 个变体
PRODUCTS_QUERY = """
query getProducts($first: Int!, $after: String, $query: String) {
  products(first: $first, after: $after, query: $query) {
    pageInfo {
      hasNextPage
      endCursor
    }
    edges {
      node {
        id
        title
        handle
        status
        vendor
        productType
        tags
        featuredImage { url altText }
        variants(first: 100) {
          edges {
            node {
              id
              title
              sku
              price
              compareAtPrice
              barcode
              inventoryQuantity
              inventoryItem { id }
            }
          }
        }
      }
    }
  }
}
""".strip()


SHOP_PING_QUERY = """
{
  shop {
    name
    myshopifyDomain
    plan { displayName }
  }
}
""".strip()


# GraphQL 片段
_LIST_WEBHOOKS = """
query ListWebhooks($first:Int!, $topic: WebhookSubscriptionTopic){
  webhookSubscriptions(first: $first, topics: [$topic]) {
    edges {
      node {
        id
        topic
        endpoint {
          __typename
          ... on WebhookHttpEndpoint { callbackUrl }
        }
      }
    }
  }
}
""".strip()


_CREATE_WEBHOOK = """
mutation CreateWebhook($topic: WebhookSubscriptionTopic!, $cb: URL!){
  webhookSubscriptionCreate(
    topic: $topic
    webhookSubscription: { callbackUrl: $cb, format: JSON }
  ){
    userErrors { field message }
    webhookSubscription {
      id
      topic
      endpoint { __typename ... on WebhookHttpEndpoint { callbackUrl } }
    }
  }
}
""".strip()



# ---------- 库存同步 ----------

# partner 店铺：按变体 GID 批量取当前库存（nodes 一次最多 250 个）
VARIANT_INVENTORY_QUERY = """
query getVariantInventory($ids: [ID!]!) {
  nodes(ids: $ids) {
    ... on ProductVariant {
      id
      inventoryQuantity
    }
  }
}
""".strip()


# owner 店铺：按 partner SKU 找到对应变体的 inventoryItem
OWNER_VARIANTS_BY_SKU_QUERY = """
query ownerVariantsBySku($first: Int!, $query: String!) {
  productVariants(first: $first, query: $query) {
    edges {
      node {
        id
        sku
        inventoryItem { id }
      }
    }
  }
}
""".strip()


# owner 店铺：取第一个 location（库存写入位置）
LOCATIONS_QUERY = """
query getLocations {
  locations(first: 1) {
    edges {
      node {
        id
        name
        isActive
      }
    }
  }
}
""".strip()


# owner 店铺：直接覆盖 available 数量（partner 的库存为准）
# ignoreCompareQuantity 在新版本 API 中被 changeFromQuantity: null 取代，升级 SHOPIFY_API_VERSION 时要一起改
INVENTORY_SET_QUANTITIES_MUTATION = """
mutation inventorySetQuantities($input: InventorySetQuantitiesInput!) {
  inventorySetQuantities(input: $input) {
    inventoryAdjustmentGroup {
      createdAt
      reason
    }
    userErrors {
      field
      message
    }
  }
}
""".strip()


def escape_search_value(value: str) -> str:
    """转义后放进 Shopify 搜索字符串，统一包裹双引号。"""
    escaped = json.dumps(value or "")[1:-1]
    return f'"{escaped}"'


def sku_search_query(skus) -> str:
    return " OR ".join(f"sku:{escape_search_value(s)}" for s in skus)
