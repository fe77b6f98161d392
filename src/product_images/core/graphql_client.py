"""Async client for the storefront admin GraphQL API."""

import re
from typing import Any, Dict, List, Optional

import httpx

from .exceptions import RemoteApiError, UploadTransferError
from .logging_config import get_logger
from .models import (
    ProductSummary,
    ProductVariant,
    RemoteAsset,
    StagedParameter,
    StagedTarget,
    StoreCredentials,
)
from .settings import ServiceSettings

_PRODUCT_HANDLE = re.compile(r"/products/([^/?#]+)")
_VARIANT_PARAM = re.compile(r"[?&]variant=(\d+)")

VARIANT_FIELDS = """
    id
    sku
    title
    image {
      id
      url
      altText
    }
"""

SEARCH_VARIANT_QUERY = f"""
query searchProductVariants($query: String!) {{
  productVariants(first: 1, query: $query) {{
    edges {{
      node {{
        {VARIANT_FIELDS}
        product {{
          id
          title
          handle
          status
        }}
      }}
    }}
  }}
}}
"""

PRODUCT_BY_HANDLE_QUERY = f"""
query getProduct($handle: String!) {{
  productByHandle(handle: $handle) {{
    id
    title
    handle
    status
    variants(first: 50) {{
      edges {{
        node {{
          {VARIANT_FIELDS}
        }}
      }}
    }}
  }}
}}
"""

SHOP_QUERY = """
query shopName {
  shop {
    name
  }
}
"""

STAGED_UPLOADS_MUTATION = """
mutation stagedUploadsCreate($input: [StagedUploadInput!]!) {
  stagedUploadsCreate(input: $input) {
    stagedTargets {
      url
      resourceUrl
      parameters {
        name
        value
      }
    }
    userErrors {
      field
      message
    }
  }
}
"""

FILE_CREATE_MUTATION = """
mutation fileCreate($files: [FileCreateInput!]!) {
  fileCreate(files: $files) {
    files {
      id
      fileStatus
      alt
      ... on MediaImage {
        image {
          url
        }
      }
      ... on GenericFile {
        url
      }
    }
    userErrors {
      field
      message
    }
  }
}
"""

PRODUCT_CREATE_MEDIA_MUTATION = """
mutation productCreateMedia($productId: ID!, $media: [CreateMediaInput!]!) {
  productCreateMedia(productId: $productId, media: $media) {
    media {
      id
      alt
      status
      ... on MediaImage {
        image {
          url
        }
      }
    }
    mediaUserErrors {
      field
      message
    }
  }
}
"""

PRODUCT_MEDIA_QUERY = """
query productMedia($id: ID!) {
  product(id: $id) {
    media(first: 50) {
      nodes {
        id
        alt
        status
        ... on MediaImage {
          image {
            url
          }
        }
      }
    }
  }
}
"""

PRODUCT_DELETE_MEDIA_MUTATION = """
mutation productDeleteMedia($productId: ID!, $mediaIds: [ID!]!) {
  productDeleteMedia(productId: $productId, mediaIds: $mediaIds) {
    deletedMediaIds
    mediaUserErrors {
      field
      message
    }
  }
}
"""

VARIANT_APPEND_MEDIA_MUTATION = """
mutation productVariantAppendMedia($productId: ID!, $variantMedia: [ProductVariantAppendMediaInput!]!) {
  productVariantAppendMedia(productId: $productId, variantMedia: $variantMedia) {
    productVariants {
      id
    }
    userErrors {
      field
      message
    }
  }
}
"""

PRODUCT_UPDATE_MEDIA_MUTATION = """
mutation productUpdateMedia($productId: ID!, $media: [UpdateMediaInput!]!) {
  productUpdateMedia(productId: $productId, media: $media) {
    media {
      id
      alt
    }
    mediaUserErrors {
      field
      message
    }
  }
}
"""

PREVIEW_URL_QUERY = """
query productPreview($id: ID!) {
  product(id: $id) {
    onlineStorePreviewUrl
  }
}
"""


def _raise_user_errors(payload: Dict[str, Any], key: str, action: str) -> None:
    errors = payload.get(key) or []
    if errors:
        raise RemoteApiError(f"{action} error: {errors[0].get('message', errors[0])}")


def _asset_from_node(node: Dict[str, Any]) -> RemoteAsset:
    url = node.get("url") or ((node.get("image") or {}).get("url")) or ""
    return RemoteAsset(
        id=node["id"],
        url=url,
        status=node.get("fileStatus") or node.get("status") or "",
        alt_text=node.get("alt"),
    )


def _variant_from_node(node: Dict[str, Any], product: Dict[str, Any]) -> ProductVariant:
    image = node.get("image")
    return ProductVariant(
        id=node["id"],
        sku=node.get("sku") or "",
        title=node.get("title") or "",
        image=(
            {"id": image["id"], "url": image.get("url") or "", "alt_text": image.get("altText")}
            if image
            else None
        ),
        product=ProductSummary(
            id=product["id"],
            title=product.get("title") or "",
            handle=product.get("handle") or "",
            status=product.get("status") or "ACTIVE",
        ),
    )


class ShopifyGraphQLClient:
    """Remote product API backed by the admin GraphQL endpoint."""

    def __init__(
        self,
        credentials: StoreCredentials,
        settings: Optional[ServiceSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._credentials = credentials
        self._settings = settings or ServiceSettings()
        self._logger = get_logger("product-images.graphql")
        self._http = httpx.AsyncClient(
            timeout=self._settings.http_timeout_seconds, transport=transport
        )

    @property
    def endpoint(self) -> str:
        store = self._credentials.store_url.removeprefix("https://").rstrip("/")
        return f"https://{store}/admin/api/{self._settings.api_version}/graphql.json"

    async def __aenter__(self) -> "ShopifyGraphQLClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _request(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        try:
            response = await self._http.post(
                self.endpoint,
                json={"query": query, "variables": variables or {}},
                headers={
                    "Content-Type": "application/json",
                    "X-Shopify-Access-Token": self._credentials.access_token,
                },
            )
        except httpx.HTTPError as exc:
            raise RemoteApiError(f"Product API request failed: {exc}") from exc

        if response.is_error:
            raise RemoteApiError(
                f"Product API error: {response.status_code} {response.reason_phrase}"
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise RemoteApiError(f"Product API returned invalid JSON: {exc}") from exc
        if not isinstance(body, dict):
            raise RemoteApiError("Product API returned an unexpected response body")
        if body.get("errors"):
            raise RemoteApiError(f"GraphQL errors: {body['errors']}")
        return body.get("data") or {}

    async def test_connection(self) -> str:
        data = await self._request(SHOP_QUERY)
        return (data.get("shop") or {}).get("name", "")

    async def search_product_by_code(self, code: str) -> Optional[ProductVariant]:
        data = await self._request(SEARCH_VARIANT_QUERY, {"query": f"sku:{code}"})
        edges = (data.get("productVariants") or {}).get("edges") or []
        if not edges:
            return None
        node = edges[0]["node"]
        return _variant_from_node(node, node["product"])

    async def get_product_from_url(self, url: str) -> Optional[ProductVariant]:
        handle_match = _PRODUCT_HANDLE.search(url)
        if not handle_match:
            raise RemoteApiError("Could not extract product handle from URL")
        variant_match = _VARIANT_PARAM.search(url)
        variant_id = (
            f"gid://shopify/ProductVariant/{variant_match.group(1)}" if variant_match else None
        )

        data = await self._request(PRODUCT_BY_HANDLE_QUERY, {"handle": handle_match.group(1)})
        product = data.get("productByHandle")
        if not product:
            return None

        nodes = [edge["node"] for edge in (product.get("variants") or {}).get("edges") or []]
        if not nodes:
            return None
        if variant_id:
            for node in nodes:
                if node["id"] == variant_id:
                    return _variant_from_node(node, product)
        return _variant_from_node(nodes[0], product)

    async def reserve_upload(self, filename: str, mime_type: str, size: int) -> StagedTarget:
        try:
            data = await self._request(
                STAGED_UPLOADS_MUTATION,
                {
                    "input": [
                        {
                            "filename": filename,
                            "mimeType": mime_type,
                            "fileSize": str(size),
                            "resource": "IMAGE",
                            "httpMethod": "POST",
                        }
                    ]
                },
            )
            payload = data["stagedUploadsCreate"]
            _raise_user_errors(payload, "userErrors", "Staged upload")
        except (RemoteApiError, KeyError, TypeError) as exc:
            raise UploadTransferError(f"Could not reserve upload for {filename}: {exc}") from exc

        targets = payload.get("stagedTargets") or []
        if not targets:
            raise UploadTransferError(f"No staged upload target returned for {filename}")
        target = targets[0]
        return StagedTarget(
            url=target["url"],
            resource_url=target["resourceUrl"],
            parameters=[StagedParameter(**p) for p in target.get("parameters") or []],
        )

    async def transfer(
        self, target: StagedTarget, filename: str, mime_type: str, content: bytes
    ) -> None:
        form: Dict[str, List[str]] = {}
        for parameter in target.parameters:
            form.setdefault(parameter.name, []).append(parameter.value)
        try:
            response = await self._http.post(
                target.url,
                data=form,
                files={"file": (filename, content, mime_type)},
            )
        except httpx.HTTPError as exc:
            raise UploadTransferError(f"Upload of {filename} failed: {exc}") from exc

        if response.is_error:
            raise UploadTransferError(
                f"Upload of {filename} failed: {response.status_code} {response.reason_phrase}"
            )
        self._logger.debug(f"Transferred {len(content)} bytes for {filename}")

    async def register_asset(self, resource_url: str, alt_text: Optional[str] = None) -> RemoteAsset:
        try:
            data = await self._request(
                FILE_CREATE_MUTATION,
                {
                    "files": [
                        {
                            "originalSource": resource_url,
                            "alt": alt_text or "",
                            "contentType": "IMAGE",
                        }
                    ]
                },
            )
            payload = data["fileCreate"]
            _raise_user_errors(payload, "userErrors", "File create")
            return _asset_from_node(payload["files"][0])
        except (RemoteApiError, KeyError, IndexError, TypeError) as exc:
            raise UploadTransferError(f"Could not register asset: {exc}") from exc

    async def attach_asset_to_product(
        self, product_id: str, resource_url: str, alt_text: Optional[str] = None
    ) -> RemoteAsset:
        try:
            data = await self._request(
                PRODUCT_CREATE_MEDIA_MUTATION,
                {
                    "productId": product_id,
                    "media": [
                        {
                            "originalSource": resource_url,
                            "alt": alt_text or "",
                            "mediaContentType": "IMAGE",
                        }
                    ],
                },
            )
            payload = data["productCreateMedia"]
            _raise_user_errors(payload, "mediaUserErrors", "Media create")
            return _asset_from_node(payload["media"][0])
        except (RemoteApiError, KeyError, IndexError, TypeError) as exc:
            raise UploadTransferError(f"Could not attach image to {product_id}: {exc}") from exc

    async def list_product_media(self, product_id: str) -> List[RemoteAsset]:
        data = await self._request(PRODUCT_MEDIA_QUERY, {"id": product_id})
        product = data.get("product") or {}
        nodes = (product.get("media") or {}).get("nodes") or []
        return [_asset_from_node(node) for node in nodes]

    async def delete_asset(self, product_id: str, asset_id: str) -> bool:
        data = await self._request(
            PRODUCT_DELETE_MEDIA_MUTATION, {"productId": product_id, "mediaIds": [asset_id]}
        )
        payload = data.get("productDeleteMedia") or {}
        _raise_user_errors(payload, "mediaUserErrors", "Media delete")
        return asset_id in (payload.get("deletedMediaIds") or [])

    async def bind_asset_to_variant(self, product_id: str, variant_id: str, asset_id: str) -> bool:
        data = await self._request(
            VARIANT_APPEND_MEDIA_MUTATION,
            {
                "productId": product_id,
                "variantMedia": [{"variantId": variant_id, "mediaIds": [asset_id]}],
            },
        )
        payload = data.get("productVariantAppendMedia") or {}
        _raise_user_errors(payload, "userErrors", "Variant media")
        return True

    async def update_alt_text(self, product_id: str, asset_id: str, alt_text: str) -> bool:
        data = await self._request(
            PRODUCT_UPDATE_MEDIA_MUTATION,
            {"productId": product_id, "media": [{"id": asset_id, "alt": alt_text}]},
        )
        payload = data.get("productUpdateMedia") or {}
        _raise_user_errors(payload, "mediaUserErrors", "Media update")
        return True

    async def preview_link(self, product_id: str) -> Optional[str]:
        data = await self._request(PREVIEW_URL_QUERY, {"id": product_id})
        return (data.get("product") or {}).get("onlineStorePreviewUrl")

    def live_url(self, handle: str) -> str:
        store = self._credentials.store_url.removeprefix("https://").rstrip("/")
        return f"https://{store.replace('.myshopify.com', '.com')}/products/{handle}"
