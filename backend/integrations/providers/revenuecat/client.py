"""
RevenueCat REST v2 client (requests)

A 409 from any create call means the resource already exists; callers use
the find_* helpers to reuse it.
"""
from typing import Any, Dict, List, Optional

import requests

from config import PROVIDER_HTTP_TIMEOUT

API_BASE = "https://api.revenuecat.com/v2"


class RevenueCatAPIError(Exception):
    """Raised when the RevenueCat API rejects a request"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code

    @property
    def conflict(self) -> bool:
        return self.status_code == 409


class RevenueCatClient:

    def __init__(self, secret_key: str, session: Optional[requests.Session] = None, timeout: float = PROVIDER_HTTP_TIMEOUT):
        self._secret_key = secret_key
        self.session = session or requests.Session()
        self.timeout = timeout

    def __repr__(self) -> str:
        return "<RevenueCatClient>"

    def _call(self, method: str, path: str, body: Any = None) -> Dict[str, Any]:
        headers = {"Authorization": f"Bearer {self._secret_key}", "Content-Type": "application/json"}
        try:
            resp = self.session.request(method, API_BASE + path, json=body, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            raise RevenueCatAPIError(f"{method} {path} failed: {e}") from e
        if not 200 <= resp.status_code < 300:
            raise RevenueCatAPIError(f"{method} {path} returned {resp.status_code}: {resp.text[:300]}", resp.status_code)
        if not resp.content:
            return {}
        return resp.json()

    def _items(self, path: str) -> List[Dict[str, Any]]:
        return self._call("GET", path).get("items", [])

    # -- creation ------------------------------------------------------

    def create_product(self, project_id: str, product: Dict[str, Any]) -> Dict[str, Any]:
        return self._call("POST", f"/projects/{project_id}/products", product)

    def create_entitlement(self, project_id: str, lookup_key: str, display_name: str) -> Dict[str, Any]:
        return self._call("POST", f"/projects/{project_id}/entitlements",
                          {"lookup_key": lookup_key, "display_name": display_name})

    def attach_products_to_entitlement(self, project_id: str, entitlement_id: str, product_ids: List[str]) -> None:
        self._call("POST", f"/projects/{project_id}/entitlements/{entitlement_id}/actions/attach_products",
                   {"product_ids": product_ids})

    def create_offering(self, project_id: str, lookup_key: str, display_name: str) -> Dict[str, Any]:
        return self._call("POST", f"/projects/{project_id}/offerings",
                          {"lookup_key": lookup_key, "display_name": display_name})

    def create_package(self, project_id: str, offering_id: str, lookup_key: str, display_name: str, position: int) -> Dict[str, Any]:
        return self._call("POST", f"/projects/{project_id}/offerings/{offering_id}/packages",
                          {"lookup_key": lookup_key, "display_name": display_name, "position": position})

    def attach_product_to_package(self, project_id: str, package_id: str, product_id: str) -> None:
        self._call("POST", f"/projects/{project_id}/packages/{package_id}/actions/attach_products",
                   {"products": [{"product_id": product_id, "eligibility_criteria": "all"}]})

    # -- lookup --------------------------------------------------------

    def find_product(self, project_id: str, app_id: str, store_identifier: str, display_name: str) -> Optional[Dict[str, Any]]:
        products = self._items(f"/projects/{project_id}/products?app_id={app_id}")
        for product in products:
            if product.get("store_identifier") == store_identifier:
                return product
        for product in products:
            if product.get("display_name") == display_name:
                return product
        return None

    def find_entitlement(self, project_id: str, lookup_key: str) -> Optional[Dict[str, Any]]:
        for ent in self._items(f"/projects/{project_id}/entitlements"):
            if ent.get("lookup_key") == lookup_key:
                return ent
        return None

    def find_offering(self, project_id: str, lookup_key: str) -> Optional[Dict[str, Any]]:
        for offering in self._items(f"/projects/{project_id}/offerings"):
            if offering.get("lookup_key") == lookup_key:
                return offering
        return None

    def find_package(self, project_id: str, offering_id: str, lookup_key: str, display_name: str) -> Optional[Dict[str, Any]]:
        packages = self._items(f"/projects/{project_id}/offerings/{offering_id}/packages")
        for pkg in packages:
            if pkg.get("lookup_key") == lookup_key:
                return pkg
        for pkg in packages:
            if pkg.get("display_name") == display_name:
                return pkg
        return None

    def validate(self, project_id: str) -> None:
        """Raises RevenueCatAPIError if the key cannot read the project"""
        self._call("GET", f"/projects/{project_id}/apps")


__all__ = ["RevenueCatClient", "RevenueCatAPIError", "API_BASE"]
