# =============================================================================
# core/scim_client.py - SCIM 2.0 target directory client
# =============================================================================

import logging
from typing import Dict, Any, List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from core.errors import LoadError, RequestError
from core.models import ResourceKind, TargetGroup, TargetUser, PATCH_OP_SCHEMA


class ScimClient:
    """SCIM client for the provisioned identity store"""

    PAGE_SIZE = 500

    def __init__(self, base_url: str, token: str, timeout: float = 30.0):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.logger = logging.getLogger(__name__)

        self.session = requests.Session()
        self.session.headers.update({
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/scim+json",
            "Accept": "application/scim+json, application/json",
        })
        # Transient failures only; the sync itself never retries
        retry = Retry(
            total=3,
            backoff_factor=1,
            status_forcelist=[429, 502, 503, 504],
            allowed_methods=["GET"],
        )
        adapter = HTTPAdapter(max_retries=retry)
        self.session.mount("https://", adapter)
        self.session.mount("http://", adapter)

    def __enter__(self):
        """Context manager entry"""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit"""
        self.close()

    def close(self) -> None:
        self.session.close()

    def _url(self, kind: ResourceKind, resource_id: Optional[str] = None) -> str:
        url = f"{self.base_url}/{kind.value}"
        if resource_id:
            url += f"/{resource_id}"
        return url

    def _request(self, method: str, url: str, params: Optional[Dict[str, Any]] = None,
                 json_body: Any = None) -> Optional[Dict[str, Any]]:
        """Issue a request, mapping transport and non-2xx failures to RequestError"""
        self.logger.debug(f"SCIM {method} {url} params={params}")
        try:
            resp = self.session.request(method, url, params=params, json=json_body,
                                        timeout=self.timeout)
        except requests.RequestException as e:
            raise RequestError(f"{method} {url} failed: {e}") from e

        if resp.status_code < 200 or resp.status_code >= 300:
            raise RequestError(f"{method} {url} failed", resp.status_code, resp.text)

        if resp.status_code == 204 or not resp.content:
            return None
        try:
            return resp.json()
        except ValueError:
            return None

    def get(self, kind: ResourceKind, resource_id: str) -> Dict[str, Any]:
        """Read a single resource"""
        return self._request("GET", self._url(kind, resource_id)) or {}

    def create(self, kind: ResourceKind, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Create a resource and return the stored representation"""
        result = self._request("POST", self._url(kind), json_body=payload)
        if not result or not result.get("id"):
            raise RequestError(f"POST {self._url(kind)} returned no resource id")
        return result

    def patch(self, kind: ResourceKind, resource_id: str, operations: List[Dict[str, Any]]) -> None:
        """Apply a PatchOp operation list to a resource"""
        payload = {
            "schemas": [PATCH_OP_SCHEMA],
            "Operations": operations,
        }
        self._request("PATCH", self._url(kind, resource_id), json_body=payload)

    def delete(self, kind: ResourceKind, resource_id: str) -> None:
        """Delete a resource"""
        self._request("DELETE", self._url(kind, resource_id))

    def _list(self, kind: ResourceKind) -> List[Dict[str, Any]]:
        """Fetch all pages of a resource listing"""
        resources: List[Dict[str, Any]] = []
        start_index = 1
        previous_ids = None

        while True:
            params = {"startIndex": start_index, "count": self.PAGE_SIZE}
            page = self._request("GET", self._url(kind), params=params) or {}
            items = page.get("Resources") or []

            # Servers ignoring startIndex return the same page again
            page_ids = [item.get("id") for item in items]
            if page_ids and page_ids == previous_ids:
                self.logger.warning(f"SCIM {kind.value} listing repeated a page, stopping pagination")
                break
            previous_ids = page_ids
            resources.extend(items)

            total = page.get("totalResults")
            if not items or len(items) < self.PAGE_SIZE:
                break
            if total is not None and len(resources) >= int(total):
                break
            start_index += len(items)

        self.logger.debug(f"Loaded {len(resources)} SCIM {kind.value.lower()}")
        return resources

    def list_groups(self) -> Dict[str, TargetGroup]:
        """Load all target groups keyed by id"""
        try:
            resources = self._list(ResourceKind.GROUPS)
        except RequestError as e:
            raise LoadError(f"Could not load SCIM groups: {e}") from e

        groups = {}
        for resource in resources:
            group = TargetGroup.from_scim(resource)
            if group:
                groups[group.id] = group
        return groups

    def list_users(self) -> Dict[str, TargetUser]:
        """Load all target users keyed by id"""
        try:
            resources = self._list(ResourceKind.USERS)
        except RequestError as e:
            raise LoadError(f"Could not load SCIM users: {e}") from e

        users = {}
        for resource in resources:
            user = TargetUser.from_scim(resource)
            if user:
                users[user.id] = user
        return users

    def test_connection(self) -> bool:
        """Verify the endpoint and token with a minimal listing"""
        try:
            self._request("GET", self._url(ResourceKind.USERS), params={"count": 1})
            self.logger.info("Successfully connected to SCIM endpoint")
            return True
        except RequestError as e:
            self.logger.error(f"Failed to connect to SCIM endpoint: {e}")
            return False
