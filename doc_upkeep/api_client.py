"""REST API client for publishing update results to a documentation backend.

Callers hand over an UpdateResult and get the API response back.
Retry logic, auth headers, and filesystem fallback are handled internally.
"""

import json
import logging
import os
import time
from pathlib import Path
from typing import Any, Dict, Optional

import requests

from doc_upkeep.errors import PublishError

logger = logging.getLogger(__name__)


class DocumentAPIClient:
    """Client for the documentation REST API.

    Args:
        api_url: Base URL of the API. Defaults to ``DOC_API_URL`` env var
                 or ``http://localhost:3000``.
        api_token: Bearer token for authentication. Defaults to ``DOC_API_TOKEN``
                   env var. When empty, requests are sent without auth.
    """

    def __init__(
        self,
        api_url: Optional[str] = None,
        api_token: Optional[str] = None,
        max_retries: int = 3,
        timeout: int = 30,
    ):
        self.api_url = (api_url or os.getenv("DOC_API_URL", "http://localhost:3000")).rstrip("/")
        self.api_token = api_token or os.getenv("DOC_API_TOKEN", "")
        self.max_retries = max_retries
        self.timeout = timeout

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_token:
            headers["Authorization"] = f"Bearer {self.api_token}"
        return headers

    @staticmethod
    def build_payload(result) -> Dict[str, Any]:
        """API payload for a successful UpdateResult."""
        if result.content is None:
            raise ValueError(f"Result for {result.file_path} carries no content")
        return {
            "path": result.file_path,
            "version": result.version,
            "action": result.action,
            "strategy": result.strategy,
            "content": result.content,
            "changes": result.changes.to_dict(),
            "conflictedSections": list(result.conflicted_sections),
        }

    # ----- write operations ------------------------------------------------

    def publish(self, payload: Dict[str, Any], fallback_path: Optional[Path] = None) -> Dict[str, Any]:
        """POST a document payload with retry and fallback.

        Args:
            payload: Document payload (path, version, content, ...)
            fallback_path: If all retries fail, write the payload here as JSON.

        Returns:
            API response dict or fallback status dict.

        Raises:
            PublishError: All attempts failed and no fallback was given.
        """
        endpoint = f"{self.api_url}/api/docs"

        missing = [f for f in ("path", "content") if f not in payload]
        if missing:
            raise ValueError(f"Missing required fields: {missing}")

        for attempt in range(self.max_retries):
            try:
                logger.info("POST %s (attempt %d/%d)", endpoint, attempt + 1, self.max_retries)
                response = requests.post(
                    endpoint,
                    json=payload,
                    timeout=self.timeout,
                    headers=self._headers(),
                )
                response.raise_for_status()
                result = response.json()
                logger.info("Published %s (version %s)", payload["path"], payload.get("version"))
                return result

            except requests.exceptions.RequestException as exc:
                logger.warning("Request failed: %s: %s", type(exc).__name__, exc)
                if attempt < self.max_retries - 1:
                    wait = 2 ** attempt
                    logger.info("Retrying in %ds", wait)
                    time.sleep(wait)
                else:
                    logger.error("All %d attempts failed", self.max_retries)
                    if fallback_path:
                        return self._fallback_to_file(payload, fallback_path)
                    raise PublishError(f"API POST failed after {self.max_retries} attempts: {exc}") from exc

    def publish_result(self, result, fallback_path: Optional[Path] = None) -> Dict[str, Any]:
        return self.publish(self.build_payload(result), fallback_path=fallback_path)

    # ----- status ----------------------------------------------------------

    def health_check(self) -> bool:
        """Check if API is healthy."""
        try:
            response = requests.get(f"{self.api_url}/health", timeout=5)
            return response.status_code == 200
        except requests.exceptions.RequestException:
            return False

    # ----- internal --------------------------------------------------------

    def _fallback_to_file(self, payload: Dict[str, Any], file_path: Path) -> Dict[str, Any]:
        """Write the payload to disk when the API is unreachable."""
        file_path = Path(file_path)
        try:
            logger.info("Fallback: writing to %s", file_path)
            file_path.parent.mkdir(parents=True, exist_ok=True)
            file_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        except OSError as exc:
            logger.error("Fallback write failed: %s", exc)
            raise PublishError(f"Both API and file fallback failed: {exc}") from exc
        logger.info("Fallback write succeeded")
        return {
            "status": "fallback",
            "method": "filesystem",
            "file": str(file_path),
            "message": "API unavailable, wrote payload to file instead",
        }
