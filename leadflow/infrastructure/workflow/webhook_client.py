"""
Workflow Automation Client
Fire-and-forget HTTP calls to the external workflow-automation endpoint
(outreach email after three failed contact attempts, appointment invites).

A failed call degrades to "not sent": it is logged and reported as False,
never raised to the caller.
"""
import logging
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger(__name__)


class WorkflowClient:
    """
    POSTs `{leadId, tenantId, ...context}` to `{base_url}/{path}`.

    Workflows are addressed by name; `paths` maps each name to its webhook
    path. No retries: 2xx is success, everything else is logged.
    """

    SOURCE_HEADER = "X-Webhook-Source"
    SOURCE = "leadflow"

    def __init__(
        self,
        base_url: Optional[str],
        paths: Optional[Dict[str, str]] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or "").rstrip("/")
        self.paths = paths or {}
        self.timeout = timeout
        self._transport = transport
        self._calls = 0
        self._failures = 0

    @property
    def enabled(self) -> bool:
        return bool(self.base_url)

    def url_for(self, workflow: str) -> Optional[str]:
        path = self.paths.get(workflow)
        if not self.base_url or not path:
            return None
        return f"{self.base_url}/{path.lstrip('/')}"

    async def trigger(self, workflow: str, lead_id: str, tenant_id: str, **context: Any) -> bool:
        """
        Invoke a workflow.

        Args:
            workflow: Workflow name (see follow_up_generator WORKFLOW_*)
            lead_id: Lead the workflow is about
            tenant_id: Owning tenant
            **context: Extra payload fields, sent in camelCase as given

        Returns:
            True on a 2xx response, False otherwise
        """
        url = self.url_for(workflow)
        if url is None:
            logger.warning(f"Workflow '{workflow}' not configured; skipping call for lead {lead_id}")
            return False

        payload = {"leadId": lead_id, "tenantId": tenant_id, **context}
        self._calls += 1
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    url,
                    json=payload,
                    headers={self.SOURCE_HEADER: self.SOURCE},
                )
        except httpx.HTTPError as e:
            self._failures += 1
            logger.error(f"Workflow '{workflow}' call failed for lead {lead_id}: {e}")
            return False

        if not response.is_success:
            self._failures += 1
            logger.error(
                f"Workflow '{workflow}' returned {response.status_code} for lead {lead_id}: "
                f"{response.text[:200]}"
            )
            return False

        logger.info(f"Workflow '{workflow}' triggered for lead {lead_id}")
        return True

    def get_stats(self) -> Dict[str, int]:
        return {"calls": self._calls, "failures": self._failures}
