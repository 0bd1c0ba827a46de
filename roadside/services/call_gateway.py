"""Outbound call gateway: places a VAPI voice-agent call over a Twilio number."""

from __future__ import annotations

import logging
from typing import Protocol
from urllib.parse import urlencode

import httpx

from roadside.config import TwilioConfig, VapiConfig
from roadside.errors import GatewayConfigError
from roadside.schemas import CallOutcome, Mechanic
from roadside.services.prompts import build_dispatch_prompt, build_first_message
from roadside.services.ticket_context import TicketContext

logger = logging.getLogger(__name__)

_BUSY_STATUSES = {"queued", "ringing", "in-progress"}


class CallGateway(Protocol):
    async def place_call(self, mechanic: Mechanic, context: TicketContext) -> CallOutcome:
        """Place one call. Ordinary failures come back as ``success=False``."""
        ...

    async def has_active_calls(self) -> bool:
        ...


class VapiCallGateway:
    """CallGateway backed by the VAPI REST API.

    Credentials are checked at construction so a misconfigured process
    fails at startup instead of inside a dispatch cycle.
    """

    def __init__(
        self,
        vapi: VapiConfig,
        twilio: TwilioConfig,
        client: httpx.AsyncClient | None = None,
    ):
        if not vapi.api_key:
            raise GatewayConfigError("VAPI_API_KEY is not set")
        if not twilio.account_sid or not twilio.auth_token:
            raise GatewayConfigError("TWILIO_ACCOUNT_SID and TWILIO_AUTH_TOKEN are required")
        self._vapi = vapi
        self._twilio = twilio
        self._base_url = vapi.base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=vapi.timeout_seconds)

    def _headers(self, mechanic: Mechanic | None = None) -> dict[str, str]:
        key = self._vapi.api_key
        if mechanic is not None and mechanic.has_onboarded and self._vapi.experienced_api_key:
            key = self._vapi.experienced_api_key
        return {"Authorization": f"Bearer {key}"}

    def _job_request_tool(self, mechanic: Mechanic, context: TicketContext) -> dict:
        query = urlencode({
            "apiKey": self._vapi.tool_api_key,
            "mechanic": mechanic.international_phone_number,
            "name": mechanic.name,
            "ticket_id": context.ticket_id,
        })
        return {
            "type": "function",
            "async": False,
            "function": {
                "name": "createJobRequest",
                "description": "This is used to create a job request after taking all the needed information from the user.",
                "parameters": {
                    "type": "object",
                    "properties": {
                        "eta": {"type": "string", "description": "Estimated time of arrival"},
                        "services": {
                            "type": "array",
                            "description": "An array of all the services to be provided by the service provider",
                            "items": {"type": "string"},
                        },
                        "total_cost": {
                            "type": "string",
                            "description": "A median of the cost range given by the service provider during the call",
                        },
                    },
                    "required": ["eta", "services", "total_cost"],
                },
            },
            "server": {"url": f"{self._vapi.tool_server_url}?{query}"},
        }

    def build_payload(self, mechanic: Mechanic, context: TicketContext) -> dict:
        tools = []
        if self._vapi.tool_server_url:
            tools.append(self._job_request_tool(mechanic, context))

        payload = {
            "assistant": {
                "model": {
                    "model": self._vapi.model,
                    "systemPrompt": build_dispatch_prompt(mechanic, context),
                    "temperature": self._vapi.temperature,
                    "provider": "openai",
                    "tools": tools,
                },
                "endCallFunctionEnabled": True,
                "firstMessage": build_first_message(mechanic, context),
            },
            "phoneNumber": {
                "twilioAccountSid": self._twilio.account_sid,
                "twilioAuthToken": self._twilio.auth_token,
                "twilioPhoneNumber": context.phone_number or self._twilio.phone_number,
            },
            "customer": {
                "name": mechanic.name,
                "number": mechanic.international_phone_number,
            },
        }
        assistant_id = context.assistant_id or self._vapi.assistant_id
        if assistant_id:
            payload["assistantId"] = assistant_id
        return payload

    async def place_call(self, mechanic: Mechanic, context: TicketContext) -> CallOutcome:
        outcome = CallOutcome(
            success=False,
            mechanic=mechanic.name,
            number=mechanic.international_phone_number,
            mechanic_experience="experienced" if mechanic.has_onboarded else "standard",
        )
        try:
            resp = await self._client.post(
                f"{self._base_url}/call/phone",
                json=self.build_payload(mechanic, context),
                headers=self._headers(mechanic),
            )
        except httpx.HTTPError as e:
            outcome.error = f"{type(e).__name__}: {e}"
            logger.warning("Call to %s for ticket %s failed: %s", mechanic.name, context.ticket_id, outcome.error)
            return outcome

        if not resp.is_success:
            outcome.error = f"HTTP {resp.status_code}: {resp.text[:200]}"
            logger.warning("VAPI rejected call to %s for ticket %s: %s", mechanic.name, context.ticket_id, outcome.error)
            return outcome

        try:
            outcome.call_id = resp.json().get("id")
        except ValueError:
            outcome.call_id = None
        outcome.success = True
        logger.info("Call initiated for %s (ticket %s, call %s)", mechanic.name, context.ticket_id, outcome.call_id or "N/A")
        return outcome

    async def has_active_calls(self) -> bool:
        """True when VAPI still has calls queued, ringing or in progress."""
        resp = await self._client.get(
            f"{self._base_url}/call",
            params={"limit": 20},
            headers=self._headers(),
        )
        resp.raise_for_status()
        data = resp.json()
        calls = data.get("data", []) if isinstance(data, dict) else data
        if not isinstance(calls, list):
            return False
        return any(isinstance(c, dict) and c.get("status") in _BUSY_STATUSES for c in calls)

    async def aclose(self) -> None:
        await self._client.aclose()
