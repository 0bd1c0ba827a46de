"""Call scripts for the voice agent that phones mechanics."""

from __future__ import annotations

import logging
import math

from roadside.schemas import Mechanic
from roadside.services.ticket_context import TicketContext

logger = logging.getLogger(__name__)

DEFAULT_FIRST_MESSAGE = "Hello am I unto {mechanic_name}"

DISPATCH_PROMPT = """\
Your name is Ava. You are calling from {company_name}.

Context:
- Breakdown reason: {reason}
- Location: {breakdown_address}
- Vehicle: {vehicle_info}, plate {license_plate}
- Distance: {distance}
- Job ID: {ticket_id}
- Owner's number: {owner_number}
- {organization_type}: {company_name}
{tow_line}{returning_line}
Begin call:

1. Greet and confirm:
   "Hi, this is Ava calling from {company_name}.
   I'm calling because we have a vehicle broken down approximately {distance} from your registered address, {mechanic_address}.
   Am I speaking with someone from {mechanic_name}?"

2. IF NO | "Oh so sorry, are you a repair shop?"
   IF NO AGAIN | "My apologies I must have the wrong number, take care bye!" END THE CALL

2.1 If YES | State the breakdown location and distance:
   "A vehicle has broken down at {breakdown_address}."

3. Provide vehicle and issue details:
   "It's a {vehicle_info}. The reported issue is {reason}."

4. Request ETA & Pricing:
   "If you are available, could you please share the estimated time of arrival and a general price range for this type of service?
   I understand you may need to diagnose the problem onsite for accuracy, but we do need a documented range before dispatch."
   After getting all the needed information call the createJobRequest tool and pass all the needed parameters.

5. Close the Loop:
   "Thank you for the information. I will confirm with the driver and follow up within the next 15 minutes to finalize dispatch. If you need to reach us sooner, please text this number."
"""


class _KeepMissing(dict):
    def __missing__(self, key):
        return "{" + key + "}"


def format_distance(miles: float | None) -> str:
    """Round up to a tenth of a mile; unknown distances read as 'nearby'."""
    if miles is None:
        return "nearby"
    return f"{math.ceil(miles * 10) / 10} mi"


def prompt_variables(mechanic: Mechanic, context: TicketContext) -> dict[str, str]:
    reason = context.primary_reason
    if context.secondary_reason:
        reason = f"{reason} and {context.secondary_reason}"
    return {
        "company_name": context.company_name,
        "organization_type": context.organization_type,
        "vehicle_info": context.vehicle_info,
        "license_plate": context.license_plate,
        "owner_number": context.owner_number,
        "breakdown_address": context.breakdown_address,
        "primary_reason": context.primary_reason,
        "secondary_reason": context.secondary_reason,
        "reason": reason,
        "tow_destination": context.tow_destination,
        "tow_line": f"- Tow destination: {context.tow_destination}\n" if context.tow_destination else "",
        "ticket_type": context.ticket_type,
        "ticket_id": context.ticket_id,
        "distance": format_distance(mechanic.distance),
        "mechanic_name": mechanic.name,
        "mechanic_address": mechanic.formatted_address,
        "mechanic_number": mechanic.international_phone_number,
        "labour_rate": mechanic.labour,
        "mechanic_experience": "experienced" if mechanic.has_onboarded else "standard",
        "returning_line": (
            f"- {mechanic.name} has worked with {context.company_name} before; skip the introduction of who we are\n"
            if mechanic.has_onboarded else ""
        ),
    }


def render(template: str, variables: dict[str, str]) -> str:
    """str.format_map that leaves unknown placeholders untouched."""
    try:
        return template.format_map(_KeepMissing(variables))
    except (ValueError, IndexError, KeyError, AttributeError):
        # Stray braces in a custom template; use it verbatim
        logger.warning("Could not render call template, using it as-is")
        return template


def build_dispatch_prompt(mechanic: Mechanic, context: TicketContext) -> str:
    template = context.dispatch_prompt or DISPATCH_PROMPT
    return render(template, prompt_variables(mechanic, context))


def build_first_message(mechanic: Mechanic, context: TicketContext) -> str:
    template = context.first_message or DEFAULT_FIRST_MESSAGE
    return render(template, prompt_variables(mechanic, context))
