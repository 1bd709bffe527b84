"""Best-effort notification fan-out for claim events."""

from dataclasses import dataclass, field
from typing import Awaitable, List, Optional

from cospec_claims.core.exceptions import DispatchError
from cospec_claims.schemas.claim import Claim
from cospec_claims.schemas.technician import Technician
from cospec_claims.services.notifications.messages import claim_context, format_message
from cospec_claims.services.notifications.push_client import PushClient
from cospec_claims.services.notifications.whatsapp_client import WhatsAppClient
from cospec_claims.utils.logging import get_logger

LOGGER = get_logger(__name__)

_RECIPIENT_LABELS = {"customer": "cliente", "technician": "técnico"}


@dataclass
class DispatchResult:
    recipient: str  # customer | technician
    channel: str  # whatsapp | push
    ok: bool
    error: Optional[str] = None


@dataclass
class DispatchReport:
    results: List[DispatchResult] = field(default_factory=list)

    def extend(self, other: "DispatchReport") -> None:
        self.results.extend(other.results)

    @property
    def attempts(self) -> int:
        return len(self.results)

    @property
    def any_succeeded(self) -> bool:
        return any(r.ok for r in self.results)

    @property
    def failures(self) -> List[DispatchResult]:
        return [r for r in self.results if not r.ok]

    def warnings(self) -> List[str]:
        return [
            f"No se pudo notificar al {_RECIPIENT_LABELS.get(r.recipient, r.recipient)} por {r.channel}: {r.error}"
            for r in self.failures
        ]


class NotificationDispatcher:
    """Formats claim messages and hands them to the messaging collaborators.

    Every recipient/channel pair is attempted on its own. Failures are
    logged once, recorded in the report and never raised.
    """

    def __init__(
        self,
        whatsapp: Optional[WhatsAppClient] = None,
        push: Optional[PushClient] = None,
    ):
        self.whatsapp = whatsapp or WhatsAppClient()
        self.push = push or PushClient()

    async def _attempt(self, recipient: str, channel: str, claim: Claim, send: Awaitable) -> DispatchResult:
        try:
            await send
        except DispatchError as e:
            LOGGER.warning(
                f"Notification to {recipient} via {channel} failed for claim {claim.id}: {e}",
                extra={"claim_id": claim.id, "recipient": recipient, "channel": channel},
            )
            return DispatchResult(recipient=recipient, channel=channel, ok=False, error=str(e))
        except Exception as e:
            LOGGER.error(
                f"Unexpected error notifying {recipient} via {channel} for claim {claim.id}: {e}",
                exc_info=True,
            )
            return DispatchResult(recipient=recipient, channel=channel, ok=False, error=str(e))
        return DispatchResult(recipient=recipient, channel=channel, ok=True)

    async def notify_customer(self, claim: Claim) -> DispatchReport:
        body = format_message("customer_whatsapp", claim_context(claim))
        result = await self._attempt(
            "customer", "whatsapp", claim, self.whatsapp.send_message(claim.phone, body)
        )
        return DispatchReport([result])

    async def notify_technician(self, claim: Claim, technician: Technician) -> DispatchReport:
        context = claim_context(claim, technician_name=technician.name)
        report = DispatchReport()

        if technician.phone:
            body = format_message("technician_whatsapp", context)
            report.results.append(await self._attempt(
                "technician", "whatsapp", claim, self.whatsapp.send_message(technician.phone, body)
            ))
        else:
            LOGGER.warning(f"Technician {technician.id} has no phone; skipping WhatsApp")

        if technician.push_token:
            report.results.append(await self._attempt(
                "technician",
                "push",
                claim,
                self.push.send(
                    technician.push_token,
                    title=format_message("technician_push_title", context),
                    body=format_message("technician_push_body", context),
                    data={
                        "claimId": claim.id,
                        "customerName": claim.name,
                        "customerAddress": claim.address,
                        "customerPhone": claim.phone,
                        "reason": claim.reason,
                    },
                ),
            ))

        return report
