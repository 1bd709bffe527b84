from typing import Any, Dict, Optional

TEMPLATES = {
    "customer_whatsapp": (
        "Hola {name}, registramos tu reclamo #{claim_ref} en Cospec Comunicaciones.\n"
        "Motivo: {reason}\n"
        "Dirección: {address}\n"
        "Un técnico se comunicará con vos a la brevedad."
    ),
    "technician_whatsapp": (
        "Nuevo reclamo asignado #{claim_ref}\n"
        "Cliente: {name}\n"
        "Teléfono: {phone}\n"
        "Dirección: {address}\n"
        "Motivo: {reason}\n"
        "Recibido por: {received_by}"
    ),
    "technician_push_title": "Nuevo reclamo asignado",
    "technician_push_body": "{name} - {address}: {reason}",
}


class _SafeFormatter(dict):
    """Leaves unknown placeholders in place instead of raising."""

    def __missing__(self, key):
        return "{" + key + "}"


def claim_context(claim: Any, **extra: Any) -> Dict[str, Any]:
    """Build the template context for a claim."""
    context = {
        "claim_id": claim.id,
        "claim_ref": claim.id[:8].upper(),
        "name": claim.name,
        "phone": claim.phone,
        "address": claim.address,
        "reason": claim.reason,
        "received_by": claim.received_by,
    }
    context.update(extra)
    return context


def format_message(template_key: str, context: Optional[Dict[str, Any]] = None) -> str:
    """Format a human-readable notification message."""
    template = TEMPLATES.get(template_key)
    if template is None:
        raise KeyError(f"Unknown message template: {template_key}")
    return template.format_map(_SafeFormatter(**(context or {})))
