"""
Persona for Reco: the system prompt and every fixed user-facing text.

Prompt content is opaque to the rest of the system: the gateway only
ever passes `system_prompt` through as the first message.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from src.billing.pricing import format_minor
from src.constants import FALLBACK_ANSWER, PROJECT_DISPLAY_NAME

SYSTEM_PROMPT = f"""Eres "{PROJECT_DISPLAY_NAME}", un asistente especializado en información sobre inmigración y extranjería en España.

INSTRUCCIONES IMPORTANTES:
- Proporciona información orientativa únicamente, NO asesoría legal
- Responde en español claro y práctico
- Máximo 4-8 líneas por respuesta
- Incluye pasos accionables cuando sea posible
- Cuando sea útil, menciona 1-2 fuentes oficiales (SEPE, Ministerio del Interior, Extranjería, BOE)
- Si la consulta supera tu ámbito, recomienda contactar un profesional colegiado
- Si necesitas más información para dar una respuesta precisa, pide los detalles mínimos necesarios

BÚSQUEDA DE INFORMACIÓN ACTUAL:
- Usa la función search_current_immigration_info cuando necesites información muy reciente sobre:
  * Cambios en leyes o reglamentos
  * Nuevos requisitos o procedimientos
  * Tiempos de procesamiento actuales
  * Formularios o documentos actualizados
- NO uses búsqueda para información básica y estable (conceptos generales, definiciones)

DISCLAIMER: Siempre recuerda que esta información es orientativa y no constituye asesoría legal profesional.

Responde de forma empática y práctica, considerando que muchos usuarios pueden estar en situaciones de estrés o incertidumbre."""


@dataclass
class Persona:
    """Fixed texts shown to users. Links are configured, not hard-coded."""

    display_name: str = PROJECT_DISPLAY_NAME
    system_prompt: str = SYSTEM_PROMPT
    fallback_answer: str = FALLBACK_ANSWER
    top_up_links: list[str] = field(default_factory=list)

    def welcome(self, initial_credits_minor: int = 0) -> str:
        lines = [f"¡Hola! Soy **{self.display_name}** 🇪🇸", ""]
        if initial_credits_minor > 0:
            lines += [
                f"Te regalo **{format_minor(initial_credits_minor, '$')} de saldo** "
                "para tus primeras consultas.",
                "",
            ]
        lines += [
            "Puedo ayudarte con información sobre:",
            "• Renovación de NIE/TIE",
            "• Arraigo social/laboral",
            "• Reagrupación familiar",
            "• Visados y permisos",
            "• Nacionalidad española",
            "",
            "⚠️ **IMPORTANTE**: Esta información es orientativa, no constituye asesoría "
            "legal. Para casos complejos, consulta un abogado especializado.",
            "",
            "📱 Al usar este servicio aceptas el tratamiento de tus datos. "
            "Escribe **BAJA** para eliminar todos tus datos.",
            "",
            "¿En qué puedo ayudarte?",
        ]
        return "\n".join(lines)

    def no_credits(self) -> str:
        lines = ["💰 **Tu saldo es $0.00**", "", "Para continuar consultando, recarga tu saldo:", ""]
        if self.top_up_links:
            lines += [f"💳 {link}" for link in self.top_up_links]
        else:
            lines.append("💳 Contacta con soporte para recargar.")
        lines += ["", "Una vez realices el pago, tu saldo se actualizará automáticamente."]
        return "\n".join(lines)

    def message_limit_reached(self) -> str:
        return (
            "📈 **Has alcanzado el límite de mensajes**\n\n"
            "Has usado todos los mensajes disponibles por ahora. "
            "Espera a que se restablezca tu cuota para continuar."
        )

    def data_deleted(self) -> str:
        return (
            "✅ **Solicitud de baja procesada**\n\n"
            "Hemos eliminado todos tus datos de nuestros sistemas.\n\n"
            f"Gracias por usar {self.display_name}. Si necesitas ayuda en el futuro, "
            "puedes contactarnos nuevamente."
        )

    def moderation_warning(self) -> str:
        return (
            "⚠️ **Contenido no apropiado**\n\n"
            "Tu mensaje no cumple con nuestras normas de uso. "
            "Por favor, reformula tu consulta de manera apropiada.\n\n"
            "Recuerda que este servicio es para consultas sobre inmigración y extranjería en España."
        )

    def blocked(self) -> str:
        return "🚫 Tu cuenta está bloqueada. Contacta con soporte si crees que es un error."

    def error(self) -> str:
        return (
            "🔧 **Error técnico temporal**\n\n"
            "Tenemos dificultades técnicas en este momento.\n\n"
            "Por favor, intenta de nuevo en unos minutos o contacta con un profesional "
            "para consultas urgentes."
        )
