"""
Conversational Messages

Every user-facing sentence the tool handlers produce lives here, so the
handlers stay about data and the wording can be reviewed in one place.
Messages are Spanish Markdown with an emoji per line, the way the chat
client renders them.
"""

from datetime import date
from typing import Optional

from zenio.models.records import (
    Budget,
    Goal,
    MonthlyTargetMode,
    Transaction,
    format_money,
)


def format_day(day: date) -> str:
    """19/7/2025"""
    return f"{day.day}/{day.month}/{day.year}"


# Transactions

def transaction_created(tx: Transaction, category_name: str, date_defaulted: bool) -> str:
    date_line = f"📅 **Fecha:** {format_day(tx.date)}"
    if date_defaulted:
        date_line += " (fecha actual)"
    return (
        "✅ **Transacción registrada exitosamente**\n\n"
        f"💰 **Monto:** {format_money(tx.amount)}\n"
        f"📊 **Tipo:** {tx.type.label}\n"
        f"🏷️ **Categoría:** {category_name}\n"
        f"{date_line}\n\n"
        "La transacción ha sido guardada en tu historial. "
        "¡Puedes verla en la sección de Transacciones!"
    )


TRANSACTION_UPDATED = "Transacción actualizada exitosamente"
TRANSACTION_DELETED = "Transacción eliminada exitosamente"
TRANSACTION_NOT_FOUND = "No se encontró ninguna transacción con los criterios proporcionados"
TRANSACTION_AMBIGUOUS = (
    "Se encontraron varias transacciones. "
    "Por favor, proporciona más detalles para identificar la correcta"
)


# Budgets

def budget_created(budget: Budget, category_name: str) -> str:
    return (
        "✅ **Presupuesto creado exitosamente**\n\n"
        f"📋 **Categoría:** {category_name}\n"
        f"💰 **Monto:** {format_money(budget.amount)}\n"
        f"📅 **Período:** {budget.period.label}\n"
        f"📆 **Desde:** {format_day(budget.start_date)}\n"
        f"📆 **Hasta:** {format_day(budget.end_date)}\n\n"
        "El presupuesto ha sido guardado. ¡Puedes verlo en la sección de Presupuestos!"
    )


def budget_updated(category_name: str, previous: Budget, current: Budget) -> str:
    if previous.amount != current.amount:
        return (
            f"Presupuesto de {category_name} actualizado de "
            f"{format_money(previous.amount)} a {format_money(current.amount)}"
        )
    return f"Presupuesto de {category_name} actualizado exitosamente"


def budget_deleted(category_name: str) -> str:
    return f"Presupuesto de {category_name} eliminado exitosamente"


def budget_not_found(category: Optional[str], amount: Optional[str]) -> str:
    if category and amount:
        return f"No encontré un presupuesto de {category} con monto {amount}"
    return "No se encontró ningún presupuesto con los criterios proporcionados"


BUDGET_AMBIGUOUS = (
    "Se encontraron varios presupuestos. "
    "Por favor, proporciona más detalles para identificar el correcto"
)


# Goals

def _monthly_target(goal: Goal) -> str:
    if goal.monthly_target_type is None or goal.monthly_value is None:
        return "No definido"
    if goal.monthly_target_type == MonthlyTargetMode.PERCENTAGE:
        return f"{goal.monthly_value.normalize():f}% de tus ingresos"
    return f"{format_money(goal.monthly_value)} fijos"


def goal_created(goal: Goal, category_name: str) -> str:
    due = format_day(goal.due_date) if goal.due_date else "Sin fecha límite"
    return (
        "✅ **Meta creada exitosamente**\n\n"
        f"🎯 **Meta:** {goal.name}\n"
        f"💰 **Monto objetivo:** {format_money(goal.target_amount)}\n"
        f"🏷️ **Categoría:** {category_name}\n"
        f"📅 **Fecha objetivo:** {due}\n"
        f"📊 **Objetivo mensual:** {_monthly_target(goal)}\n"
        f"📈 **Prioridad:** {goal.priority.value}\n\n"
        "La meta ha sido guardada. ¡Puedes verla en la sección de Metas!"
    )


def goal_updated(goal: Goal, category_name: str) -> str:
    return (
        "✅ **Meta actualizada exitosamente**\n\n"
        f"🎯 **Meta:** {goal.name}\n"
        f"💰 **Monto objetivo:** {format_money(goal.target_amount)}\n"
        f"🏷️ **Categoría:** {category_name}\n"
        f"📈 **Prioridad:** {goal.priority.value}\n\n"
        "Los cambios han sido guardados. ¡Puedes ver la meta actualizada en la sección de Metas!"
    )


def goal_deleted(goal: Goal, category_name: str) -> str:
    return (
        "✅ **Meta eliminada exitosamente**\n\n"
        f"🎯 **Meta:** {goal.name}\n"
        f"💰 **Monto objetivo:** {format_money(goal.target_amount)}\n"
        f"🏷️ **Categoría:** {category_name}\n\n"
        "La meta ha sido eliminada de tu lista."
    )


GOAL_NOT_FOUND = "No se encontró ninguna meta con los criterios proporcionados"
GOAL_AMBIGUOUS = (
    "Se encontraron varias metas. "
    "Por favor, proporciona más detalles para identificar la correcta"
)


# Onboarding and session

def onboarding_completed(user_name: str) -> str:
    return (
        f"¡Perfecto {user_name}! 🎉\n\n"
        "Ha sido un placer conocerte y aprender sobre tus metas financieras. "
        "Ya tengo toda la información que necesito para ser tu copiloto financiero personal.\n\n"
        "Tu perfil está listo y ahora puedes comenzar a usar todas las herramientas de FinZen AI. "
        "¡Te veo en el dashboard! 😊"
    )


def greeting_seed(user_name: str) -> str:
    return (
        f"El usuario se llama {user_name}. Siempre que lo saludes, hazlo de forma natural "
        "y menciona su nombre en el saludo, tanto al inicio como en cualquier otro saludo "
        "durante la conversación."
    )


def onboarding_seed(user_name: str) -> str:
    return f"Quiero iniciar mi onboarding financiero. Mi nombre es {user_name}."


NO_REPLY = "No se pudo obtener respuesta del asistente."
DISPATCH_LIMIT_WARNING = (
    "El asistente solicitó demasiadas acciones seguidas; "
    "la respuesta puede estar incompleta."
)
