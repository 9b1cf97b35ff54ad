"""
Streamlit Frontend for Zenio

A chat page over ChatEngine, for trying the assistant without the
mobile client.

DESIGN PRINCIPLES:
1. One conversation per browser session (the thread id lives in session state)
2. Every executed action is shown under the reply that caused it
3. Errors are shown in the same words the mobile client would show
"""

import asyncio

import streamlit as st

from zenio.models.conversation import CategoryRef, ChatRequest
from zenio.orchestrator import ChatEngine, ChatEngineError, create_app_components


# Page configuration
st.set_page_config(
    page_title="Zenio",
    page_icon="💬",
    layout="centered",
    initial_sidebar_state="expanded",
)

ACTION_LABELS = {
    "transaction_created": "🧾 Transacción registrada",
    "transaction_updated": "✏️ Transacción actualizada",
    "transaction_deleted": "🗑️ Transacción eliminada",
    "transaction_list": "📋 Transacciones consultadas",
    "budget_created": "📊 Presupuesto creado",
    "budget_updated": "✏️ Presupuesto actualizado",
    "budget_deleted": "🗑️ Presupuesto eliminado",
    "budget_list": "📋 Presupuestos consultados",
    "goal_created": "🎯 Meta creada",
    "goal_updated": "✏️ Meta actualizada",
    "goal_deleted": "🗑️ Meta eliminada",
    "goal_list": "📋 Metas consultadas",
    "category_not_found": "❓ Categoría no encontrada",
    "ant_expense_analysis": "🐜 Análisis de gastos hormiga",
}


@st.cache_resource
def get_event_loop() -> asyncio.AbstractEventLoop:
    """One loop for the whole app; the HTTP client's pool is bound to it."""
    return asyncio.new_event_loop()


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    loop = get_event_loop()
    asyncio.set_event_loop(loop)
    return loop.run_until_complete(coro)


@st.cache_resource
def get_engine() -> ChatEngine:
    """Get or create the chat engine (cached)."""
    try:
        engine, _ = create_app_components(use_storage=True)
    except Exception as e:
        st.error(f"No se pudo inicializar Zenio: {e}")
        st.stop()
    return engine


def init_session_state():
    defaults = {
        "thread_id": None,
        "history": [],
        "usage": None,
    }
    for key, value in defaults.items():
        if key not in st.session_state:
            st.session_state[key] = value


def render_actions(actions: list[dict]):
    for action in actions:
        label = ACTION_LABELS.get(action["action"], action["action"])
        st.caption(label)


def render_sidebar() -> tuple[str, str, bool, list[CategoryRef]]:
    st.sidebar.title("💬 Zenio")
    st.sidebar.markdown("---")

    user_id = st.sidebar.text_input("Usuario", value="demo-user")
    timezone = st.sidebar.text_input("Zona horaria", value="America/Santo_Domingo")
    is_onboarding = st.sidebar.checkbox("Onboarding financiero", value=False)
    raw_categories = st.sidebar.text_area(
        "Categorías (una por línea, opcional)",
        help="Si se deja vacío se usa el catálogo guardado.",
    )
    categories = [CategoryRef(name=line) for line in raw_categories.splitlines() if line.strip()]

    usage = st.session_state.usage
    if usage:
        st.sidebar.markdown("---")
        if usage["limit"] == -1:
            st.sidebar.metric("Consultas usadas", usage["used"])
        else:
            st.sidebar.metric("Consultas restantes", usage["remaining"], help=f"Límite mensual: {usage['limit']}")

    if st.sidebar.button("🔄 Nueva conversación"):
        st.session_state.thread_id = None
        st.session_state.history = []
        st.rerun()

    render_settings_status()
    return user_id, timezone, is_onboarding, categories


def render_settings_status():
    """Which configuration sections are usable."""
    from zenio.config import validate_all_settings

    status = validate_all_settings()
    services = [
        ("Asistente (OpenAI)", "assistant"),
        ("Google Sheets", "google_sheets"),
    ]

    with st.sidebar.expander("⚙️ Conexiones"):
        for name, key in services:
            if status.get(key, False):
                st.success(f"✅ {name}")
            else:
                error = status.get(f"{key}_error", "No configurado")
                st.error(f"❌ {name} - {error}")


def main():
    """Main application entry point."""
    init_session_state()
    user_id, timezone, is_onboarding, categories = render_sidebar()
    engine = get_engine()

    st.title("💬 Zenio")
    st.caption("Tu copiloto financiero")

    for turn in st.session_state.history:
        with st.chat_message(turn["role"]):
            st.markdown(turn["content"])
            render_actions(turn.get("actions", []))

    prompt = st.chat_input("Escribe tu mensaje...")
    if not prompt:
        return

    st.session_state.history.append({"role": "user", "content": prompt})
    with st.chat_message("user"):
        st.markdown(prompt)

    request = ChatRequest(
        message=prompt,
        thread_id=st.session_state.thread_id,
        is_onboarding=is_onboarding,
        categories=categories or None,
        timezone=timezone or None,
    )

    with st.chat_message("assistant"):
        with st.spinner("Zenio está pensando..."):
            try:
                response = run_async(engine.chat(user_id, request))
            except ChatEngineError as e:
                if e.thread_id:
                    st.session_state.thread_id = e.thread_id
                st.error(e.message)
                return

        wire = response.to_wire()
        st.markdown(response.message)
        if response.warning:
            st.warning(response.warning)
        render_actions(wire.get("executedActions", []))

    st.session_state.thread_id = response.thread_id
    st.session_state.usage = wire["usage"]
    st.session_state.history.append({
        "role": "assistant",
        "content": response.message,
        "actions": wire.get("executedActions", []),
    })
    st.rerun()


if __name__ == "__main__":
    main()
