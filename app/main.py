"""
Streamlit Frontend for Expensy

The user picks a card, imports statement lines, and ticks off each
purchase once its receipt is in hand.

DESIGN PRINCIPLES:
1. The page holds no business logic; it calls the account store and import flow
2. Explicit confirmation before clearing an account
3. Clear error messages, and failed imports change nothing
4. Visual feedback for every operation
"""

import asyncio
from typing import Optional

import streamlit as st

from expensy.audit import create_correlation_id
from expensy.config import get_settings, validate_all_settings
from expensy.models.expense import CardAccount
from expensy.orchestrator import (
    ExpenseImportFlow,
    ImportInProgressError,
    create_app_components,
)
from expensy.queries import (
    compute_summary,
    format_currency,
    format_percentage,
    summarize_by_category,
)
from expensy.store import AccountStore


CURRENCIES = ["BRL", "USD", "EUR", "GBP"]


# Page configuration
st.set_page_config(
    page_title="Expensy",
    page_icon="🧾",
    layout="wide",
    initial_sidebar_state="expanded",
)

st.markdown("""
<style>
    .card-chip {
        padding: 12px 16px;
        border-radius: 12px;
        color: white;
        font-weight: bold;
        margin-bottom: 10px;
    }
    .big-number {
        font-size: 2em;
        font-weight: bold;
        color: #2c3e50;
    }
</style>
""", unsafe_allow_html=True)


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@st.cache_resource
def get_components():
    """Get or create application components (cached)."""
    return create_app_components()


def main():
    """Main application entry point."""
    store, import_flow, audit_logger = get_components()
    currency = st.session_state.get("currency", get_settings().app.currency)

    if "processing" not in st.session_state:
        st.session_state.processing = False

    flash = st.session_state.pop("flash", None)
    if flash:
        st.success(flash)

    if store.startup_warning and not st.session_state.get("warning_shown"):
        st.warning(store.startup_warning)
        st.session_state.warning_shown = True

    # Sidebar: account selector
    st.sidebar.title("🧾 Expensy")
    st.sidebar.markdown("---")

    accounts = store.accounts
    ids = [account.id for account in accounts]
    current = store.active_account_id
    selected = st.sidebar.radio(
        "Card",
        options=ids,
        index=ids.index(current),
        format_func=lambda i: _account_label(next(a for a in accounts if a.id == i)),
        disabled=st.session_state.processing,
    )
    if selected != current:
        store.set_active_account(selected)
        st.rerun()

    page = st.sidebar.radio(
        "Navigate to:",
        ["💳 Expenses", "⚙️ Settings"],
        index=0,
    )

    if page == "💳 Expenses":
        render_expenses_page(store, import_flow, currency)
    else:
        render_settings_page(audit_logger, store)


def _account_label(account: CardAccount) -> str:
    return f"{account.name} •••• {account.last_four_digits}"


def render_expenses_page(
    store: AccountStore,
    import_flow: Optional[ExpenseImportFlow],
    currency: str,
):
    """Render the active card: totals, import controls, expense list."""
    account = store.active_account
    stats = compute_summary(account)

    st.markdown(
        f'<div class="card-chip" style="background-color: {account.color or "#4f46e5"}">'
        f"{_account_label(account)}</div>",
        unsafe_allow_html=True,
    )

    # Totals
    col1, col2, col3 = st.columns(3)
    col1.metric("Total", format_currency(stats.total_amount, currency))
    col2.metric(
        "Reconciled",
        format_currency(stats.reconciled_amount, currency),
        f"{stats.reconciled_count}/{stats.expense_count}",
    )
    col3.metric("Pending", format_currency(stats.pending_amount, currency))
    st.progress(
        float(stats.completion_percentage) / 100,
        text=f"{format_percentage(stats.completion_percentage)} reconciled",
    )

    st.markdown("---")
    render_import_controls(import_flow, account.id)
    st.markdown("---")

    # Expense list
    st.subheader(f"Purchases ({stats.expense_count})")
    if not account.expenses:
        st.info("No purchases yet. Upload a statement or paste its text above.")
        return

    for expense in account.expenses:
        c1, c2, c3, c4 = st.columns([1, 5, 2, 1])
        with c1:
            checked = st.checkbox(
                "Receipt",
                value=expense.receipt_attached,
                key=f"receipt-{account.id}-{expense.id}",
                label_visibility="collapsed",
            )
            if checked != expense.receipt_attached:
                store.toggle_receipt(account.id, expense.id)
                st.rerun()
        with c2:
            line = f"**{expense.description}**  \n{expense.date}"
            if expense.category:
                line += f" · {expense.category}"
            st.markdown(line)
        with c3:
            st.markdown(format_currency(expense.amount, currency))
        with c4:
            if st.button("🗑️", key=f"delete-{account.id}-{expense.id}"):
                store.delete_expense(account.id, expense.id)
                st.rerun()

    with st.expander("📊 By category"):
        for row in summarize_by_category(account):
            st.markdown(
                f"{row.category}: {format_currency(row.amount, currency)} "
                f"({format_percentage(row.share_percentage)})"
            )

    with st.expander("⚠️ Clear all purchases"):
        confirm = st.checkbox(
            "I understand this removes every purchase from this card",
            key=f"confirm-clear-{account.id}",
        )
        if st.button("Clear all", disabled=not confirm, type="primary"):
            removed = store.clear_all(account.id)
            st.session_state.flash = f"{removed} purchases removed."
            st.rerun()


def render_import_controls(
    import_flow: Optional[ExpenseImportFlow],
    account_id: str,
):
    """Upload and paste controls. Disabled while an import is running."""
    if import_flow is None:
        st.warning("Statement import is unavailable: Gemini is not configured.")
        return

    busy = st.session_state.processing or import_flow.is_processing(account_id)

    col1, col2 = st.columns(2)
    with col1:
        uploaded = st.file_uploader(
            "Statement (image or PDF)",
            type=["jpg", "jpeg", "png", "webp", "pdf"],
            disabled=busy,
        )
        if uploaded and st.button("📤 Import file", disabled=busy):
            _run_import(
                import_flow.import_document(
                    account_id,
                    uploaded.getvalue(),
                    uploaded.type,
                    correlation_id=create_correlation_id(),
                )
            )
    with col2:
        text_key = f"manual-{account_id}"
        # Widget state can only be reset before the widget is created
        if st.session_state.pop(f"{text_key}-reset", False):
            st.session_state[text_key] = ""
        text = st.text_area(
            "Or paste the statement text",
            height=120,
            disabled=busy,
            key=text_key,
        )
        if st.button("📋 Import text", disabled=busy or not text.strip()):
            _run_import(
                import_flow.import_text(
                    account_id,
                    text,
                    correlation_id=create_correlation_id(),
                ),
                reset_key=f"{text_key}-reset",
            )


def _run_import(coro, reset_key: Optional[str] = None):
    st.session_state.processing = True
    try:
        with st.spinner("Processing statement..."):
            outcome = run_async(coro)
    except ImportInProgressError as e:
        st.warning(str(e))
        return
    finally:
        st.session_state.processing = False

    if outcome.success:
        st.session_state.flash = outcome.message
        if reset_key:
            st.session_state[reset_key] = True
        st.rerun()
    else:
        st.error(outcome.message)


def render_settings_page(audit_logger, store: AccountStore):
    """Render the settings page."""
    st.title("⚙️ Settings")

    st.markdown("### Connection Status")
    status = validate_all_settings()
    services = [
        ("Gemini (Extraction)", "gemini"),
        ("Local storage", "storage"),
        ("Application", "app"),
    ]
    for name, key in services:
        if status.get(key, False):
            st.success(f"✅ {name} - Configured")
        else:
            error = status.get(f"{key}_error", "Not configured")
            st.error(f"❌ {name} - {error}")

    current = st.session_state.get("currency", get_settings().app.currency)
    options = CURRENCIES if current in CURRENCIES else [current, *CURRENCIES]
    st.session_state.currency = st.selectbox(
        "Display currency",
        options=options,
        index=options.index(current),
    )

    st.markdown("### Recent activity")
    for event in audit_logger.recent_events(limit=20, account_id=store.active_account_id):
        st.markdown(
            f"`{event.timestamp:%H:%M:%S}` {event.event_type.value}: {event.description}"
        )


if __name__ == "__main__":
    main()
