"""
Streamlit Frontend for Budget Tracker

The page users sign in to, record income and expenses on, and watch
their savings grow by category.

DESIGN PRINCIPLES:
1. Nothing is shown until the user is signed in and verified
2. Every action ends in a visible notification
3. Errors are shown in plain words, never as stack traces
4. All numbers come from the aggregator, never computed here

Each browser session keeps its own gateway and event loop in
st.session_state, so signed-in state never leaks between users.
"""

import asyncio
import logging
from typing import Optional

import streamlit as st

from budget_tracker.config import get_settings, validate_all_settings
from budget_tracker.gateway import FinanceGateway, create_gateway
from budget_tracker.models.results import OperationResult
from budget_tracker.models.transaction import (
    MAX_AMOUNT,
    SAVINGS_CATEGORIES,
    DashboardData,
    TransactionType,
)
from budget_tracker.services.backend import InMemoryIdentityBackend
from budget_tracker.views import (
    SIGNED_OUT_BREAKDOWN,
    SIGNED_OUT_SAVINGS,
    SIGNED_OUT_TRANSACTIONS,
    balance_labels,
    format_category_name,
    format_currency,
    notification_from_result,
    render_breakdown_chart,
    render_category_cards,
    render_signed_out_notice,
    render_transactions_by_category,
    render_transactions_list,
)


logging.basicConfig(level=logging.INFO, format="%(message)s")

# Page configuration
st.set_page_config(
    page_title="Budget Tracker",
    page_icon="💰",
    layout="wide",
    initial_sidebar_state="expanded",
)

# Styles for the rendered fragments
st.markdown("""
<style>
    .stButton>button {
        width: 100%;
        margin-top: 10px;
    }
    .transaction-item {
        display: flex;
        justify-content: space-between;
        padding: 12px 16px;
        margin: 8px 0;
        border-radius: 8px;
        background-color: #f8f9fa;
        border-left: 5px solid #6c757d;
    }
    .transaction-item.income { border-left-color: #28a745; }
    .transaction-item.expense { border-left-color: #dc3545; }
    .transaction-info h4 { margin: 0; }
    .transaction-info p { margin: 2px 0; color: #6c757d; }
    .amount.income, .positive { color: #28a745; font-weight: bold; }
    .amount.expense, .negative { color: #dc3545; font-weight: bold; }
    .no-transactions { text-align: center; padding: 30px; color: #6c757d; }
    .category-card {
        padding: 16px;
        margin: 8px 0;
        border-radius: 10px;
        background-color: #ffffff;
        box-shadow: 0 1px 3px rgba(0, 0, 0, 0.1);
    }
    .category-header { display: flex; justify-content: space-between; }
    .progress-bar, .chart-bar {
        height: 10px;
        background-color: #e9ecef;
        border-radius: 5px;
        overflow: hidden;
    }
    .progress-fill, .chart-fill { height: 100%; background-color: #28a745; }
    .chart-item { margin: 10px 0; }
    .chart-label { display: flex; justify-content: space-between; }
    .more-transactions { color: #6c757d; font-style: italic; }
</style>
""", unsafe_allow_html=True)


def get_loop() -> asyncio.AbstractEventLoop:
    """The event loop for this browser session."""
    if "loop" not in st.session_state:
        st.session_state.loop = asyncio.new_event_loop()
    return st.session_state.loop


def get_gateway() -> FinanceGateway:
    """Get or create this session's gateway."""
    if "gateway" not in st.session_state:
        st.session_state.dashboard = None

        def on_data_loaded(data: DashboardData) -> None:
            st.session_state.dashboard = data

        def on_data_cleared() -> None:
            st.session_state.dashboard = None

        st.session_state.gateway = create_gateway(
            on_data_loaded=on_data_loaded,
            on_data_cleared=on_data_cleared,
        )
    return st.session_state.gateway


def run_async(coro):
    """
    Helper to run async functions in Streamlit.

    Also waits for any reload the call triggered, so its data is in
    session state before the page is drawn.
    """
    loop = get_loop()
    asyncio.set_event_loop(loop)
    result = loop.run_until_complete(coro)
    loop.run_until_complete(get_gateway().wait_for_reload())
    return result


def refresh_dashboard() -> None:
    gateway = get_gateway()

    async def _request():
        gateway.request_reload()

    run_async(_request())


def notify(result: OperationResult, success_message: Optional[str] = None) -> None:
    """Queue a toast for the next run of the script."""
    duration = get_settings().app.notification_duration_ms
    st.session_state.notification = notification_from_result(
        result, success_message, duration_ms=duration
    )


def show_pending_notification() -> None:
    notification = st.session_state.pop("notification", None)
    if notification is None:
        return
    icon = {"success": "✅", "error": "❌"}.get(notification.kind, "ℹ️")
    st.toast(notification.message, icon=icon)


def main():
    """Main application entry point."""
    gateway = get_gateway()
    show_pending_notification()

    # Sidebar navigation
    st.sidebar.title("💰 Budget Tracker")
    st.sidebar.markdown("---")

    user = gateway.user
    if user:
        st.sidebar.markdown(f"Signed in as **{user.email}**")
    else:
        st.sidebar.markdown("Not signed in")

    page = st.sidebar.radio(
        "Navigate to:",
        ["💳 Transactions", "🎯 Savings", "👤 Account", "⚙️ Settings"],
        index=0 if user else 2,
    )

    if page == "💳 Transactions":
        render_transactions_page(gateway)
    elif page == "🎯 Savings":
        render_savings_page(gateway)
    elif page == "👤 Account":
        render_account_page(gateway)
    elif page == "⚙️ Settings":
        render_settings_page()


def render_transactions_page(gateway: FinanceGateway):
    """Balance tiles, the add form and the transaction list."""
    st.title("💳 Transactions")
    symbol = get_settings().app.currency_symbol

    if gateway.user is None:
        st.markdown(render_signed_out_notice(SIGNED_OUT_TRANSACTIONS), unsafe_allow_html=True)
        return

    dashboard: DashboardData = st.session_state.get("dashboard") or DashboardData()

    labels = balance_labels(dashboard.balance, symbol)
    col1, col2, col3 = st.columns(3)
    col1.metric("Total Balance", labels["total_balance"])
    col2.metric("Income", labels["total_income"])
    col3.metric("Expenses", labels["total_expenses"])

    st.markdown("---")
    st.markdown("### Add Transaction")

    with st.form("add_transaction", clear_on_submit=True):
        description = st.text_input("Description", max_chars=100)
        col1, col2, col3 = st.columns(3)
        with col1:
            amount = st.number_input(
                "Amount",
                min_value=0.0,
                max_value=float(MAX_AMOUNT),
                step=0.01,
                format="%.2f",
            )
        with col2:
            transaction_type = st.selectbox(
                "Type",
                options=list(TransactionType),
                format_func=lambda t: t.value.title(),
            )
        with col3:
            category = st.selectbox(
                "Category",
                options=list(SAVINGS_CATEGORIES),
                format_func=format_category_name,
            )
        submitted = st.form_submit_button("➕ Add Transaction", type="primary")

    if submitted:
        result = run_async(gateway.add_transaction({
            "description": description,
            "amount": amount,
            "type": transaction_type,
            "category": category,
        }))
        notify(result, "Transaction added successfully!")
        if result.success:
            refresh_dashboard()
        st.rerun()

    st.markdown("### Recent Transactions")
    st.markdown(
        render_transactions_list(dashboard.transactions, symbol),
        unsafe_allow_html=True,
    )

    if not dashboard.transactions:
        return

    st.markdown("### Edit or Delete")
    by_id = {t.id: t for t in dashboard.transactions if t.id}
    selected_id = st.selectbox(
        "Transaction",
        options=list(by_id),
        format_func=lambda tid: (
            f"{by_id[tid].description} ({format_currency(by_id[tid].amount, symbol)})"
        ),
    )
    selected = by_id.get(selected_id)
    if selected is None:
        return

    with st.form("edit_transaction"):
        new_description = st.text_input("Description", value=selected.description, max_chars=100)
        new_amount = st.number_input(
            "Amount",
            min_value=0.0,
            max_value=float(MAX_AMOUNT),
            value=float(selected.amount),
            step=0.01,
            format="%.2f",
        )
        col1, col2 = st.columns(2)
        with col1:
            save = st.form_submit_button("💾 Save Changes")
        with col2:
            delete = st.form_submit_button("🗑️ Delete")

    if save:
        result = run_async(gateway.update_transaction(
            selected.id,
            {"description": new_description, "amount": new_amount},
        ))
        notify(result, "Transaction updated successfully!")
        if result.success:
            refresh_dashboard()
        st.rerun()

    if delete:
        result = run_async(gateway.delete_transaction(selected.id))
        notify(result, "Transaction deleted successfully!")
        if result.success:
            refresh_dashboard()
        st.rerun()


def render_savings_page(gateway: FinanceGateway):
    """Savings per category, the breakdown chart and grouped transactions."""
    st.title("🎯 Savings")
    symbol = get_settings().app.currency_symbol

    if gateway.user is None:
        st.metric("Total Savings", format_currency(0, symbol))
        st.markdown(f"<p>{SIGNED_OUT_SAVINGS}</p>", unsafe_allow_html=True)
        st.markdown(f"<p>{SIGNED_OUT_BREAKDOWN}</p>", unsafe_allow_html=True)
        st.markdown(f"<p>{SIGNED_OUT_TRANSACTIONS}</p>", unsafe_allow_html=True)
        return

    dashboard: DashboardData = st.session_state.get("dashboard") or DashboardData()
    savings = dashboard.savings

    st.metric("Total Savings", format_currency(savings.total_savings, symbol))

    with st.expander("🎯 Set a Savings Goal"):
        with st.form("add_category", clear_on_submit=True):
            name = st.selectbox(
                "Category",
                options=list(SAVINGS_CATEGORIES),
                format_func=format_category_name,
            )
            goal = st.number_input("Goal", min_value=0.0, step=100.0, format="%.2f")
            submitted = st.form_submit_button("Save Goal", type="primary")

        if submitted:
            result = run_async(gateway.add_category({"name": name, "goal": goal}))
            notify(result, "Category added successfully!")
            if result.success:
                refresh_dashboard()
            st.rerun()

    st.markdown("### By Category")
    st.markdown(render_category_cards(savings, symbol), unsafe_allow_html=True)

    st.markdown("### Breakdown")
    st.markdown(render_breakdown_chart(savings, symbol), unsafe_allow_html=True)

    st.markdown("### Transactions by Category")
    st.markdown(
        render_transactions_by_category(dashboard.transactions, symbol),
        unsafe_allow_html=True,
    )


def render_account_page(gateway: FinanceGateway):
    """Sign in, sign up and password management."""
    st.title("👤 Account")

    user = gateway.user
    if user:
        st.success(f"Signed in as {user.email}")

        with st.form("change_password", clear_on_submit=True):
            st.markdown("### Change Password")
            current = st.text_input("Current Password", type="password")
            new = st.text_input("New Password", type="password")
            submitted = st.form_submit_button("Update Password")

        if submitted:
            notify(run_async(gateway.change_password(current, new)))
            st.rerun()

        if st.button("🚪 Sign Out"):
            result = run_async(gateway.sign_out())
            notify(result, "Signed out successfully!")
            st.rerun()
        return

    sign_in_tab, sign_up_tab, reset_tab = st.tabs(["Sign In", "Sign Up", "Forgot Password"])

    with sign_in_tab:
        with st.form("sign_in"):
            email = st.text_input("Email")
            password = st.text_input("Password", type="password")
            submitted = st.form_submit_button("Sign In", type="primary")

        if submitted:
            result = run_async(gateway.sign_in(email, password))
            notify(result, "Signed in successfully!")
            if result.needs_verification:
                st.session_state.unverified_email = email
            st.rerun()

        # Offline demo mode has no mailbox to click a link in
        pending = st.session_state.get("unverified_email")
        if pending and isinstance(gateway.identity, InMemoryIdentityBackend):
            st.info("Demo mode: no email is actually sent.")
            if st.button(f"Mark {pending} as verified"):
                gateway.identity.verify_email(pending)
                st.session_state.pop("unverified_email", None)
                st.rerun()

    with sign_up_tab:
        with st.form("sign_up", clear_on_submit=True):
            email = st.text_input("Email")
            password = st.text_input(
                "Password",
                type="password",
                help="At least 8 characters with uppercase, lowercase, and a number",
            )
            submitted = st.form_submit_button("Create Account", type="primary")

        if submitted:
            result = run_async(gateway.sign_up(email, password))
            notify(result)
            if result.success:
                st.session_state.unverified_email = email
            st.rerun()

    with reset_tab:
        with st.form("reset_password", clear_on_submit=True):
            email = st.text_input("Email")
            submitted = st.form_submit_button("Send Reset Link")

        if submitted:
            notify(run_async(gateway.reset_password(email)))
            st.rerun()


def render_settings_page():
    """Render the settings page."""
    st.title("⚙️ Settings")

    st.markdown("### Connection Status")

    status = validate_all_settings()

    services = [
        ("Firebase (Authentication and Firestore)", "firebase"),
        ("Application", "app"),
    ]

    for name, key in services:
        if status.get(key, False):
            st.success(f"✅ {name} - Configured")
        else:
            error = status.get(f"{key}_error", "Not configured")
            st.error(f"❌ {name} - {error}")

    if not status.get("firebase", False):
        st.warning(
            "Running in offline demo mode. Data lives in memory and is lost "
            "when the session ends."
        )

    st.markdown("---")
    st.markdown("### Configuration")
    st.markdown(
        "To connect to Firebase, create a `.env` file with `FIREBASE_API_KEY` "
        "and `FIREBASE_PROJECT_ID` set to your web app's values."
    )


if __name__ == "__main__":
    main()
